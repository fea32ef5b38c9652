"""
LVM volume group and logical volume management.

Every object here is a snapshot of one `lvm fullreport` query. Nothing is
cached between calls: each lookup runs lvm again, and operations that
change state return a freshly queried object.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from lvmctl.lib.attr import LVAttr
from lvmctl.lib.command import CommandContext, LVMRunner, Runner, Verbosity
from lvmctl.lib.exceptions import NotFoundError, ReportParseError, VolumeRemovedError
from lvmctl.lib.report import FullReport, LVReport, VGReport, fullreport_args, parse_report
from lvmctl.lib.validators import (
    MINIMUM_SECTOR_SIZE,
    validate_lv_name,
    validate_name,
    validate_size,
    validate_tag,
)

log = logging.getLogger(__name__)

__all__ = [
    "MINIMUM_SECTOR_SIZE",
    "LogicalVolume",
    "ThinPool",
    "ThinPoolUsage",
    "VolumeGroup",
    "find_volume_group",
    "list_volume_groups",
]


def _logger(ctx: Optional[CommandContext]) -> logging.Logger:
    return ctx.logger if ctx is not None else log


def get_lvm_state(runner: Runner, vg_name: Optional[str] = None, ctx: Optional[CommandContext] = None) -> FullReport:
    """
    Query lvm for volume groups and logical volumes.

    Raises:
        CommandError: If lvm fails; CommandNotFoundError if the VG is absent
        ReportParseError: If lvm succeeds but its output is not a valid report
    """
    stream = runner.run_streamed(Verbosity.STATE_NO_UPDATE, *fullreport_args(vg_name), ctx=ctx)
    with stream:
        try:
            report = parse_report(stream)
        except ReportParseError:
            # A failed command prints no report; its exit status is the real error.
            stream.close()
            raise
    return report


def _tag_args(tags: Optional[Sequence[str]]) -> List[str]:
    args = []
    for tag in tags or []:
        validate_tag(tag)
        args.extend(["--addtag", tag])
    return args


def _find_volume(runner: Runner, vg_name: str, name: str, ctx: Optional[CommandContext]) -> "LogicalVolume":
    report = get_lvm_state(runner, vg_name, ctx=ctx)
    for lv in report.lvs:
        if lv.vg_name == vg_name and lv.lv_name == name:
            return LogicalVolume(lv, runner)
    raise NotFoundError(f"logical volume {vg_name}/{name} not found")


def list_volume_groups(runner: Optional[Runner] = None, ctx: Optional[CommandContext] = None) -> List["VolumeGroup"]:
    """Return every volume group on the host."""
    runner = runner if runner is not None else LVMRunner()
    report = get_lvm_state(runner, ctx=ctx)
    return [VolumeGroup(vg, runner) for vg in report.vgs]


def find_volume_group(
    name: str, runner: Optional[Runner] = None, ctx: Optional[CommandContext] = None
) -> "VolumeGroup":
    """
    Look up a volume group by name.

    Raises:
        NotFoundError: If the volume group does not exist
        CommandError: If lvm fails for another reason
    """
    validate_name(name)
    runner = runner if runner is not None else LVMRunner()
    report = get_lvm_state(runner, name, ctx=ctx)
    for vg in report.vgs:
        if vg.vg_name == name:
            return VolumeGroup(vg, runner)
    raise NotFoundError(f"volume group {name} not found")


class VolumeGroup:
    """Snapshot of an LVM volume group."""

    def __init__(self, report: VGReport, runner: Runner):
        self._runner = runner
        self.name = report.vg_name
        self.uuid = report.vg_uuid
        self.size = report.vg_size
        self.free = report.vg_free

    def __repr__(self) -> str:
        return f"VolumeGroup(name={self.name!r}, size={self.size}, free={self.free})"

    @property
    def runner(self) -> Runner:
        return self._runner

    def refresh(self, ctx: Optional[CommandContext] = None) -> "VolumeGroup":
        """Query lvm again and return a new snapshot of this group."""
        return find_volume_group(self.name, runner=self._runner, ctx=ctx)

    def list_volumes(self, ctx: Optional[CommandContext] = None) -> List["LogicalVolume"]:
        report = get_lvm_state(self._runner, self.name, ctx=ctx)
        return [LogicalVolume(lv, self._runner) for lv in report.lvs if lv.vg_name == self.name]

    def find_volume(self, name: str, ctx: Optional[CommandContext] = None) -> "LogicalVolume":
        """
        Look up a logical volume in this group.

        Raises:
            NotFoundError: If no such volume exists
        """
        return _find_volume(self._runner, self.name, name, ctx)

    def create_volume(
        self,
        name: str,
        size: int,
        tags: Optional[Sequence[str]] = None,
        stripe: int = 0,
        stripe_size: str = "",
        lvcreate_options: Optional[Sequence[str]] = None,
        ctx: Optional[CommandContext] = None,
    ) -> "LogicalVolume":
        """
        Create a logical volume.

        Args:
            name: Logical volume name
            size: Size in bytes; a non-zero multiple of MINIMUM_SECTOR_SIZE
            tags: Tags added with --addtag
            stripe: Number of stripes, 0 for no striping
            stripe_size: Stripe size passed verbatim to -I (e.g. "4k", "4M")
            lvcreate_options: Extra lvcreate arguments, e.g. for writecache
            ctx: Logger, deadline and cancellation

        Returns:
            The created volume as reported by lvm

        Raises:
            NotMultipleOfSectorSizeError: If size is invalid; lvm is not run
            CommandError: If lvcreate fails
        """
        validate_size(size)
        validate_lv_name(name)
        if stripe < 0:
            raise ValueError("stripe count must not be negative")

        args = ["lvcreate", "-n", name, "-L", f"{size}b", "-W", "y", "-y"]
        args.extend(_tag_args(tags))
        if stripe:
            args.extend(["-i", str(stripe)])
            if stripe_size:
                args.extend(["-I", stripe_size])
        args.extend(lvcreate_options or [])
        args.append(self.name)

        self._runner.run(*args, ctx=ctx)
        _logger(ctx).info("created logical volume %s/%s size=%d", self.name, name, size)
        return self.find_volume(name, ctx=ctx)

    def remove_volume(self, name: str, ctx: Optional[CommandContext] = None) -> None:
        """
        Remove a logical volume.

        Raises:
            NotFoundError: If the volume does not exist, including when it was already removed
        """
        self.find_volume(name, ctx=ctx).remove(ctx=ctx)

    def list_pools(self, ctx: Optional[CommandContext] = None) -> List["ThinPool"]:
        return [ThinPool(lv, self) for lv in self.list_volumes(ctx=ctx) if lv.is_thin_pool]

    def find_pool(self, name: str, ctx: Optional[CommandContext] = None) -> "ThinPool":
        """
        Look up a thin pool in this group.

        Raises:
            NotFoundError: If no thin pool of that name exists
        """
        lv = self.find_volume(name, ctx=ctx)
        if not lv.is_thin_pool:
            raise NotFoundError(f"thin pool {self.name}/{name} not found")
        return ThinPool(lv, self)

    def create_pool(
        self, name: str, size: int, tags: Optional[Sequence[str]] = None, ctx: Optional[CommandContext] = None
    ) -> "ThinPool":
        """Create a thin pool of `size` bytes in this group."""
        validate_size(size)
        validate_lv_name(name)
        args = ["lvcreate", "-T", f"{self.name}/{name}", "-L", f"{size}b", "-W", "y", "-y"]
        args.extend(_tag_args(tags))
        self._runner.run(*args, ctx=ctx)
        _logger(ctx).info("created thin pool %s/%s size=%d", self.name, name, size)
        return self.find_pool(name, ctx=ctx)


@dataclass(frozen=True)
class ThinPoolUsage:
    data_percent: float
    metadata_percent: float
    size_bytes: int
    virtual_bytes: int

    @property
    def used_bytes(self) -> int:
        return int(self.size_bytes * self.data_percent / 100)


class ThinPool:
    """Thin pool inside a volume group."""

    def __init__(self, lv: "LogicalVolume", vg: VolumeGroup):
        self._lv = lv
        self._vg = vg
        self.name = lv.name
        self.vg_name = vg.name
        self.size = lv.size

    def __repr__(self) -> str:
        return f"ThinPool(name={self.vg_name}/{self.name}, size={self.size})"

    def list_volumes(self, ctx: Optional[CommandContext] = None) -> List["LogicalVolume"]:
        return [lv for lv in self._vg.list_volumes(ctx=ctx) if lv.is_thin and lv.pool == self.name]

    def find_volume(self, name: str, ctx: Optional[CommandContext] = None) -> "LogicalVolume":
        lv = self._vg.find_volume(name, ctx=ctx)
        if not lv.is_thin or lv.pool != self.name:
            raise NotFoundError(f"thin volume {self.vg_name}/{name} in pool {self.name} not found")
        return lv

    def usage(self, ctx: Optional[CommandContext] = None) -> ThinPoolUsage:
        """Current data and metadata usage plus the virtual size of all thin volumes."""
        volumes = self._vg.list_volumes(ctx=ctx)
        pool = next((lv for lv in volumes if lv.name == self.name and lv.is_thin_pool), None)
        if pool is None:
            raise NotFoundError(f"thin pool {self.vg_name}/{self.name} not found")
        virtual = sum(lv.size for lv in volumes if lv.is_thin and lv.pool == self.name)
        return ThinPoolUsage(
            data_percent=pool.data_percent or 0.0,
            metadata_percent=pool.metadata_percent or 0.0,
            size_bytes=pool.size,
            virtual_bytes=virtual,
        )

    def free_bytes(self, overprovision_ratio: float, ctx: Optional[CommandContext] = None) -> int:
        """Bytes still available for thin volumes at the given overprovision ratio."""
        if overprovision_ratio < 1.0:
            raise ValueError("overprovision ratio must be at least 1.0")
        usage = self.usage(ctx=ctx)
        return max(0, int(usage.size_bytes * overprovision_ratio) - usage.virtual_bytes)

    def create_volume(
        self,
        name: str,
        size: int,
        tags: Optional[Sequence[str]] = None,
        lvcreate_options: Optional[Sequence[str]] = None,
        ctx: Optional[CommandContext] = None,
    ) -> "LogicalVolume":
        """
        Create a thin volume of virtual size `size` bytes in this pool.

        Raises:
            NotMultipleOfSectorSizeError: If size is invalid; lvm is not run
        """
        validate_size(size)
        validate_lv_name(name)
        args = ["lvcreate", "-T", f"{self.vg_name}/{self.name}", "-n", name, "-V", f"{size}b", "-W", "y", "-y"]
        args.extend(_tag_args(tags))
        args.extend(lvcreate_options or [])
        self._vg.runner.run(*args, ctx=ctx)
        _logger(ctx).info("created thin volume %s/%s in pool %s size=%d", self.vg_name, name, self.name, size)
        return self.find_volume(name, ctx=ctx)

    def remove_volume(self, name: str, ctx: Optional[CommandContext] = None) -> None:
        self.find_volume(name, ctx=ctx).remove(ctx=ctx)


class LogicalVolume:
    """
    Snapshot of an LVM logical volume.

    Type predicates come from the first lv_attr character. After `remove()`
    the handle is dead and every further operation raises VolumeRemovedError.
    """

    def __init__(self, report: LVReport, runner: Runner):
        self._runner = runner
        self._removed = False
        self.name = report.lv_name
        self.full_name = report.lv_full_name or f"{report.vg_name}/{report.lv_name}"
        self.path = report.lv_path
        self.size = report.lv_size
        self.vg_name = report.vg_name
        self.pool = report.pool_lv or None
        self.origin = report.origin or None
        self.origin_size = report.origin_size
        self.tags = list(report.lv_tags)
        self.major = report.lv_kernel_major
        self.minor = report.lv_kernel_minor
        self.data_percent = report.data_percent
        self.metadata_percent = report.metadata_percent
        self.attr = LVAttr.parse(report.lv_attr)

    def __repr__(self) -> str:
        return f"LogicalVolume(name={self.full_name!r}, size={self.size}, attr={self.attr.raw!r})"

    @property
    def is_thin(self) -> bool:
        return self.attr.is_thin

    @property
    def is_thin_pool(self) -> bool:
        return self.attr.is_thin_pool

    @property
    def is_cached(self) -> bool:
        return self.attr.is_cached

    @property
    def is_snapshot(self) -> bool:
        return self.attr.is_snapshot or (self.is_thin and self.origin is not None)

    @property
    def removed(self) -> bool:
        return self._removed

    def _check_usable(self) -> None:
        if self._removed:
            raise VolumeRemovedError(f"logical volume {self.full_name} has been removed")

    def verify_health(self) -> None:
        """Raise VolumeHealthError if lvm reports the volume as degraded."""
        self._check_usable()
        self.attr.verify_health(self.full_name)

    def resize(self, new_size: int, ctx: Optional[CommandContext] = None) -> "LogicalVolume":
        """
        Grow the volume to `new_size` bytes.

        Returns:
            The resized volume as reported by lvm; self if the size is unchanged

        Raises:
            ValueError: If new_size is smaller than the current size
        """
        self._check_usable()
        validate_size(new_size)
        if new_size == self.size:
            return self
        if new_size < self.size:
            raise ValueError(f"shrinking {self.full_name} from {self.size} to {new_size} is not supported")
        self._runner.run("lvresize", "-L", f"{new_size}b", self.full_name, ctx=ctx)
        _logger(ctx).info("resized logical volume %s to %d", self.full_name, new_size)
        return _find_volume(self._runner, self.vg_name, self.name, ctx)

    def snapshot(
        self,
        name: str,
        size: Optional[int] = None,
        tags: Optional[Sequence[str]] = None,
        ctx: Optional[CommandContext] = None,
    ) -> "LogicalVolume":
        """
        Snapshot this volume.

        Thin volumes get a thin snapshot that is activated normally. Other
        volumes need a copy-on-write size.

        Raises:
            ValueError: If size is missing for a non-thin volume
        """
        self._check_usable()
        validate_lv_name(name)
        if self.is_thin:
            args = ["lvcreate", "-s", "-k", "n", "-n", name]
        else:
            if size is None:
                raise ValueError(f"a snapshot of non-thin volume {self.full_name} requires a size")
            validate_size(size)
            args = ["lvcreate", "-s", "-n", name, "-L", f"{size}b"]
        args.extend(_tag_args(tags))
        args.append(self.full_name)
        self._runner.run(*args, ctx=ctx)
        _logger(ctx).info("created snapshot %s/%s of %s", self.vg_name, name, self.full_name)
        return _find_volume(self._runner, self.vg_name, name, ctx)

    def activate(self, ctx: Optional[CommandContext] = None) -> None:
        self._check_usable()
        self._runner.run("lvchange", "-k", "n", "-a", "y", self.full_name, ctx=ctx)

    def remove(self, ctx: Optional[CommandContext] = None) -> None:
        """
        Remove the volume from lvm.

        Raises:
            VolumeRemovedError: If this handle was already used to remove it
            CommandError: If lvremove fails
        """
        self._check_usable()
        self._runner.run("lvremove", "-f", self.full_name, ctx=ctx)
        self._removed = True
        _logger(ctx).info("removed logical volume %s", self.full_name)

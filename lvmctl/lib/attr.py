"""
Decoding of the lv_attr string reported by lvs.

Each of the ten positions holds one character with a fixed meaning (see
lvs(8)). Every position is decoded into an Enum, so a character lvm starts
emitting in a later release raises AttributeParseError instead of being
filed under a wrong type.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Type, TypeVar

from lvmctl.lib.exceptions import AttributeParseError, VolumeHealthError

ATTR_LENGTH = 10


class VolumeType(str, Enum):
    """Position 0: volume type."""

    MIRRORED = "m"
    MIRRORED_WITHOUT_INITIAL_SYNC = "M"
    ORIGIN = "o"
    ORIGIN_WITH_MERGING_SNAPSHOT = "O"
    RAID = "r"
    RAID_WITHOUT_INITIAL_SYNC = "R"
    SNAPSHOT = "s"
    MERGING_SNAPSHOT = "S"
    PV_MOVE = "p"
    VIRTUAL = "v"
    MIRROR_OR_RAID_IMAGE = "i"
    MIRROR_OR_RAID_IMAGE_OUT_OF_SYNC = "I"
    MIRROR_LOG = "l"
    UNDER_CONVERSION = "c"
    THIN_VOLUME = "V"
    THIN_POOL = "t"
    THIN_POOL_DATA = "T"
    VDO_POOL = "d"
    VDO_POOL_DATA = "D"
    METADATA = "e"
    CACHED = "C"
    NONE = "-"


class Permissions(str, Enum):
    """Position 1."""

    WRITEABLE = "w"
    READ_ONLY = "r"
    READ_ONLY_ACTIVATION = "R"
    NONE = "-"


class AllocationPolicy(str, Enum):
    """Position 2; upper case means the allocation is locked."""

    ANYWHERE = "a"
    ANYWHERE_LOCKED = "A"
    CONTIGUOUS = "c"
    CONTIGUOUS_LOCKED = "C"
    INHERITED = "i"
    INHERITED_LOCKED = "I"
    CLING = "l"
    CLING_LOCKED = "L"
    NORMAL = "n"
    NORMAL_LOCKED = "N"
    NONE = "-"


class Minor(str, Enum):
    """Position 3."""

    FIXED = "m"
    NONE = "-"


class State(str, Enum):
    """Position 4."""

    ACTIVE = "a"
    HISTORICAL = "h"
    SUSPENDED = "s"
    INVALID_SNAPSHOT = "I"
    INVALID_SUSPENDED_SNAPSHOT = "S"
    SNAPSHOT_MERGE_FAILED = "m"
    SUSPENDED_SNAPSHOT_MERGE_FAILED = "M"
    MAPPED_DEVICE_PRESENT_WITHOUT_TABLES = "d"
    MAPPED_DEVICE_PRESENT_WITH_INACTIVE_TABLES = "i"
    THIN_POOL_CHECK_NEEDED = "c"
    SUSPENDED_THIN_POOL_CHECK_NEEDED = "C"
    UNKNOWN = "X"
    NONE = "-"


class OpenState(str, Enum):
    """Position 5."""

    OPEN = "o"
    UNKNOWN = "X"
    CLOSED = "-"


class TargetType(str, Enum):
    """Position 6."""

    CACHE = "C"
    MIRROR = "m"
    RAID = "r"
    SNAPSHOT = "s"
    THIN = "t"
    UNKNOWN = "u"
    VIRTUAL = "v"
    VDO = "d"
    NONE = "-"


class Zero(str, Enum):
    """Position 7."""

    ZERO = "z"
    NONE = "-"


class VolumeHealth(str, Enum):
    """Position 8."""

    PARTIAL = "p"
    UNKNOWN = "X"
    REFRESH_NEEDED = "r"
    MISMATCHES_EXIST = "m"
    WRITEMOSTLY = "w"
    RESHAPING = "s"
    REMOVE_AFTER_RESHAPE = "R"
    FAILED = "F"
    OUT_OF_DATA_SPACE = "D"
    METADATA_READ_ONLY = "M"
    WRITECACHE_ERROR = "E"
    OK = "-"


class SkipActivation(str, Enum):
    """Position 9."""

    SKIP = "k"
    NONE = "-"


_HEALTH_MESSAGES = {
    VolumeHealth.PARTIAL: "one or more physical volumes are missing",
    VolumeHealth.UNKNOWN: "volume health is unknown",
    VolumeHealth.REFRESH_NEEDED: "RAID volume needs a refresh",
    VolumeHealth.MISMATCHES_EXIST: "RAID volume has mismatches",
    VolumeHealth.RESHAPING: "RAID volume is reshaping",
    VolumeHealth.REMOVE_AFTER_RESHAPE: "RAID image is to be removed after reshape",
    VolumeHealth.OUT_OF_DATA_SPACE: "thin pool is out of data space",
    VolumeHealth.METADATA_READ_ONLY: "thin pool metadata is read only",
    VolumeHealth.WRITECACHE_ERROR: "writecache reported an error",
}

E = TypeVar("E", bound=Enum)


def _decode(enum_cls: Type[E], attr: str, pos: int) -> E:
    try:
        return enum_cls(attr[pos])
    except ValueError:
        raise AttributeParseError(
            f"unknown {enum_cls.__name__} flag {attr[pos]!r} at position {pos} of lv_attr {attr!r}"
        ) from None


@dataclass(frozen=True)
class LVAttr:
    """Decoded lv_attr string."""

    raw: str
    volume_type: VolumeType
    permissions: Permissions
    allocation_policy: AllocationPolicy
    minor: Minor
    state: State
    open: OpenState
    target_type: TargetType
    zero: Zero
    health: VolumeHealth
    skip_activation: SkipActivation

    @classmethod
    def parse(cls, attr: str) -> "LVAttr":
        """
        Decode an lv_attr string.

        Raises:
            AttributeParseError: If the string is too short or holds an unknown flag
        """
        attr = attr.strip()
        if len(attr) != ATTR_LENGTH:
            raise AttributeParseError(f"lv_attr {attr!r} is not exactly {ATTR_LENGTH} characters long")
        return cls(
            raw=attr,
            volume_type=_decode(VolumeType, attr, 0),
            permissions=_decode(Permissions, attr, 1),
            allocation_policy=_decode(AllocationPolicy, attr, 2),
            minor=_decode(Minor, attr, 3),
            state=_decode(State, attr, 4),
            open=_decode(OpenState, attr, 5),
            target_type=_decode(TargetType, attr, 6),
            zero=_decode(Zero, attr, 7),
            health=_decode(VolumeHealth, attr, 8),
            skip_activation=_decode(SkipActivation, attr, 9),
        )

    # Classification reads position 0 only. Writecache volumes have pool_lv
    # set to their cache volume and must not be taken for thin volumes.
    @property
    def is_thin(self) -> bool:
        return self.volume_type == VolumeType.THIN_VOLUME

    @property
    def is_thin_pool(self) -> bool:
        return self.volume_type == VolumeType.THIN_POOL

    @property
    def is_cached(self) -> bool:
        return self.volume_type == VolumeType.CACHED

    @property
    def is_snapshot(self) -> bool:
        return self.volume_type in (VolumeType.SNAPSHOT, VolumeType.MERGING_SNAPSHOT)

    @property
    def is_active(self) -> bool:
        return self.state == State.ACTIVE

    @property
    def is_open(self) -> bool:
        return self.open == OpenState.OPEN

    def verify_health(self, volume: Optional[str] = None) -> None:
        """
        Raise VolumeHealthError if the health bits report a problem.

        Write-mostly RAID legs are not an error.
        """
        if self.health in (VolumeHealth.OK, VolumeHealth.WRITEMOSTLY):
            return
        if self.health == VolumeHealth.FAILED:
            if self.volume_type == VolumeType.THIN_POOL:
                raise VolumeHealthError("thin pool has failed", volume)
            raise VolumeHealthError("thin volume has failed", volume)
        raise VolumeHealthError(_HEALTH_MESSAGES[self.health], volume)

    def __str__(self) -> str:
        return self.raw

"""
Pytest configuration and fixtures.
"""

import json
import os
import shutil
import stat
import tempfile
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest

from lvmctl.lib.command import Runner
from lvmctl.lib.config import LvmConfig
from lvmctl.lib.exceptions import CommandError, classify
from lvmctl.lib.report import fullreport_args

EXTENT_SIZE = 4 * 1024 * 1024


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external processes other than /bin/sh")
    config.addinivalue_line("markers", "integration: CLI level tests")
    config.addinivalue_line("markers", "root: needs root and a real lvm installation")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def mock_popen():
    """Mock subprocess.Popen as seen by the command module."""
    with patch("lvmctl.lib.command.subprocess.Popen") as mock:
        yield mock


@pytest.fixture
def fake_tool(temp_dir):
    """
    Write a shell script standing in for the lvm binary.

    Returns a function taking the script body and returning an LvmConfig
    whose lvm_path points at the script.
    """

    def _make(body: str) -> LvmConfig:
        path = temp_dir / "lvm"
        path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return LvmConfig(lvm_path=str(path))

    return _make


@pytest.fixture
def no_config(monkeypatch, temp_dir):
    """Point the config loader at a missing file so defaults apply."""
    monkeypatch.setenv("LVMCTL_CONFIG_PATH", str(temp_dir / "missing.conf"))
    monkeypatch.delenv("LVMCTL_CONTAINERIZED", raising=False)


class FakeStream:
    """In-memory stand-in for LVMStream; close() raises the given error."""

    def __init__(self, data: bytes = b"", error: Optional[Exception] = None):
        self._data = data
        self._pos = 0
        self._error = error
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        end = len(self._data) if size is None or size < 0 else self._pos + size
        chunk = self._data[self._pos:end]
        self._pos += len(chunk)
        return chunk

    def close(self) -> None:
        self.closed = True
        if self._error is not None:
            raise self._error

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.closed = True


def _round_up(size: int) -> int:
    return -(-size // EXTENT_SIZE) * EXTENT_SIZE


class FakeLVM(Runner):
    """
    Runner keeping volume groups and logical volumes in memory.

    Understands the subset of lvcreate/lvremove/lvresize/lvchange/fullreport
    arguments the lvm module produces and fails the way lvm does.
    """

    def __init__(self):
        self.vgs: Dict[str, Dict] = {}
        self.lvs: Dict[Tuple[str, str], Dict] = {}
        self.calls: List[List[str]] = []
        self.fail: Dict[str, CommandError] = {}
        self.report_override: Optional[bytes] = None

    # state helpers

    def add_vg(self, name: str, size: int = 10 * 1024 ** 3) -> None:
        self.vgs[name] = {"uuid": str(uuid.uuid4()), "size": size, "free": size}

    def add_lv(self, vg: str, name: str, size: int, attr: str = "-wi-a-----", **fields) -> Dict:
        size = _round_up(size)
        lv = {
            "uuid": str(uuid.uuid4()),
            "size": size,
            "attr": attr,
            "pool": "",
            "origin": "",
            "origin_size": "",
            "tags": [],
            "data_percent": "",
            "metadata_percent": "",
            "stripes": 0,
            "stripe_size": "",
            "options": [],
        }
        lv.update(fields)
        self.lvs[(vg, name)] = lv
        if not attr.startswith("V"):
            self.vgs[vg]["free"] -= size
        return lv

    def mutating_calls(self) -> List[List[str]]:
        return [c for c in self.calls if c[0] != "fullreport"]

    # Runner interface

    def run(self, *args: str, ctx=None) -> bytes:
        self.calls.append(list(args))
        cmd = args[0]
        if cmd in self.fail:
            raise self.fail[cmd]
        handler = getattr(self, "_" + cmd, None)
        if handler is None:
            raise classify(3, f"  No such command '{cmd}'.  Try 'help'.\n", args)
        handler(list(args[1:]))
        return b""

    def run_streamed(self, verbosity, *args: str, ctx=None) -> FakeStream:
        self.calls.append(list(args))
        if args[0] != "fullreport":
            return FakeStream(b"", classify(3, f"  No such command '{args[0]}'.\n", args))
        if "fullreport" in self.fail:
            return FakeStream(b"", self.fail["fullreport"])
        if self.report_override is not None:
            return FakeStream(self.report_override)
        vg_name = args[-1] if len(args) == len(fullreport_args()) + 1 else None
        if vg_name is not None and vg_name not in self.vgs:
            err = classify(
                5, f'  Volume group "{vg_name}" not found\n  Cannot process volume group {vg_name}\n', args
            )
            return FakeStream(b"", err)
        return FakeStream(self.report(vg_name))

    # report

    def _lv_row(self, vg: str, name: str, lv: Dict) -> Dict[str, str]:
        active = lv["attr"][4] == "a"
        return {
            "lv_uuid": lv["uuid"],
            "lv_name": name,
            "lv_full_name": f"{vg}/{name}",
            "lv_path": f"/dev/{vg}/{name}",
            "lv_size": str(lv["size"]),
            "lv_kernel_major": "253" if active else "-1",
            "lv_kernel_minor": str(len(self.lvs)) if active else "-1",
            "origin": lv["origin"],
            "origin_size": str(lv["origin_size"]),
            "pool_lv": lv["pool"],
            "lv_tags": ",".join(lv["tags"]),
            "lv_attr": lv["attr"],
            "vg_name": vg,
            "data_percent": lv["data_percent"],
            "metadata_percent": lv["metadata_percent"],
        }

    def report(self, vg_name: Optional[str] = None) -> bytes:
        sections = []
        for name, vg in self.vgs.items():
            if vg_name is not None and name != vg_name:
                continue
            sections.append(
                {
                    "vg": [
                        {
                            "vg_name": name,
                            "vg_uuid": vg["uuid"],
                            "vg_size": str(vg["size"]),
                            "vg_free": str(vg["free"]),
                        }
                    ],
                    "pv": [{}],
                    "lv": [self._lv_row(v, n, lv) for (v, n), lv in self.lvs.items() if v == name],
                    "pvseg": [],
                    "seg": [],
                }
            )
        return json.dumps({"report": sections}, indent=2).encode("utf-8")

    # subcommands

    def _missing_lv(self, full_name: str) -> CommandError:
        return classify(5, f'  Failed to find logical volume "{full_name}"\n', ["lv"])

    def _lookup(self, full_name: str) -> Tuple[Tuple[str, str], Dict]:
        vg, name = full_name.split("/", 1)
        if (vg, name) not in self.lvs:
            raise self._missing_lv(full_name)
        return (vg, name), self.lvs[(vg, name)]

    def _lvcreate(self, args: List[str]) -> None:
        name = None
        size = None
        virtual_size = None
        thin_target = None
        snapshot = False
        tags: List[str] = []
        stripes = 0
        stripe_size = ""
        lv_type = None
        positional = []
        it = iter(args)
        for arg in it:
            if arg == "-n":
                name = next(it)
            elif arg == "-L":
                size = int(next(it).rstrip("b"))
            elif arg == "-V":
                virtual_size = int(next(it).rstrip("b"))
            elif arg == "-T":
                thin_target = next(it)
            elif arg == "-s":
                snapshot = True
            elif arg in ("-k", "-W", "--cachesize", "--cachedevice"):
                next(it)
            elif arg == "-y":
                continue
            elif arg == "--addtag":
                tags.append(next(it))
            elif arg == "-i":
                stripes = int(next(it))
            elif arg == "-I":
                stripe_size = next(it)
                if stripe_size[-1].lower() not in "km" or not stripe_size[:-1].isdigit():
                    raise classify(3, f"  Invalid argument for --stripesize: {stripe_size}\n", args)
            elif arg == "--type":
                lv_type = next(it)
            else:
                positional.append(arg)

        if snapshot:
            (vg, origin), src = self._lookup(positional[0])
            if src["attr"].startswith("V"):
                self._create(vg, name, src["size"], "Vwi---tz--", tags, pool=src["pool"], origin=origin)
            else:
                self._create(vg, name, size, "swi-a-s---", tags, origin=origin, origin_size=src["size"])
            return

        if thin_target is not None:
            vg, pool = thin_target.split("/", 1)
            self._require_vg(vg)
            if virtual_size is not None:
                if (vg, pool) not in self.lvs:
                    raise classify(5, f'  Failed to find logical volume "{vg}/{pool}"\n', args)
                self._create(vg, name, virtual_size, "Vwi-a-tz--", tags, pool=pool, data_percent="0.00")
            else:
                self._create(
                    vg, pool, size, "twi-a-tz--", tags, data_percent="0.00", metadata_percent="10.45"
                )
            return

        vg = positional[0]
        self._require_vg(vg)
        if lv_type == "writecache":
            self._create(vg, name, size, "Cwi-a-C---", tags, pool=f"[{name}_cvol]")
        else:
            self._create(vg, name, size, "-wi-a-----", tags, stripes=stripes, stripe_size=stripe_size)

    def _require_vg(self, vg: str) -> None:
        if vg not in self.vgs:
            raise classify(5, f'  Volume group "{vg}" not found\n  Cannot process volume group {vg}\n', [vg])

    def _create(self, vg: str, name: str, size: int, attr: str, tags: List[str], **fields) -> None:
        self._require_vg(vg)
        if (vg, name) in self.lvs:
            raise classify(5, f'  Logical Volume "{name}" already exists in volume group "{vg}"\n', [name])
        if not attr.startswith("V") and _round_up(size) > self.vgs[vg]["free"]:
            raise classify(5, f'  Volume group "{vg}" has insufficient free space.\n', [name])
        self.add_lv(vg, name, size, attr, tags=list(tags), **fields)

    def _lvremove(self, args: List[str]) -> None:
        key, lv = self._lookup(args[-1])
        del self.lvs[key]
        if not lv["attr"].startswith("V"):
            self.vgs[key[0]]["free"] += lv["size"]

    def _lvresize(self, args: List[str]) -> None:
        if "-W" in args:
            raise classify(3, "  lvresize: invalid option -- 'W'\n  Error during parsing of command line.\n", args)
        key, lv = self._lookup(args[-1])
        new_size = _round_up(int(args[args.index("-L") + 1].rstrip("b")))
        self.vgs[key[0]]["free"] -= new_size - lv["size"]
        lv["size"] = new_size

    def _lvchange(self, args: List[str]) -> None:
        _, lv = self._lookup(args[-1])
        attr = list(lv["attr"])
        attr[4] = "a"
        attr[9] = "-"
        lv["attr"] = "".join(attr)


@pytest.fixture
def fake_lvm():
    """FakeLVM with one empty volume group named vg_test."""
    lvm = FakeLVM()
    lvm.add_vg("vg_test")
    return lvm


@pytest.fixture
def fake_stream():
    return FakeStream


@pytest.fixture
def require_root():
    """Skip unless running as root with lvm installed."""
    if os.geteuid() != 0 or not os.path.exists(LvmConfig().lvm_path):
        pytest.skip("needs root and an lvm installation")

"""
Configuration loader for lvmctl.

Paths to the lvm and nsenter binaries and the defaults used by the CLI are
read from an INI file instead of being hardcoded.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_CONFIG_PATH = Path("/etc/lvmctl/lvmctl.conf")

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LvmConfig:
    lvm_path: str = "/sbin/lvm"
    nsenter_path: str = "/usr/bin/nsenter"
    containerized: bool = False  # run lvm in the host namespaces of PID 1
    command_timeout: Optional[float] = None
    vg_name: str = "vg_pool_01"
    thinpool_name: str = "pool"


def _config_path() -> Path:
    env = os.environ.get("LVMCTL_CONFIG_PATH")
    if env:
        return Path(env)
    return DEFAULT_CONFIG_PATH


def _read_ini(path: Path) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path, encoding="utf-8")
    return parser


def load_config() -> LvmConfig:
    """
    Load config from `LVMCTL_CONFIG_PATH` or `/etc/lvmctl/lvmctl.conf`.

    Missing files are not an error; defaults are returned.
    `LVMCTL_CONTAINERIZED` overrides the `containerized` key.
    """
    parser = _read_ini(_config_path())
    section = parser["lvm"] if parser.has_section("lvm") else {}

    def _get(key: str, default: str) -> str:
        if isinstance(section, dict):
            return str(section.get(key, default)).strip()
        return str(section.get(key, fallback=default)).strip()

    def _get_bool(key: str, default: bool) -> bool:
        return _get(key, str(default)).lower() in _TRUE_VALUES

    def _get_timeout(key: str) -> Optional[float]:
        raw = _get(key, "0")
        try:
            value = float(raw)
        except ValueError:
            return None
        return value if value > 0 else None

    containerized = _get_bool("containerized", False)
    env = os.environ.get("LVMCTL_CONTAINERIZED")
    if env is not None:
        containerized = env.strip().lower() in _TRUE_VALUES

    return LvmConfig(
        lvm_path=_get("lvm_path", "/sbin/lvm"),
        nsenter_path=_get("nsenter_path", "/usr/bin/nsenter"),
        containerized=containerized,
        command_timeout=_get_timeout("command_timeout"),
        vg_name=_get("vg_name", "vg_pool_01"),
        thinpool_name=_get("thinpool_name", "pool"),
    )

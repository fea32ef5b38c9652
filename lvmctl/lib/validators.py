"""
Input validation functions.

Checks run before lvm is invoked, so a bad request never reaches the tool.
"""

import re

from lvmctl.lib.exceptions import NotMultipleOfSectorSizeError

MINIMUM_SECTOR_SIZE = 4096

_NAME_RE = re.compile(r"^[a-zA-Z0-9+_.][a-zA-Z0-9+_.-]*$")
_TAG_RE = re.compile(r"^[a-zA-Z0-9_+.=!:&#/][a-zA-Z0-9_+.=!:&#/-]*$")

# Suffixes lvm reserves for its internal sub-volumes.
_RESERVED_LV_SUBSTRINGS = (
    "_cdata",
    "_cmeta",
    "_corig",
    "_cpool",
    "_cvol",
    "_wcorig",
    "_mimage",
    "_mlog",
    "_pmspare",
    "_rimage",
    "_rmeta",
    "_tdata",
    "_tmeta",
    "_vdata",
    "_vorigin",
)
_RESERVED_LV_PREFIXES = ("snapshot", "pvmove")


def validate_name(name: str) -> None:
    """
    Validate a volume group or logical volume name.

    Args:
        name: Name to validate

    Raises:
        ValueError: If name is invalid
    """
    if not name:
        raise ValueError("Name cannot be empty")

    if len(name) > 127:
        raise ValueError("Name must be at most 127 characters")

    if name in (".", ".."):
        raise ValueError(f"Name {name!r} is reserved")

    if not _NAME_RE.match(name):
        raise ValueError(
            "Name must not start with a hyphen and may only contain alphanumeric, '+', '_', '.', or '-'"
        )


def validate_lv_name(name: str) -> None:
    """
    Validate a logical volume name, including lvm's reserved names.

    Raises:
        ValueError: If name is invalid
    """
    validate_name(name)
    for prefix in _RESERVED_LV_PREFIXES:
        if name.startswith(prefix):
            raise ValueError(f"Logical volume name must not start with {prefix!r}")
    for part in _RESERVED_LV_SUBSTRINGS:
        if part in name:
            raise ValueError(f"Logical volume name must not contain {part!r}")


def validate_tag(tag: str) -> None:
    """
    Validate an lvm tag.

    Raises:
        ValueError: If tag is invalid
    """
    if not tag:
        raise ValueError("Tag cannot be empty")
    if len(tag) > 1024:
        raise ValueError("Tag must be at most 1024 characters")
    if not _TAG_RE.match(tag):
        raise ValueError(f"Invalid tag {tag!r}")


def validate_size(size: int) -> None:
    """
    Validate a volume size in bytes.

    Raises:
        NotMultipleOfSectorSizeError: If size is not a positive multiple of MINIMUM_SECTOR_SIZE
    """
    if size <= 0 or size % MINIMUM_SECTOR_SIZE != 0:
        raise NotMultipleOfSectorSizeError(size, MINIMUM_SECTOR_SIZE)

"""
Exceptions raised by the LVM command layer.

Failures of the external tool are classified once, where the process exit is
observed, into either a not-found error or a generic command error. Callers
test for the not-found case with `is_not_found()` instead of matching text.
"""

from enum import Enum
from typing import Optional, Sequence, Tuple


class ErrorKind(str, Enum):
    """Classification tag of a failed LVM invocation."""

    NOT_FOUND = "not-found"
    GENERIC = "generic"


# Exit codes and stderr fragments LVM2 (2.03.x) emits when the requested
# object does not exist. An unknown subcommand exits 3 and never matches.
NOT_FOUND_SIGNATURES: Tuple[Tuple[int, str], ...] = (
    (5, "not found"),
    (5, "Failed to find logical volume"),
    (5, "Failed to find physical volume"),
)


class LVMError(Exception):
    """Base exception for LVM layer errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFoundError(LVMError, LookupError):
    """The requested volume group or logical volume does not exist."""

    pass


class CommandError(LVMError):
    """The lvm process exited non-zero."""

    kind = ErrorKind.GENERIC

    def __init__(self, exit_code: int, stderr: str, argv: Sequence[str] = ()):
        self.exit_code = exit_code
        self.stderr = stderr
        self.argv = list(argv)
        text = stderr.strip()
        message = f"exit status {exit_code}"
        if text:
            message = f"{message}: {text}"
        super().__init__(message)


class CommandNotFoundError(CommandError, NotFoundError):
    """The lvm process reported that the requested object does not exist."""

    kind = ErrorKind.NOT_FOUND


class CommandStartError(LVMError):
    """The lvm process could not be started."""

    pass


class CommandCancelledError(LVMError):
    """The invocation was aborted by the caller's context."""

    pass


class CommandTimeoutError(CommandCancelledError):
    """The invocation exceeded the context deadline."""

    pass


class NotMultipleOfSectorSizeError(LVMError, ValueError):
    """Requested size is not a non-zero multiple of the minimum sector size."""

    def __init__(self, size: int, sector_size: int):
        self.size = size
        self.sector_size = sector_size
        super().__init__(f"size {size} is not a non-zero multiple of the minimum sector size {sector_size}")


class ReportParseError(LVMError):
    """The lvm report output does not match the expected columns."""

    pass


class AttributeParseError(ReportParseError):
    """An lv_attr string could not be decoded."""

    pass


class VolumeRemovedError(LVMError):
    """Operation attempted on a logical volume handle that was removed."""

    pass


class VolumeHealthError(LVMError):
    """The lv_attr health bits report a degraded volume."""

    def __init__(self, message: str, volume: Optional[str] = None):
        self.volume = volume
        super().__init__(message if volume is None else f"{volume}: {message}")


def classify(exit_code: int, stderr: str, argv: Sequence[str] = ()) -> CommandError:
    """
    Turn the exit code and stderr of a failed lvm call into an exception.

    Args:
        exit_code: Process exit status
        stderr: Captured diagnostic text
        argv: Command line that was executed

    Returns:
        CommandNotFoundError when the output matches a not-found signature,
        CommandError otherwise
    """
    for code, needle in NOT_FOUND_SIGNATURES:
        if exit_code == code and needle in stderr:
            return CommandNotFoundError(exit_code, stderr, argv)
    return CommandError(exit_code, stderr, argv)


def _chain(err: Optional[BaseException]):
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def as_command_error(err: Optional[BaseException]) -> Optional[CommandError]:
    """Return the CommandError that `err` is or wraps via `raise ... from`, if any."""
    for item in _chain(err):
        if isinstance(item, CommandError):
            return item
    return None


def is_not_found(err: Optional[BaseException]) -> bool:
    """True if `err`, or an exception it wraps, is a not-found error."""
    return any(isinstance(item, NotFoundError) for item in _chain(err))

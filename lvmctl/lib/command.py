"""
Invocation of the external lvm tool.

Two entry points are provided: `call_lvm()` runs a command to completion and
returns its stdout, `call_lvm_streamed()` returns an `LVMStream` as soon as
the process is started. The exit status of a streamed command is only known
once the stream is closed, so `LVMStream.close()` is where a failing command
raises its `CommandError`.
"""

import logging
import os
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional, Sequence

from lvmctl.lib.config import LvmConfig, load_config
from lvmctl.lib.exceptions import (
    CommandCancelledError,
    CommandStartError,
    CommandTimeoutError,
    classify,
)

log = logging.getLogger(__name__)

NSENTER_ARGS = ["-m", "-u", "-i", "-n", "-p", "-t", "1"]


class Verbosity(int, Enum):
    """Log level used for the argv of a call; has no effect on execution."""

    STATE_NO_UPDATE = logging.DEBUG
    STATE_UPDATE = logging.INFO


class CommandContext:
    """
    Per-operation logger, deadline and cancellation flag.

    A context may be shared by several calls. Cancelling it kills every
    process still running under it.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, timeout: Optional[float] = None):
        self.logger = logger if logger is not None else log
        self.deadline = None if timeout is None else time.monotonic() + timeout
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def error(self) -> Optional[CommandCancelledError]:
        """Return the error describing why the context is done, or None."""
        if self._cancelled:
            return CommandCancelledError("context cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return CommandTimeoutError("context deadline exceeded")
        return None

    def check(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def after_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run `callback` when the context is cancelled.

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)

                def stop() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return stop
        callback()
        return lambda: None


def build_argv(args: Sequence[str], config: LvmConfig) -> List[str]:
    """Return the full command line for an lvm subcommand."""
    argv = [config.lvm_path] + list(args)
    if config.containerized:
        argv = [config.nsenter_path] + NSENTER_ARGS + argv
    return argv


class LVMStream:
    """
    Readable stdout of a running lvm process.

    Reads never report the exit status. `close()` waits for the process and
    raises `CommandError` if it exited non-zero, or `CommandCancelledError`
    if the context aborted it.
    """

    def __init__(self, proc: subprocess.Popen, argv: List[str], ctx: CommandContext):
        self._proc = proc
        self._argv = argv
        self._ctx = ctx
        self._lock = threading.Lock()
        self._aborted: Optional[CommandCancelledError] = None
        self._error: Optional[Exception] = None
        self._closed = False
        self._stderr_chunks: List[bytes] = []

        self._stderr_reader = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_reader.start()

        self._stop_cancel = ctx.after_cancel(lambda: self._abort(CommandCancelledError("context cancelled")))
        self._timer: Optional[threading.Timer] = None
        remaining = ctx.remaining()
        if remaining is not None:
            self._timer = threading.Timer(
                remaining, self._abort, args=(CommandTimeoutError("context deadline exceeded"),)
            )
            self._timer.daemon = True
            self._timer.start()

    @property
    def argv(self) -> List[str]:
        return list(self._argv)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stderr(self) -> str:
        """Diagnostic output collected so far."""
        return b"".join(self._stderr_chunks).decode("utf-8", errors="replace")

    def _drain_stderr(self) -> None:
        for chunk in iter(lambda: self._proc.stderr.read(4096), b""):
            self._stderr_chunks.append(chunk)

    def _abort(self, err: CommandCancelledError) -> None:
        with self._lock:
            if self._proc.poll() is not None or self._aborted is not None:
                return
            self._aborted = err
            self._proc.kill()

    def _check_read(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed stream")

    def _after_read(self) -> None:
        if self._aborted is not None:
            raise self._aborted

    def read(self, size: int = -1) -> bytes:
        self._check_read()
        data = self._proc.stdout.read(size)
        self._after_read()
        return data

    def readline(self, size: int = -1) -> bytes:
        self._check_read()
        data = self._proc.stdout.readline(size)
        self._after_read()
        return data

    def __iter__(self):
        return iter(self.readline, b"")

    def close(self) -> None:
        """
        Wait for the process to exit and release its resources.

        Raises:
            CommandError: If the process exited non-zero
            CommandCancelledError: If the context aborted the process
        """
        self._reap()
        if self._error is not None:
            raise self._error

    @property
    def error(self) -> Optional[Exception]:
        """Outcome of the process once closed; None while running or on success."""
        return self._error

    def _reap(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._proc.stdout.close()
            returncode = self._proc.wait()
            self._stderr_reader.join()
            self._proc.stderr.close()
        finally:
            self._stop_cancel()
            if self._timer is not None:
                self._timer.cancel()

        if self._aborted is not None:
            self._error = self._aborted
        elif returncode != 0:
            self._error = classify(returncode, self.stderr, self._argv)

    def __enter__(self) -> "LVMStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            # The exception in flight wins; the exit status stays on `error`.
            self._reap()


def call_lvm_streamed(
    verbosity: Verbosity,
    *args: str,
    ctx: Optional[CommandContext] = None,
    config: Optional[LvmConfig] = None,
) -> LVMStream:
    """
    Start an lvm command and return its stdout as a stream.

    Args:
        verbosity: Log level hint for the argv log record
        *args: lvm subcommand and its arguments
        ctx: Logger, deadline and cancellation for the call
        config: Binary paths; loaded from disk if omitted

    Returns:
        LVMStream; the caller must close it to learn the exit status

    Raises:
        CommandCancelledError: If the context is already done
        CommandStartError: If the process cannot be started
    """
    config = config if config is not None else load_config()
    ctx = ctx if ctx is not None else CommandContext(timeout=config.command_timeout)
    argv = build_argv(args, config)

    ctx.check()
    ctx.logger.log(int(verbosity), "invoking LVM command %s", argv)

    env = dict(os.environ)
    env["LC_ALL"] = "C"
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            close_fds=True,
            env=env,
        )
    except OSError as e:
        raise CommandStartError(f"failed to start {argv[0]}: {e}") from e

    return LVMStream(proc, argv, ctx)


def call_lvm(*args: str, ctx: Optional[CommandContext] = None, config: Optional[LvmConfig] = None) -> bytes:
    """
    Run an lvm command to completion.

    The argv is logged once before execution; on success every stdout line
    is logged at DEBUG level.

    Returns:
        Captured stdout

    Raises:
        CommandError: If lvm exits non-zero
        CommandCancelledError: If the context aborts the call
        CommandStartError: If the process cannot be started
    """
    config = config if config is not None else load_config()
    ctx = ctx if ctx is not None else CommandContext(timeout=config.command_timeout)
    with call_lvm_streamed(Verbosity.STATE_UPDATE, *args, ctx=ctx, config=config) as stream:
        output = stream.read()
    for line in output.decode("utf-8", errors="replace").splitlines():
        ctx.logger.debug(line)
    return output


class Runner(ABC):
    """Capability to run lvm commands, buffered or streamed."""

    @abstractmethod
    def run(self, *args: str, ctx: Optional[CommandContext] = None) -> bytes:
        """Run a command to completion and return stdout."""
        pass

    @abstractmethod
    def run_streamed(self, verbosity: Verbosity, *args: str, ctx: Optional[CommandContext] = None) -> LVMStream:
        """Start a command and return its stdout stream."""
        pass


class LVMRunner(Runner):
    """Runner executing the real lvm binary."""

    def __init__(self, config: Optional[LvmConfig] = None):
        self.config = config if config is not None else load_config()

    def run(self, *args: str, ctx: Optional[CommandContext] = None) -> bytes:
        return call_lvm(*args, ctx=ctx, config=self.config)

    def run_streamed(self, verbosity: Verbosity, *args: str, ctx: Optional[CommandContext] = None) -> LVMStream:
        return call_lvm_streamed(verbosity, *args, ctx=ctx, config=self.config)

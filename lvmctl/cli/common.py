"""
Helpers shared by the CLI command groups.
"""

import logging
from typing import NoReturn

import typer

from lvmctl.lib.command import CommandContext, LVMRunner
from lvmctl.lib.config import LvmConfig
from lvmctl.lib.exceptions import as_command_error, is_not_found

log = logging.getLogger("lvmctl.cli")

EXIT_FAILURE = 1
EXIT_NOT_FOUND = 2


def make_runner(cfg: LvmConfig) -> LVMRunner:
    return LVMRunner(cfg)


def make_context(cfg: LvmConfig) -> CommandContext:
    return CommandContext(logger=log, timeout=cfg.command_timeout)


def fail(action: str, e: Exception) -> NoReturn:
    """Report an error and exit; not-found conditions exit with EXIT_NOT_FOUND."""
    typer.echo(f"Error {action}: {e}", err=True)
    cmd_err = as_command_error(e)
    if cmd_err is not None:
        log.debug("failed command: %s", cmd_err.argv)
    raise typer.Exit(EXIT_NOT_FOUND if is_not_found(e) else EXIT_FAILURE)

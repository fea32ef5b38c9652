#!/usr/bin/env python3
"""
Main CLI entry point using Typer.
"""

import logging
import sys

import typer

from lvmctl.cli.commands import lv, vg

app = typer.Typer(
    name="lvmctl",
    help="LVM volume group and logical volume control tool",
    add_completion=False,
)

# Add command groups
app.add_typer(vg.app, name="vg", help="Volume group commands")
app.add_typer(lv.app, name="lv", help="Logical volume commands")


@app.callback()
def setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log lvm invocations and output"),
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    """Main entry point."""
    try:
        app()
        return 0
    except KeyboardInterrupt:
        typer.echo("\nOperation cancelled by user", err=True)
        return 130
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

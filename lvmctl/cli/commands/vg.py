"""
Volume group commands.
"""

from typing import Optional

import typer

from lvmctl.cli.common import fail, make_context, make_runner
from lvmctl.lib.config import load_config
from lvmctl.lib.lvm import find_volume_group, list_volume_groups

app = typer.Typer(help="Volume group commands")


@app.command()
def show(
    name: Optional[str] = typer.Argument(None, help="Volume group name (default: from config)"),
):
    """
    Show a volume group.
    """
    try:
        cfg = load_config()
        vg = find_volume_group(name or cfg.vg_name, runner=make_runner(cfg), ctx=make_context(cfg))
        typer.echo(f"{vg.name} uuid={vg.uuid} size={vg.size} free={vg.free}")
    except Exception as e:
        fail("showing volume group", e)


@app.command("list")
def list_groups():
    """
    List volume groups.
    """
    try:
        cfg = load_config()
        vgs = list_volume_groups(runner=make_runner(cfg), ctx=make_context(cfg))
        if not vgs:
            typer.echo("No volume groups found")
            return
        for vg in vgs:
            typer.echo(f"{vg.name} size={vg.size} free={vg.free}")
    except Exception as e:
        fail("listing volume groups", e)

"""
Logical volume commands.
"""

from typing import List, Optional

import typer

from lvmctl.cli.common import fail, make_context, make_runner
from lvmctl.lib.config import load_config
from lvmctl.lib.lvm import LogicalVolume, find_volume_group

app = typer.Typer(help="Logical volume commands")


def _describe(lv: LogicalVolume) -> str:
    kind = "thin" if lv.is_thin else "cached" if lv.is_cached else lv.attr.volume_type.name.lower()
    tags = ",".join(lv.tags) or "-"
    return f"{lv.full_name} size={lv.size} type={kind} attr={lv.attr.raw} tags={tags}"


@app.command()
def create(
    name: str = typer.Argument(..., help="Logical volume name"),
    size: int = typer.Option(..., "--size", help="Size in bytes (multiple of 4096)"),
    vg_name: Optional[str] = typer.Option(None, "--vg", help="Volume group (default: from config)"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", help="Tag to add (repeatable)"),
    stripes: int = typer.Option(0, "--stripes", help="Number of stripes (0: no striping)"),
    stripe_size: str = typer.Option("", "--stripe-size", help="Stripe size, e.g. 4k or 4M"),
    thin: bool = typer.Option(False, "--thin/--no-thin", help="Create a thin volume in the configured pool"),
    options: Optional[List[str]] = typer.Option(
        None, "--lvcreate-option", help="Extra lvcreate argument (repeatable, e.g. --lvcreate-option=--type)"
    ),
):
    """
    Create a logical volume.
    """
    try:
        cfg = load_config()
        ctx = make_context(cfg)
        vg = find_volume_group(vg_name or cfg.vg_name, runner=make_runner(cfg), ctx=ctx)

        typer.echo(f"Creating logical volume: {vg.name}/{name}")
        if thin:
            pool = vg.find_pool(cfg.thinpool_name, ctx=ctx)
            lv = pool.create_volume(name, size, tags=tags, lvcreate_options=options, ctx=ctx)
        else:
            lv = vg.create_volume(
                name,
                size,
                tags=tags,
                stripe=stripes,
                stripe_size=stripe_size,
                lvcreate_options=options,
                ctx=ctx,
            )
        typer.echo(f"  {_describe(lv)}")
        typer.echo(f"Logical volume {lv.full_name} created successfully")
    except Exception as e:
        fail("creating logical volume", e)


@app.command()
def resize(
    name: str = typer.Argument(..., help="Logical volume name"),
    new_size: int = typer.Option(..., "--new-size", help="New size in bytes (multiple of 4096)"),
    vg_name: Optional[str] = typer.Option(None, "--vg", help="Volume group (default: from config)"),
):
    """
    Grow a logical volume.
    """
    try:
        cfg = load_config()
        ctx = make_context(cfg)
        vg = find_volume_group(vg_name or cfg.vg_name, runner=make_runner(cfg), ctx=ctx)

        typer.echo(f"Resizing logical volume: {vg.name}/{name}")
        lv = vg.find_volume(name, ctx=ctx).resize(new_size, ctx=ctx)
        typer.echo(f"Logical volume {lv.full_name} resized to {lv.size} bytes")
    except Exception as e:
        fail("resizing logical volume", e)


@app.command()
def delete(
    name: str = typer.Argument(..., help="Logical volume name"),
    vg_name: Optional[str] = typer.Option(None, "--vg", help="Volume group (default: from config)"),
):
    """
    Remove a logical volume.

    Removing a volume that does not exist is an error (exit code 2).
    """
    try:
        cfg = load_config()
        ctx = make_context(cfg)
        vg = find_volume_group(vg_name or cfg.vg_name, runner=make_runner(cfg), ctx=ctx)

        typer.echo(f"Deleting logical volume: {vg.name}/{name}")
        vg.remove_volume(name, ctx=ctx)
        typer.echo(f"Logical volume {vg.name}/{name} deleted successfully")
    except Exception as e:
        fail("deleting logical volume", e)


@app.command()
def show(
    name: str = typer.Argument(..., help="Logical volume name"),
    vg_name: Optional[str] = typer.Option(None, "--vg", help="Volume group (default: from config)"),
):
    """
    Show a logical volume.
    """
    try:
        cfg = load_config()
        ctx = make_context(cfg)
        vg = find_volume_group(vg_name or cfg.vg_name, runner=make_runner(cfg), ctx=ctx)
        typer.echo(_describe(vg.find_volume(name, ctx=ctx)))
    except Exception as e:
        fail("showing logical volume", e)


@app.command("list")
def list_volumes(
    vg_name: Optional[str] = typer.Option(None, "--vg", help="Volume group (default: from config)"),
):
    """
    List logical volumes.
    """
    try:
        cfg = load_config()
        ctx = make_context(cfg)
        vg = find_volume_group(vg_name or cfg.vg_name, runner=make_runner(cfg), ctx=ctx)
        volumes = vg.list_volumes(ctx=ctx)
        if not volumes:
            typer.echo("No logical volumes found")
            return
        for lv in volumes:
            typer.echo(_describe(lv))
    except Exception as e:
        fail("listing logical volumes", e)

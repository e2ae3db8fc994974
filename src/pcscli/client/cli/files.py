"""Remote file and account commands for the pcscli CLI.

Commands:
- list (alias ls): List a remote directory
- remove (aliases rm, del): Delete a remote file or directory
- quota (aliases df, du): Show disk usage
- whoami: Show the authorized account
"""

from __future__ import annotations

import sys

import click

from pcscli.client.cli.config import open_client
from pcscli.client.cli.progress import format_size
from pcscli.client.errors import PcsError

UNIT_DIVISORS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}


@click.command("list")
@click.argument("remote", default="/")
@click.option("--recursive", is_flag=True, help="List every file below REMOTE.")
@click.pass_context
def list_cmd(ctx: click.Context, remote: str, recursive: bool) -> None:
    """List the remote directory REMOTE (default: /)."""
    client = open_client(ctx)
    try:
        entries = client.list_dir_recursive(remote) if recursive else client.list_dir(remote)
    except PcsError as e:
        click.echo(f"Error: Cannot list {remote}: {e}", err=True)
        sys.exit(1)

    if not entries:
        click.echo("Directory is empty.")
        return
    for entry in entries:
        kind = "d" if entry.is_dir else "-"
        click.echo(
            f"{kind}\t{entry.size}\t{entry.server_filename}\t{entry.path}\t{entry.fs_id}"
        )


@click.command()
@click.argument("remote")
@click.option("--recursive", is_flag=True, help="Allow deleting a non-empty directory.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def remove(ctx: click.Context, remote: str, recursive: bool, yes: bool) -> None:
    """Delete the remote file or directory REMOTE."""
    client = open_client(ctx)

    try:
        children = client.list_dir(remote)
    except PcsError:
        children = []
    if children and not recursive:
        click.echo(
            f"Error: {remote} is a non-empty directory, use --recursive to delete it",
            err=True,
        )
        sys.exit(1)

    if not yes and not click.confirm(f"Delete {remote}?"):
        click.echo("Aborted.")
        return

    try:
        client.delete([remote], is_async=False)
    except PcsError as e:
        click.echo(f"Error: Cannot delete {remote}: {e}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {remote}")


@click.command()
@click.option("-H", "--human", "unit", flag_value="human", help="Binary units (KiB, MiB, ...).")
@click.option("-k", "--kb", "unit", flag_value="KB", help="Kilobytes.")
@click.option("-m", "--mb", "unit", flag_value="MB", help="Megabytes.")
@click.option("-g", "--gb", "unit", flag_value="GB", help="Gigabytes.")
@click.pass_context
def quota(ctx: click.Context, unit: str | None) -> None:
    """Show total, used, free and idle space."""
    client = open_client(ctx)
    try:
        disk = client.get_quota(check_free=True, check_expire=True)
    except PcsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    def fmt(value: int) -> str:
        if unit == "human":
            return format_size(value)
        if unit is None or unit == "B":
            return f"{value} B"
        return f"{value / UNIT_DIVISORS[unit]:.3f} {unit}"

    click.echo(
        f"Total: {fmt(disk.total)}, Used: {fmt(disk.used)}, "
        f"Free: {fmt(disk.free)}, Idle: {fmt(disk.idle)}"
    )


@click.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the authorized account and its transfer limits."""
    client = open_client(ctx)
    try:
        info = client.get_user_info()
    except PcsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"{info.baidu_name} ({info.netdisk_name}), {info.vip_label}")
    click.echo(
        f"Block size: {format_size(info.block_size)}, "
        f"max file size: {format_size(info.max_file_size)}"
    )

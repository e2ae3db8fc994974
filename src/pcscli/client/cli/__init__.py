"""Command-line interface for pcscli.

This module provides the main CLI entry point and assembles all commands.

Commands:
- auth (login): Authorize with device-code OAuth
- upload (up, tx): Upload a local file or directory
- download (dl, rx): Download a remote file or directory
- backup: Upload local files missing from a remote directory
- list (ls): List a remote directory
- remove (rm, del): Delete a remote file or directory
- quota (df, du): Show disk usage
- whoami: Show the authorized account
"""

from __future__ import annotations

import logging

import click

from pcscli.client.cli.auth import auth
from pcscli.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    open_client,
    save_config,
)
from pcscli.client.cli.files import list_cmd, quota, remove, whoami
from pcscli.client.cli.progress import setup_logging
from pcscli.client.cli.transfer import backup, download, upload

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(package_name="pcscli")
@click.option(
    "-c",
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Config file (default: ~/.pcscli/config.json).",
)
@click.option("--debug", is_flag=True, help="Write debug messages to the log file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, debug: bool) -> None:
    """pcscli - Transfer files to and from a Baidu Netdisk account."""
    log_file = setup_logging(debug)
    logger.info(f"pcscli {ctx.invoked_subcommand}, log file {log_file}")
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = get_config_file(config_path)
    ctx.obj["debug"] = debug


COMMAND_ALIASES: dict[click.Command, list[str]] = {
    auth: ["auth", "login"],
    upload: ["upload", "up", "tx"],
    download: ["download", "dl", "rx"],
    backup: ["backup"],
    list_cmd: ["list", "ls"],
    remove: ["remove", "rm", "del"],
    quota: ["quota", "df", "du"],
    whoami: ["whoami"],
}

for command, names in COMMAND_ALIASES.items():
    for name in names:
        cli.add_command(command, name=name)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "load_config",
    "open_client",
    "save_config",
]

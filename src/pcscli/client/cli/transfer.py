"""Transfer commands for the pcscli CLI.

Commands:
- upload (aliases up, tx): Upload a local file or directory
- download (aliases dl, rx): Download a remote file or directory
- backup: Upload the local files that are missing remotely
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from pcscli.client.cli.config import (
    get_local_root,
    get_remote_root,
    load_config,
    open_client,
)
from pcscli.client.cli.progress import ProgressLine
from pcscli.client.errors import PcsError
from pcscli.client.scanner import backup_remote_path, remote_path_for, scan_files
from pcscli.client.transfer import FileDownloader, FileUploader, TransferError
from pcscli.core.types import ConflictPolicy

if TYPE_CHECKING:
    from pcscli.client.api import PcsClient

logger = logging.getLogger(__name__)

POLICY_CHOICES = [p.value for p in ConflictPolicy]


def _remove_source(local_file: Path) -> None:
    try:
        local_file.unlink()
    except OSError as e:
        logger.error(f"Failed to delete local file {local_file}: {e}")
        click.echo(f"  Warning: uploaded but could not delete {local_file}", err=True)
    else:
        logger.info(f"Deleted local file {local_file}")


def _make_uploader(client: PcsClient) -> FileUploader:
    """Uploader sized to the account tier; exits 1 if the account is unreachable."""
    try:
        account = client.account
    except PcsError as e:
        click.echo(f"Error: Cannot read account info: {e}", err=True)
        sys.exit(1)
    return FileUploader(client, account.block_size, account.max_file_size)


def _upload_all(
    uploader: FileUploader,
    jobs: list[tuple[Path, str]],
    policy: ConflictPolicy,
    remove_source: bool,
    no_slice: bool,
    no_progress: bool,
) -> list[str]:
    """Upload ``(local, remote)`` pairs, returning the failed local paths."""
    failed: list[str] = []
    for local_file, remote_path in jobs:
        line = ProgressLine(f"{local_file} -> {remote_path}", enabled=not no_progress)
        uploader_for_file = uploader.with_progress(line)
        try:
            if no_slice:
                uploader_for_file.upload_small_file(local_file, remote_path, policy)
            else:
                uploader_for_file.upload_file(local_file, remote_path, policy)
        except (PcsError, TransferError) as e:
            line.clear()
            logger.error(f"Upload failed: {local_file} -> {remote_path}: {e}")
            click.echo(f"  ✗ {local_file}: {e}", err=True)
            failed.append(str(local_file))
            continue
        line.finish(f"  ↑ {local_file} -> {remote_path}")
        if remove_source:
            _remove_source(local_file)
    return failed


@click.command()
@click.option("-l", "--local", "local", default=None, help="Local file or directory.")
@click.option("-r", "--remote", "remote", default=None, help="Remote directory (default: config remote_root).")
@click.option(
    "--policy",
    type=click.Choice(POLICY_CHOICES),
    default=ConflictPolicy.OVERWRITE.value,
    show_default=True,
    help="What to do when the remote file exists.",
)
@click.option("--remove-source", is_flag=True, help="Delete each local file after it is uploaded.")
@click.option("-K", "--include-prefix", is_flag=True, help="Keep the full local path under the remote directory.")
@click.option("--no-slice", is_flag=True, help="Upload in one request (lands under /apps/<app_name>/).")
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.pass_context
def upload(
    ctx: click.Context,
    local: str | None,
    remote: str | None,
    policy: str,
    remove_source: bool,
    include_prefix: bool,
    no_slice: bool,
    no_progress: bool,
) -> None:
    """Upload a local file or directory to the netdisk.

    Directories are uploaded recursively; hidden files are skipped.
    """
    config = load_config(ctx.obj["config_file"])
    local_root = Path(local).expanduser() if local else get_local_root(config)
    remote_root = remote or get_remote_root(config)

    if not local_root.exists():
        click.echo(f"Error: {local_root} does not exist", err=True)
        sys.exit(1)
    files = scan_files(local_root)
    if not files:
        click.echo("No files to upload.")
        return

    client = open_client(ctx)
    uploader = _make_uploader(client)
    jobs = [
        (f, remote_path_for(f, local_root, remote_root, include_prefix)) for f in files
    ]

    click.echo(f"Uploading {local_root} -> {remote_root} ({len(jobs)} files)")
    failed = _upload_all(
        uploader, jobs, ConflictPolicy(policy), remove_source, no_slice, no_progress
    )

    click.echo(f"\nUpload complete: {len(jobs) - len(failed)} uploaded, {len(failed)} failed")
    if failed:
        sys.exit(1)


@click.command()
@click.argument("remote")
@click.argument("local", required=False)
@click.option("--recursive", is_flag=True, help="Download every file of a remote directory.")
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.pass_context
def download(
    ctx: click.Context,
    remote: str,
    local: str | None,
    recursive: bool,
    no_progress: bool,
) -> None:
    """Download REMOTE into the LOCAL directory (default: current directory)."""
    client = open_client(ctx)
    local_dir = Path(local).expanduser() if local else Path(".")
    line = ProgressLine(f"{remote} -> {local_dir}", enabled=not no_progress)
    downloader = FileDownloader(client, progress_callback=line)

    try:
        report = downloader.download(remote, local_dir, recursive=recursive)
    except PcsError as e:
        line.clear()
        click.echo(f"Error: Download of {remote} failed: {e}", err=True)
        sys.exit(1)
    line.clear()

    for path in report.succeeded:
        click.echo(f"  ↓ {path}")
    for path, reason in report.failed.items():
        click.echo(f"  ✗ {path}: {reason}", err=True)
    if report.total > 1 or report.failed:
        click.echo(
            f"\nDownload complete: {len(report.succeeded)} downloaded, "
            f"{len(report.failed)} failed"
        )
    if not report.ok:
        sys.exit(1)


@click.command()
@click.option("-l", "--local", "local", default=None, help="Local directory to back up.")
@click.option("-r", "--remote", "remote", default=None, help="Remote backup directory.")
@click.option("--remove-source", is_flag=True, help="Delete each local file after it is uploaded.")
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.pass_context
def backup(
    ctx: click.Context,
    local: str | None,
    remote: str | None,
    remove_source: bool,
    no_progress: bool,
) -> None:
    """Upload the local files that do not exist in the remote directory yet."""
    config = load_config(ctx.obj["config_file"])
    local_root = Path(local).expanduser() if local else get_local_root(config)
    remote_root = remote or get_remote_root(config)

    if not local_root.exists():
        click.echo(f"Error: {local_root} does not exist", err=True)
        sys.exit(1)
    files = scan_files(local_root)
    if not files:
        click.echo("No local files to back up.")
        return

    client = open_client(ctx)
    click.echo(f"Checking remote directory {remote_root}...")
    try:
        existing = {entry.path for entry in client.list_dir_recursive(remote_root)}
    except PcsError as e:
        click.echo(f"Error: Cannot list {remote_root}: {e}", err=True)
        sys.exit(1)

    jobs = []
    for f in files:
        remote_path = backup_remote_path(f, local_root, remote_root)
        if remote_path in existing:
            logger.info(f"Skipping existing {remote_path}")
            continue
        jobs.append((f, remote_path))
    skipped = len(files) - len(jobs)

    uploader = _make_uploader(client)
    failed = _upload_all(
        uploader, jobs, ConflictPolicy.OVERWRITE, remove_source, False, no_progress
    )

    click.echo(
        f"\nBackup complete: {len(files)} files, {len(jobs) - len(failed)} uploaded, "
        f"{skipped} skipped, {len(failed)} failed"
    )
    if failed:
        sys.exit(1)

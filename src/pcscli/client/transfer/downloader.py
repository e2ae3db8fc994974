"""File download from the netdisk.

This module provides:
- FileDownloader: Resolves remote paths and streams files to disk

A single file download fails fast. A directory download is best-effort:
every entry is attempted and the outcome of each is recorded in a
DownloadReport.
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import TYPE_CHECKING

from pcscli.client.errors import ClientError, PcsError, UnknownError
from pcscli.client.transfer.progress import ProgressCallback
from pcscli.client.transfer.streamer import stream_to_file
from pcscli.client.transfer.types import DownloadReport

if TYPE_CHECKING:
    from pcscli.client.api import PcsClient, RemoteEntry

logger = logging.getLogger(__name__)


def local_target(remote_path: str, local_dir: Path | None = None) -> Path:
    """Local destination of ``remote_path``: its last component in ``local_dir``."""
    name = posixpath.basename(remote_path.rstrip("/"))
    if not name:
        raise ClientError(f"Cannot derive a local file name from {remote_path!r}")
    return Path(local_dir or ".") / name


class FileDownloader:
    """Downloads files through the client's shared connection pool."""

    def __init__(
        self,
        client: PcsClient,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            client: API client used for every call.
            progress_callback: Optional callback for progress updates.
        """
        self._client = client
        self._progress_callback = progress_callback

    def resolve(self, remote: str) -> str | list[RemoteEntry]:
        """Decide whether ``remote`` is a directory or a single file.

        A path whose listing is non-empty is a directory; an empty or failed
        listing means the path is treated as a file.

        Returns:
            The entries of the directory, or ``remote`` itself.
        """
        try:
            entries = self._client.list_dir(remote)
        except PcsError as e:
            logger.debug(f"Listing {remote} failed ({e}), treating it as a file")
            return remote
        if not entries:
            return remote
        return entries

    def download_by_id(self, fs_id: int, local_path: Path) -> int:
        """Download the file with id ``fs_id`` into ``local_path``.

        Returns:
            Number of bytes written.

        Raises:
            UnknownError: If the server returns no download link.
            NetworkError: On transport failure.
            ServerError: If the server rejects a call.
            ClientError: If the destination cannot be written.
        """
        metas = self._client.get_file_metas([fs_id], dlink=True)
        if not metas or not metas[0].dlink:
            raise UnknownError(f"No download link for file id {fs_id}")

        logger.info(f"Downloading {metas[0].filename} ({fs_id}) -> {local_path}")
        with self._client.stream_download(metas[0].dlink) as response:
            written = stream_to_file(response, local_path, self._progress_callback)
        logger.info(f"Downloaded {local_path}: {written} bytes")
        return written

    def download_file(self, remote_path: str, local_path: Path) -> int:
        """Download one remote file by path.

        Raises:
            UnknownError: If the path is a directory or cannot be found.
        """
        fs_id = self._client.get_fs_id(remote_path)
        return self.download_by_id(fs_id, local_path)

    def download_entries(
        self,
        entries: list[RemoteEntry],
        local_dir: Path,
    ) -> DownloadReport:
        """Download the files among ``entries`` into ``local_dir``.

        Subdirectories are skipped. A failed entry is logged and recorded,
        and the next one is attempted.
        """
        report = DownloadReport()
        for entry in entries:
            if entry.is_dir:
                logger.debug(f"Skipping directory {entry.path}")
                continue
            target = Path(local_dir) / entry.server_filename
            try:
                self.download_by_id(entry.fs_id, target)
            except PcsError as e:
                logger.error(f"Failed to download {entry.path}: {e}")
                report.failed[entry.path] = str(e)
            else:
                report.succeeded.append(entry.path)
        return report

    def download(
        self,
        remote: str,
        local_dir: Path | None = None,
        recursive: bool = False,
    ) -> DownloadReport:
        """Download a remote file or the files of a remote directory.

        Args:
            remote: Remote file or directory path.
            local_dir: Local directory (default: current directory).
            recursive: Required to download a directory.

        Returns:
            Report of every attempted item.

        Raises:
            ClientError: If ``remote`` is a directory and recursive is False.
            PcsError: If a single-file download fails.
        """
        local_dir = Path(local_dir or ".")
        resolved = self.resolve(remote)

        if isinstance(resolved, str):
            self.download_file(resolved, local_target(resolved, local_dir))
            return DownloadReport(succeeded=[resolved])

        if not recursive:
            raise ClientError(f"{remote} is a directory, use --recursive to download it")

        try:
            local_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ClientError(f"Cannot create {local_dir}: {e}") from e
        report = self.download_entries(resolved, local_dir)
        logger.info(
            f"Downloaded {len(report.succeeded)}/{report.total} files of {remote}"
        )
        return report

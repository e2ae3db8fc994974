"""File upload through the sliced upload protocol.

This module provides:
- UploadTask: Phase tracker of one sliced upload (prepare, blocks, merge)
- FileUploader: Uploads local files, sliced or in a single request

A sliced upload runs three phases against the server:
1. precreate: announce size and block digests, get an upload id
2. superfile2: send every block, in order, collecting server digests
3. create: merge the blocks into the final file

The merge is only attempted once every block has been accepted. Blocks are
sent one at a time over the client's shared connection pool.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pcscli.client.errors import ClientError
from pcscli.client.transfer.progress import ProgressCallback, ProgressCounter
from pcscli.client.transfer.retry import retry_with_backoff
from pcscli.client.transfer.streamer import BlockReader
from pcscli.client.transfer.types import TransferStateError, UploadCancelledError
from pcscli.core.slicing import BlockRange, SliceManifest, build_manifest
from pcscli.core.types import ConflictPolicy, TransferPhase

if TYPE_CHECKING:
    from pcscli.client.api import PcsClient, RemoteFile, UploadSession

logger = logging.getLogger(__name__)


@dataclass
class UploadTask:
    """State of one sliced upload.

    Phases only move forward: IDLE -> PREPARED -> BLOCKS_UPLOADED -> MERGED.
    Any failure moves the task to FAILED, from which nothing proceeds.
    """

    manifest: SliceManifest
    remote_path: str
    policy: ConflictPolicy
    phase: TransferPhase = TransferPhase.IDLE
    session: UploadSession | None = None
    server: str | None = None
    block_digests: list[str] = field(default_factory=list)

    def advance(self, expected: TransferPhase, new: TransferPhase) -> None:
        """Move from ``expected`` to ``new``.

        Raises:
            TransferStateError: If the task is not in ``expected``.
        """
        if self.phase is not expected:
            raise TransferStateError(self.phase, expected)
        self.phase = new

    def fail(self) -> None:
        self.phase = TransferPhase.FAILED

    @property
    def pending_blocks(self) -> set[int]:
        """Block indices the server reported as still missing."""
        if self.session is None:
            return set()
        return set(self.session.block_list)


class FileUploader:
    """Uploads local files to the netdisk.

    One uploader can be reused for many files; each call builds its own
    manifest, session and progress counter.
    """

    def __init__(
        self,
        client: PcsClient,
        block_size: int,
        max_file_size: int,
        progress_callback: ProgressCallback | None = None,
        max_block_retries: int = 0,
        skip_uploaded_blocks: bool = False,
    ) -> None:
        """Initialize the uploader.

        Args:
            client: API client used for every call.
            block_size: Block size of the account tier.
            max_file_size: Largest file the account tier accepts.
            progress_callback: Optional callback for progress updates.
            max_block_retries: Extra attempts for a failed block (0 = none).
            skip_uploaded_blocks: Do not send blocks the server reports as
                already present after precreate.
        """
        self._client = client
        self._block_size = block_size
        self._max_file_size = max_file_size
        self._progress_callback = progress_callback
        self._max_block_retries = max_block_retries
        self._skip_uploaded_blocks = skip_uploaded_blocks

    def with_progress(self, progress_callback: ProgressCallback | None) -> FileUploader:
        """Copy of this uploader reporting to ``progress_callback``."""
        return FileUploader(
            self._client,
            self._block_size,
            self._max_file_size,
            progress_callback=progress_callback,
            max_block_retries=self._max_block_retries,
            skip_uploaded_blocks=self._skip_uploaded_blocks,
        )

    def _validate(self, local_path: Path) -> int:
        if not local_path.exists():
            raise ClientError(f"File not found: {local_path}")
        if not local_path.is_file():
            raise ClientError(f"Not a regular file: {local_path}")
        size = local_path.stat().st_size
        if size == 0:
            raise ClientError(f"Refusing to upload empty file: {local_path}")
        if size > self._max_file_size:
            raise ClientError(
                f"{local_path} is {size} bytes, above the account limit "
                f"of {self._max_file_size} bytes"
            )
        return size

    def upload_file(
        self,
        local_path: Path,
        remote_path: str,
        policy: ConflictPolicy = ConflictPolicy.OVERWRITE,
        cancel_check: Callable[[], bool] | None = None,
    ) -> RemoteFile:
        """Upload a file with the sliced upload protocol.

        Args:
            local_path: Local file.
            remote_path: Absolute destination path on the netdisk.
            policy: What to do when the destination exists.
            cancel_check: Optional function returning True to stop the
                upload before the next block.

        Returns:
            Metadata of the created remote file.

        Raises:
            ClientError: If the file is missing, empty, too large or
                unreadable.
            UploadCancelledError: If cancel_check asked to stop.
            NetworkError: On transport failure.
            ServerError: If the server rejects a call. No merge is attempted
                after a failed block.
        """
        local_path = Path(local_path)
        self._validate(local_path)

        try:
            manifest = build_manifest(local_path, self._block_size)
        except OSError as e:
            raise ClientError(f"Cannot read {local_path}: {e}") from e

        task = UploadTask(manifest=manifest, remote_path=remote_path, policy=policy)
        logger.info(
            f"Uploading {local_path} -> {remote_path}: {manifest.size} bytes, "
            f"{manifest.block_count} blocks of {manifest.block_size}"
        )

        try:
            self._prepare(task)
            self._upload_blocks(task, cancel_check)
            remote_file = self._merge(task)
        except Exception:
            task.fail()
            raise

        logger.info(f"Uploaded {remote_file.path} (fs_id {remote_file.fs_id})")
        return remote_file

    def _prepare(self, task: UploadTask) -> None:
        task.session = self._client.precreate(task.remote_path, task.manifest, task.policy)
        target = self._client.locate_upload(task.session)
        task.server = target.select(self._client.config.file_server_url)
        task.advance(TransferPhase.IDLE, TransferPhase.PREPARED)
        logger.info(
            f"Prepared upload {task.session.upload_id} for {task.session.path}, "
            f"server {task.server}"
        )

    def _upload_blocks(
        self,
        task: UploadTask,
        cancel_check: Callable[[], bool] | None,
    ) -> None:
        if task.phase is not TransferPhase.PREPARED:
            raise TransferStateError(task.phase, TransferPhase.PREPARED)

        manifest = task.manifest
        counter = ProgressCounter(self._progress_callback, manifest.size)
        pending = task.pending_blocks
        total = manifest.block_count

        for block in manifest.iter_blocks():
            if cancel_check and cancel_check():
                logger.info(f"Upload cancelled at block {block.index + 1}/{total}")
                raise UploadCancelledError(
                    f"Upload of {task.remote_path} cancelled at block "
                    f"{block.index + 1}/{total}"
                )

            if self._skip_uploaded_blocks and block.index not in pending:
                counter.start_unit(block.index, block.length, block.offset)
                counter.add(block.length)
                task.block_digests.append(manifest.block_list[block.index])
                logger.debug(f"Block {block.index + 1}/{total} already on server, skipped")
                continue

            digest = retry_with_backoff(
                lambda block=block: self._send_block(task, block, counter),
                max_retries=self._max_block_retries,
            )
            if digest != manifest.block_list[block.index]:
                logger.debug(
                    f"Server digest {digest} differs from local "
                    f"{manifest.block_list[block.index]} for block {block.index}"
                )
            task.block_digests.append(digest)
            logger.info(f"Uploaded block {block.index + 1}/{total}")

        counter.finish()
        task.advance(TransferPhase.PREPARED, TransferPhase.BLOCKS_UPLOADED)

    def _send_block(
        self,
        task: UploadTask,
        block: BlockRange,
        counter: ProgressCounter,
    ) -> str:
        assert task.session is not None and task.server is not None
        counter.start_unit(block.index, block.length, block.offset)
        with BlockReader(task.manifest.path, block.offset, block.length, counter) as reader:
            return self._client.upload_block(task.session, task.server, block.index, reader)

    def _merge(self, task: UploadTask) -> RemoteFile:
        if task.phase is not TransferPhase.BLOCKS_UPLOADED:
            raise TransferStateError(task.phase, TransferPhase.BLOCKS_UPLOADED)
        if len(task.block_digests) != task.manifest.block_count:
            raise TransferStateError(task.phase, TransferPhase.BLOCKS_UPLOADED)

        assert task.session is not None
        remote_file = self._client.create_file(
            task.session, task.manifest, task.block_digests, task.policy
        )
        task.advance(TransferPhase.BLOCKS_UPLOADED, TransferPhase.MERGED)
        return remote_file

    def upload_small_file(
        self,
        local_path: Path,
        remote_path: str,
        policy: ConflictPolicy = ConflictPolicy.OVERWRITE,
    ) -> RemoteFile:
        """Upload a file in one request, without slicing.

        The server only accepts this under the application directory, so
        the file lands in ``/apps/<app_name>/`` + ``remote_path``.

        Raises:
            ClientError: If the file is missing, empty, too large or
                unreadable.
            NetworkError: On transport failure.
            ServerError: If the server rejects the upload.
        """
        local_path = Path(local_path)
        size = self._validate(local_path)
        counter = ProgressCounter(self._progress_callback, size)
        counter.start_unit(0, size, 0)

        logger.info(f"Uploading {local_path} -> {remote_path} in one request ({size} bytes)")
        with BlockReader(local_path, 0, size, counter) as reader:
            remote_file = self._client.upload_single(reader, remote_path, policy)
        counter.finish()

        logger.info(f"Uploaded {remote_file.path} (fs_id {remote_file.fs_id})")
        return remote_file

"""Tests for the sliced upload orchestrator."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO
from unittest.mock import MagicMock, patch

import pytest

from pcscli.client.api import PcsClient, RemoteFile, UploadSession, UploadTarget
from pcscli.client.errors import ClientError, NetworkError, ServerError
from pcscli.client.transfer.progress import ProgressEvent
from pcscli.client.transfer.types import TransferStateError, UploadCancelledError
from pcscli.client.transfer.uploader import FileUploader, UploadTask
from pcscli.core.config import ApiConfig
from pcscli.core.slicing import build_manifest
from pcscli.core.types import ConflictPolicy, TransferPhase

BLOCK_SIZE = 4
DATA = b"0123456789"  # three blocks: 4 + 4 + 2


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def drain(stream: BinaryIO) -> bytes:
    chunks = []
    while chunk := stream.read():
        chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def local_file(tmp_path: Path) -> Path:
    path = tmp_path / "data.bin"
    path.write_bytes(DATA)
    return path


@pytest.fixture
def mock_client() -> MagicMock:
    """PcsClient double whose upload_block consumes the stream."""
    client = MagicMock(spec=PcsClient)
    client.config = ApiConfig()
    client.precreate.return_value = UploadSession(
        path="/remote/data.bin", upload_id="up-1", return_type=1, block_list=[0, 1, 2]
    )
    client.locate_upload.return_value = UploadTarget(servers=["https://c3.test"])
    client.sent_blocks = []

    def upload_block(
        session: UploadSession,
        server: str,
        part_index: int,
        stream: BinaryIO,
        filename: str | None = None,
    ) -> str:
        data = drain(stream)
        client.sent_blocks.append((part_index, data))
        return md5(data)

    client.upload_block.side_effect = upload_block
    client.create_file.return_value = RemoteFile(
        fs_id=99, path="/remote/data.bin", size=len(DATA), ctime=0, mtime=0
    )
    return client


def make_uploader(client: MagicMock, **kwargs) -> FileUploader:  # type: ignore[no-untyped-def]
    return FileUploader(client, BLOCK_SIZE, max_file_size=1024, **kwargs)


class TestUploadFile:
    """Tests for FileUploader.upload_file."""

    def test_upload_success(self, mock_client: MagicMock, local_file: Path) -> None:
        """Should prepare, send every block in order, then merge."""
        result = make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        assert result.fs_id == 99
        mock_client.precreate.assert_called_once()
        remote_path, manifest, policy = mock_client.precreate.call_args.args
        assert remote_path == "/remote/data.bin"
        assert manifest.block_count == 3
        assert policy is ConflictPolicy.OVERWRITE
        mock_client.locate_upload.assert_called_once()

        assert mock_client.sent_blocks == [(0, b"0123"), (1, b"4567"), (2, b"89")]
        for call in mock_client.upload_block.call_args_list:
            assert call.args[1] == "https://c3.test"

        session, merge_manifest, digests, merge_policy = mock_client.create_file.call_args.args
        assert session.upload_id == "up-1"
        assert digests == [md5(b"0123"), md5(b"4567"), md5(b"89")]
        assert merge_policy is ConflictPolicy.OVERWRITE

    def test_server_digests_used_for_merge(self, mock_client: MagicMock, local_file: Path) -> None:
        """The merge carries the digests returned by the server."""
        mock_client.upload_block.side_effect = lambda s, srv, i, stream, filename=None: (
            drain(stream) and f"server-{i}"
        )

        make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        digests = mock_client.create_file.call_args.args[2]
        assert digests == ["server-0", "server-1", "server-2"]

    def test_same_policy_for_prepare_and_merge(
        self, mock_client: MagicMock, local_file: Path
    ) -> None:
        """The conflict policy is sent to both precreate and create."""
        make_uploader(mock_client).upload_file(
            local_file, "/remote/data.bin", ConflictPolicy.RENAME
        )

        assert mock_client.precreate.call_args.args[2] is ConflictPolicy.RENAME
        assert mock_client.create_file.call_args.args[3] is ConflictPolicy.RENAME

    def test_fallback_server(self, mock_client: MagicMock, local_file: Path) -> None:
        """Without upload servers the default file host is used."""
        mock_client.locate_upload.return_value = UploadTarget()

        make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        assert mock_client.upload_block.call_args.args[1] == "https://d.pcs.baidu.com"

    def test_progress(self, mock_client: MagicMock, local_file: Path) -> None:
        """Progress is monotonic and ends at the file size."""
        events: list[ProgressEvent] = []

        make_uploader(mock_client, progress_callback=events.append).upload_file(
            local_file, "/remote/data.bin"
        )

        totals = [e.transferred for e in events]
        assert totals == sorted(totals)
        assert totals[-1] == len(DATA)
        assert all(e.total_bytes == len(DATA) for e in events)
        for event in events:
            assert event.completed_bytes == event.unit_index * BLOCK_SIZE

    def test_block_failure_skips_merge(self, mock_client: MagicMock, local_file: Path) -> None:
        """A failed block stops the upload and no merge is attempted."""
        original = mock_client.upload_block.side_effect

        def fail_second(session, server, index, stream, filename=None):  # type: ignore[no-untyped-def]
            if index == 1:
                raise ServerError("", errno=31363)
            return original(session, server, index, stream, filename)

        mock_client.upload_block.side_effect = fail_second

        with pytest.raises(ServerError):
            make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        assert [i for i, _ in mock_client.sent_blocks] == [0]
        mock_client.create_file.assert_not_called()

    def test_precreate_failure(self, mock_client: MagicMock, local_file: Path) -> None:
        """A failed prepare sends no block."""
        mock_client.precreate.side_effect = NetworkError("timed out")

        with pytest.raises(NetworkError):
            make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        mock_client.upload_block.assert_not_called()
        mock_client.create_file.assert_not_called()

    def test_empty_file_rejected(self, mock_client: MagicMock, tmp_path: Path) -> None:
        """An empty file is refused before any network call."""
        empty = tmp_path / "empty.bin"
        empty.write_bytes(b"")

        with pytest.raises(ClientError):
            make_uploader(mock_client).upload_file(empty, "/remote/empty.bin")

        mock_client.precreate.assert_not_called()

    def test_missing_file(self, mock_client: MagicMock, tmp_path: Path) -> None:
        """A missing file raises ClientError."""
        with pytest.raises(ClientError):
            make_uploader(mock_client).upload_file(tmp_path / "nope", "/remote/nope")
        mock_client.precreate.assert_not_called()

    def test_directory_rejected(self, mock_client: MagicMock, tmp_path: Path) -> None:
        """A directory is not a file."""
        with pytest.raises(ClientError):
            make_uploader(mock_client).upload_file(tmp_path, "/remote/dir")

    def test_too_large(self, mock_client: MagicMock, local_file: Path) -> None:
        """Files above the account limit are refused."""
        uploader = FileUploader(mock_client, BLOCK_SIZE, max_file_size=5)

        with pytest.raises(ClientError):
            uploader.upload_file(local_file, "/remote/data.bin")
        mock_client.precreate.assert_not_called()

    def test_cancel_between_blocks(self, mock_client: MagicMock, local_file: Path) -> None:
        """Cancellation is checked before each block."""
        checks = iter([False, True])

        with pytest.raises(UploadCancelledError):
            make_uploader(mock_client).upload_file(
                local_file, "/remote/data.bin", cancel_check=lambda: next(checks)
            )

        assert [i for i, _ in mock_client.sent_blocks] == [0]
        mock_client.create_file.assert_not_called()

    def test_no_retry_by_default(self, mock_client: MagicMock, local_file: Path) -> None:
        """Without max_block_retries a failed block is not re-sent."""
        mock_client.upload_block.side_effect = NetworkError("reset")

        with pytest.raises(NetworkError):
            make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        assert mock_client.upload_block.call_count == 1

    def test_retry_resumes_failed_block(self, mock_client: MagicMock, local_file: Path) -> None:
        """A retried block is re-sent alone, without rebuilding the manifest."""
        original = mock_client.upload_block.side_effect
        failures = {1: 1}

        def flaky(session, server, index, stream, filename=None):  # type: ignore[no-untyped-def]
            if failures.get(index):
                failures[index] -= 1
                drain(stream)
                raise NetworkError("reset")
            return original(session, server, index, stream, filename)

        mock_client.upload_block.side_effect = flaky
        events: list[ProgressEvent] = []

        with (
            patch("pcscli.client.transfer.uploader.build_manifest", wraps=build_manifest) as spy,
            patch("pcscli.client.transfer.retry.time.sleep") as sleep,
        ):
            make_uploader(
                mock_client, max_block_retries=2, progress_callback=events.append
            ).upload_file(local_file, "/remote/data.bin")

        assert spy.call_count == 1
        sleep.assert_called_once()
        assert [c.args[2] for c in mock_client.upload_block.call_args_list] == [0, 1, 1, 2]
        mock_client.precreate.assert_called_once()
        mock_client.create_file.assert_called_once()
        totals = [e.transferred for e in events]
        assert totals == sorted(totals)

    def test_pending_blocks_ignored_by_default(
        self, mock_client: MagicMock, local_file: Path
    ) -> None:
        """Every block is sent even if the server reports some as present."""
        mock_client.precreate.return_value.block_list = [1]

        make_uploader(mock_client).upload_file(local_file, "/remote/data.bin")

        assert [i for i, _ in mock_client.sent_blocks] == [0, 1, 2]

    def test_skip_uploaded_blocks(self, mock_client: MagicMock, local_file: Path) -> None:
        """With the flag only pending blocks are sent."""
        mock_client.precreate.return_value.block_list = [1]
        events: list[ProgressEvent] = []

        make_uploader(
            mock_client, skip_uploaded_blocks=True, progress_callback=events.append
        ).upload_file(local_file, "/remote/data.bin")

        assert [i for i, _ in mock_client.sent_blocks] == [1]
        digests = mock_client.create_file.call_args.args[2]
        assert digests == [md5(b"0123"), md5(b"4567"), md5(b"89")]
        assert events[-1].transferred == len(DATA)


class TestUploadSmallFile:
    """Tests for FileUploader.upload_small_file."""

    def test_single_request(self, mock_client: MagicMock, local_file: Path) -> None:
        """The whole file is sent in one call."""
        sent = {}

        def upload_single(stream, remote_path, policy, filename="file_0"):  # type: ignore[no-untyped-def]
            sent["data"] = drain(stream)
            return RemoteFile(fs_id=5, path=f"/apps/x{remote_path}", size=10, ctime=0, mtime=0)

        mock_client.upload_single.side_effect = upload_single
        events: list[ProgressEvent] = []

        result = make_uploader(mock_client, progress_callback=events.append).upload_small_file(
            local_file, "/notes/data.bin", ConflictPolicy.FAIL
        )

        assert sent["data"] == DATA
        assert mock_client.upload_single.call_args.args[1:] == (
            "/notes/data.bin",
            ConflictPolicy.FAIL,
        )
        assert result.fs_id == 5
        assert events[-1].transferred == len(DATA)
        mock_client.precreate.assert_not_called()

    def test_empty_file_rejected(self, mock_client: MagicMock, tmp_path: Path) -> None:
        """Empty files are refused here too."""
        empty = tmp_path / "empty.bin"
        empty.write_bytes(b"")

        with pytest.raises(ClientError):
            make_uploader(mock_client).upload_small_file(empty, "/e")
        mock_client.upload_single.assert_not_called()


class TestUploadTask:
    """Tests for the UploadTask phase tracker."""

    def make_task(self, local_file: Path) -> UploadTask:
        return UploadTask(
            manifest=build_manifest(local_file, BLOCK_SIZE),
            remote_path="/remote/data.bin",
            policy=ConflictPolicy.OVERWRITE,
        )

    def test_forward_transitions(self, local_file: Path) -> None:
        """Phases advance in order."""
        task = self.make_task(local_file)
        task.advance(TransferPhase.IDLE, TransferPhase.PREPARED)
        task.advance(TransferPhase.PREPARED, TransferPhase.BLOCKS_UPLOADED)
        task.advance(TransferPhase.BLOCKS_UPLOADED, TransferPhase.MERGED)
        assert task.phase is TransferPhase.MERGED

    def test_illegal_transition(self, local_file: Path) -> None:
        """Skipping a phase raises TransferStateError."""
        task = self.make_task(local_file)
        with pytest.raises(TransferStateError):
            task.advance(TransferPhase.BLOCKS_UPLOADED, TransferPhase.MERGED)

    def test_failed_is_terminal(self, local_file: Path) -> None:
        """Nothing proceeds from FAILED."""
        task = self.make_task(local_file)
        task.fail()
        with pytest.raises(TransferStateError):
            task.advance(TransferPhase.IDLE, TransferPhase.PREPARED)

    def test_merge_requires_all_blocks(self, mock_client: MagicMock, local_file: Path) -> None:
        """Merging before the block phase is a programming error."""
        uploader = make_uploader(mock_client)
        task = self.make_task(local_file)
        task.advance(TransferPhase.IDLE, TransferPhase.PREPARED)

        with pytest.raises(TransferStateError):
            uploader._merge(task)
        mock_client.create_file.assert_not_called()


class TestWithProgress:
    """Tests for FileUploader.with_progress."""

    def test_copy_keeps_settings(self, mock_client: MagicMock, local_file: Path) -> None:
        """The copy reports to the new callback with the same settings."""
        events: list[ProgressEvent] = []
        base = make_uploader(mock_client, skip_uploaded_blocks=True)
        mock_client.precreate.return_value.block_list = []

        base.with_progress(events.append).upload_file(local_file, "/remote/data.bin")

        assert mock_client.sent_blocks == []
        assert events[-1].transferred == len(DATA)

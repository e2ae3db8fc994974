"""File transfer engine.

Architecture:
    SliceManifest → FileUploader → precreate / superfile2 / create
    FileDownloader → filemetas → streamed GET → local file

Components:
- **FileUploader**: Sliced (or single-request) upload of one local file
- **FileDownloader**: Single-file and directory downloads
- **BlockReader**: File-like window over one block, fed to the HTTP layer
- **ProgressCounter**: Turns bytes on the wire into ProgressEvents
"""

from pcscli.client.transfer.downloader import FileDownloader, local_target
from pcscli.client.transfer.progress import ProgressCallback, ProgressCounter, ProgressEvent
from pcscli.client.transfer.retry import retry_with_backoff
from pcscli.client.transfer.streamer import BlockReader, stream_to_file
from pcscli.client.transfer.types import (
    DownloadReport,
    TransferError,
    TransferStateError,
    UploadCancelledError,
    UploadError,
)
from pcscli.client.transfer.uploader import FileUploader, UploadTask

__all__ = [
    # Orchestrators
    "FileDownloader",
    "FileUploader",
    "UploadTask",
    "local_target",
    # Streaming
    "BlockReader",
    "stream_to_file",
    # Progress
    "ProgressCallback",
    "ProgressCounter",
    "ProgressEvent",
    # Retry
    "retry_with_backoff",
    # Types
    "DownloadReport",
    "TransferError",
    "TransferStateError",
    "UploadCancelledError",
    "UploadError",
]

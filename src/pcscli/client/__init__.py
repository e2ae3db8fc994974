"""Client module - HTTP API, transfers, authorization and CLI."""

from pcscli.client.api import (
    AccountInfo,
    DiskQuota,
    FileMeta,
    PcsClient,
    RemoteEntry,
    RemoteFile,
    UploadSession,
    UploadTarget,
)
from pcscli.client.errors import (
    ClientError,
    ErrorKind,
    NetworkError,
    PcsError,
    ServerError,
    UnknownError,
)

__all__ = [
    # API client
    "AccountInfo",
    "DiskQuota",
    "FileMeta",
    "PcsClient",
    "RemoteEntry",
    "RemoteFile",
    "UploadSession",
    "UploadTarget",
    # Errors
    "ClientError",
    "ErrorKind",
    "NetworkError",
    "PcsError",
    "ServerError",
    "UnknownError",
]

"""Error types for the netdisk client.

Every failure surfaced by the client is a PcsError carrying its kind:
- ClientError: bad local input, local I/O failure, bad arguments
- NetworkError: transport failure (connection, timeout, TLS)
- ServerError: the API answered with a non-zero errno
- UnknownError: application-level lookup failure (file or link not found)
"""

from __future__ import annotations

from enum import Enum

# https://pan.baidu.com/union/doc/okumlx17r
ERRNO_MESSAGES: dict[int, str] = {
    2: "Invalid parameter",
    6: "User data access not allowed",
    10: "Transferred file already exists",
    11: "Share sent by yourself",
    12: "Batch transfer failed",
    111: "Access token expired",
    255: "Too many files to transfer",
    2131: "Share does not exist",
    31023: "Invalid parameter",
    31024: "Upload permission not granted",
    31034: "Request rate limit hit",
    31061: "File already exists",
    31064: "Upload path not permitted",
    31190: "File does not exist",
    31299: "First block is smaller than 4MB",
    31363: "Block missing",
    31365: "Total file size exceeds limit",
    -31066: "File does not exist",
    -1: "Entitlement expired",
    -3: "File does not exist",
    -6: "Authentication failed",
    -7: "File or directory access denied",
    -8: "File or directory already exists",
    -9: "File or directory does not exist",
    -10: "Insufficient storage (cloud quota full)",
}


class ErrorKind(str, Enum):
    """Category of a client failure."""

    CLIENT = "client"
    NETWORK = "network"
    SERVER = "server"
    UNKNOWN = "unknown"


def translate_errno(message: str, errno: int | None) -> str:
    """Return a human message for a server errno.

    The table is only consulted when the server sent no message of its own;
    unmapped codes keep the raw message.
    """
    if message.strip() or errno is None:
        return message
    return ERRNO_MESSAGES.get(errno, message)


class PcsError(Exception):
    """Base exception for netdisk client errors."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, errno: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errno = errno

    def __str__(self) -> str:
        return f"{self.kind.value.capitalize()} Error: {self.message}"


class ClientError(PcsError):
    """Bad local input or local I/O failure."""

    kind = ErrorKind.CLIENT


class NetworkError(PcsError):
    """Transport-level failure."""

    kind = ErrorKind.NETWORK


class ServerError(PcsError):
    """The API rejected the request."""

    kind = ErrorKind.SERVER

    def __init__(
        self,
        message: str,
        errno: int | None = None,
        raw: str | None = None,
    ) -> None:
        super().__init__(message, errno)
        self.raw = raw

    def __str__(self) -> str:
        text = translate_errno(self.message, self.errno) or self.raw or "Server error"
        if self.errno is not None:
            return f"{text} (errno {self.errno})"
        return text


class UnknownError(PcsError):
    """Fallback, e.g. a remote file that could not be resolved."""

    kind = ErrorKind.UNKNOWN

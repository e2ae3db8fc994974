"""Byte streaming between local files and HTTP bodies.

This module provides:
- BlockReader: Read-only file-like window over one block of a local file
- stream_to_file: Write a streamed HTTP response body to a local file

Neither side ever holds more than one chunk in memory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from types import TracebackType

import httpx

from pcscli.client.errors import ClientError, NetworkError
from pcscli.client.transfer.progress import ProgressCallback, ProgressCounter

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class BlockReader:
    """File-like view of ``[offset, offset + length)`` of a local file.

    httpx renders a multipart file field by calling ``seek(0)`` and then
    ``read`` until EOF; the body length is taken from ``seek(0, SEEK_END)``.
    Every chunk read is reported to the progress counter, and a rewind
    restarts the counter for the current unit.
    """

    def __init__(
        self,
        path: Path,
        offset: int,
        length: int,
        counter: ProgressCounter | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Open the window.

        Args:
            path: Local file.
            offset: Start of the window in the file.
            length: Number of bytes in the window.
            counter: Progress counter of the transfer, if any.
            chunk_size: Largest read handed to the HTTP layer.

        Raises:
            ClientError: If the file cannot be opened.
        """
        self._path = Path(path)
        self._offset = offset
        self._length = length
        self._counter = counter
        self._chunk_size = chunk_size
        self._pos = 0
        try:
            self._file = open(self._path, "rb")
            self._file.seek(offset)
        except OSError as e:
            raise ClientError(f"Cannot open {self._path}: {e}") from e

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def length(self) -> int:
        """Size of the window in bytes."""
        return self._length

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self._pos + offset
        elif whence == os.SEEK_END:
            target = self._length + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")
        target = max(0, min(self._length, target))

        # Rewinding to the start recounts the unit. Before the first read the
        # unit count is still 0, so measuring the length changes nothing.
        if target == 0 and whence == os.SEEK_SET and self._pos > 0 and self._counter:
            self._counter.rewind_unit()
        self._pos = target
        self._file.seek(self._offset + target)
        return self._pos

    def read(self, size: int | None = -1) -> bytes:
        remaining = self._length - self._pos
        if remaining <= 0:
            return b""
        if size is None or size < 0:
            size = self._chunk_size
        size = min(size, self._chunk_size, remaining)

        try:
            data = self._file.read(size)
        except OSError as e:
            raise ClientError(f"Cannot read {self._path}: {e}") from e
        if not data:
            raise ClientError(
                f"{self._path} ended at byte {self._offset + self._pos}, "
                f"expected {self._offset + self._length} (file changed?)"
            )

        self._pos += len(data)
        if self._counter:
            self._counter.add(len(data))
        return data

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> BlockReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def stream_to_file(
    response: httpx.Response,
    local_path: Path,
    progress: ProgressCallback | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Copy a streamed response body into ``local_path``.

    The destination is created (or truncated) only here, i.e. after the
    response headers arrived with a successful status. A transfer that
    breaks midway leaves the partial file in place.

    Args:
        response: Open streamed response.
        local_path: Destination file.
        progress: Optional callback, one event per chunk written. The total
            is the Content-Length, or 0 when the server sent none.
        chunk_size: Read size for the response body.

    Returns:
        Number of bytes written.

    Raises:
        ClientError: If the destination cannot be written.
        NetworkError: If the connection drops mid-body.
    """
    local_path = Path(local_path)
    try:
        total = int(response.headers.get("Content-Length", 0))
    except ValueError:
        total = 0

    counter = ProgressCounter(progress, total)
    counter.start_unit(0, total, 0)

    written = 0
    try:
        with open(local_path, "wb") as f:
            for chunk in response.iter_bytes(chunk_size):
                f.write(chunk)
                written += len(chunk)
                counter.add(len(chunk))
    except httpx.RequestError as e:
        logger.warning(f"Download of {local_path} broke after {written} bytes: {e}")
        raise NetworkError(str(e) or type(e).__name__) from e
    except OSError as e:
        raise ClientError(f"Cannot write {local_path}: {e}") from e

    counter.finish()
    logger.debug(f"Wrote {written} bytes to {local_path}")
    return written

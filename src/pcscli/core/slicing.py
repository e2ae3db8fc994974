"""Fixed-size slicing of local files for sliced uploads.

This module builds the content-addressed description of a file that drives
the precreate / superfile2 / create protocol:
- content_md5: MD5 of the whole file
- slice_md5: MD5 of the leading 256 KB
- block_list: MD5 of every fixed-size block, in file order
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

# Size of the leading segment the server uses for a quick consistency check
LEAD_SLICE_SIZE = 256 * 1024


class SliceError(OSError):
    """The file could not be read completely while slicing."""


@dataclass(frozen=True)
class BlockRange:
    """Byte range of one block inside a file."""

    index: int
    offset: int
    length: int

    @property
    def end(self) -> int:
        """Offset one past the last byte of the block."""
        return self.offset + self.length


@dataclass(frozen=True)
class SliceManifest:
    """Digest description of a local file, built once per upload attempt."""

    path: Path
    size: int
    block_size: int
    content_md5: str
    slice_md5: str
    block_list: tuple[str, ...]
    ctime: int
    mtime: int

    @property
    def block_count(self) -> int:
        """Number of blocks in the manifest."""
        return len(self.block_list)

    def block_range(self, index: int) -> BlockRange:
        """Return the byte range of block ``index``.

        Raises:
            IndexError: If the index is outside the manifest.
        """
        if not 0 <= index < self.block_count:
            raise IndexError(f"Block {index} out of range (0..{self.block_count - 1})")
        offset = index * self.block_size
        return BlockRange(
            index=index,
            offset=offset,
            length=min(self.block_size, self.size - offset),
        )

    def iter_blocks(self) -> Iterator[BlockRange]:
        """Yield every block range in ascending order."""
        for index in range(self.block_count):
            yield self.block_range(index)


def get_block_count(size: int, block_size: int) -> int:
    """Return ``ceil(size / block_size)``, or 0 when block_size is 0."""
    if block_size <= 0:
        return 0
    return -(-size // block_size)


def compute_block_ranges(size: int, block_size: int) -> list[BlockRange]:
    """Split ``size`` bytes into contiguous fixed-size block ranges.

    The last block holds the remainder, or a full block when ``size`` is a
    multiple of ``block_size``.
    """
    ranges = []
    count = get_block_count(size, block_size)
    for index in range(count):
        offset = index * block_size
        ranges.append(BlockRange(index, offset, min(block_size, size - offset)))
    return ranges


def _read_exact(f: BinaryIO, length: int) -> bytes:
    data = f.read(length)
    if len(data) != length:
        raise SliceError(
            f"Short read: expected {length} bytes, got {len(data)} (file changed?)"
        )
    return data


def build_manifest(path: Path, block_size: int) -> SliceManifest:
    """Read a file once and compute its slice manifest.

    The lead segment is read and hashed first, then the file is rewound and
    every block is fed into both the running whole-file hash and its own
    block hash. Building twice on an unchanged file gives identical digests.

    Args:
        path: Local file to slice.
        block_size: Block size of the account tier, in bytes.

    Returns:
        The manifest. A zero-length file has no blocks and the digests of
        an empty buffer.

    Raises:
        OSError: If the file cannot be opened or read. No partial manifest
            is returned.
    """
    path = Path(path)
    with open(path, "rb") as f:
        stat = path.stat()
        size = stat.st_size

        lead = _read_exact(f, min(LEAD_SLICE_SIZE, size))
        slice_md5 = hashlib.md5(lead).hexdigest()

        f.seek(0)

        file_hasher = hashlib.md5()
        block_list = []
        for block in compute_block_ranges(size, block_size):
            data = _read_exact(f, block.length)
            file_hasher.update(data)
            block_list.append(hashlib.md5(data).hexdigest())

    return SliceManifest(
        path=path,
        size=size,
        block_size=block_size,
        content_md5=file_hasher.hexdigest(),
        slice_md5=slice_md5,
        block_list=tuple(block_list),
        ctime=int(getattr(stat, "st_birthtime", stat.st_ctime)),
        mtime=int(stat.st_mtime),
    )

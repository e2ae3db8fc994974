"""Tests for the slice manifest builder."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from pcscli.core.slicing import (
    LEAD_SLICE_SIZE,
    SliceError,
    SliceManifest,
    build_manifest,
    compute_block_ranges,
    get_block_count,
)


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def write_file(tmp_path: Path, data: bytes, name: str = "data.bin") -> Path:
    path = tmp_path / name
    path.write_bytes(data)
    return path


class TestBlockCount:
    """Tests for get_block_count and compute_block_ranges."""

    @pytest.mark.parametrize(
        ("size", "block_size", "expected"),
        [(0, 4, 0), (1, 4, 1), (4, 4, 1), (5, 4, 2), (8, 4, 2), (9, 4, 3)],
    )
    def test_ceil_division(self, size: int, block_size: int, expected: int) -> None:
        """Count should be ceil(size / block_size)."""
        assert get_block_count(size, block_size) == expected

    def test_zero_block_size(self) -> None:
        """A zero block size gives no blocks."""
        assert get_block_count(100, 0) == 0
        assert compute_block_ranges(100, 0) == []

    def test_ranges_cover_file(self) -> None:
        """Ranges should be contiguous and cover every byte once."""
        ranges = compute_block_ranges(10, 4)

        assert [(r.offset, r.length) for r in ranges] == [(0, 4), (4, 4), (8, 2)]
        assert sum(r.length for r in ranges) == 10
        for previous, current in zip(ranges, ranges[1:]):
            assert previous.end == current.offset

    def test_exact_multiple_last_block_full(self) -> None:
        """When size is a multiple of block_size the last block is full."""
        ranges = compute_block_ranges(8, 4)
        assert ranges[-1].length == 4


class TestBuildManifest:
    """Tests for build_manifest."""

    def test_digests(self, tmp_path: Path) -> None:
        """Should compute whole-file, lead and per-block MD5."""
        data = b"0123456789"
        manifest = build_manifest(write_file(tmp_path, data), block_size=4)

        assert manifest.size == 10
        assert manifest.block_size == 4
        assert manifest.content_md5 == md5(data)
        assert manifest.slice_md5 == md5(data)
        assert manifest.block_list == (md5(b"0123"), md5(b"4567"), md5(b"89"))

    def test_lead_digest_limited_to_lead_segment(self, tmp_path: Path) -> None:
        """The lead digest covers only the first 256 KiB."""
        data = os.urandom(LEAD_SLICE_SIZE + 1000)
        manifest = build_manifest(write_file(tmp_path, data), block_size=100 * 1024)

        assert manifest.slice_md5 == md5(data[:LEAD_SLICE_SIZE])
        assert manifest.content_md5 == md5(data)
        assert manifest.block_count == 3

    def test_exact_multiple(self, tmp_path: Path) -> None:
        """A file of exactly N blocks has N full blocks."""
        manifest = build_manifest(write_file(tmp_path, b"a" * 8), block_size=4)

        assert manifest.block_count == 2
        assert manifest.block_range(1).length == 4

    def test_one_byte_over(self, tmp_path: Path) -> None:
        """One byte past a block boundary adds a one-byte block."""
        manifest = build_manifest(write_file(tmp_path, b"a" * 9), block_size=4)

        assert manifest.block_count == 3
        assert manifest.block_range(2).length == 1
        assert manifest.block_list[2] == md5(b"a")

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file has no blocks and empty-buffer digests."""
        manifest = build_manifest(write_file(tmp_path, b""), block_size=4)

        assert manifest.size == 0
        assert manifest.block_count == 0
        assert manifest.content_md5 == md5(b"")
        assert manifest.slice_md5 == md5(b"")

    def test_deterministic(self, tmp_path: Path) -> None:
        """Building twice on an unchanged file gives the same manifest."""
        path = write_file(tmp_path, os.urandom(5000))

        first = build_manifest(path, block_size=1024)
        second = build_manifest(path, block_size=1024)

        assert first == second

    def test_timestamps(self, tmp_path: Path) -> None:
        """Should record integer local timestamps."""
        path = write_file(tmp_path, b"abc")
        os.utime(path, (1_700_000_000, 1_700_000_000))

        manifest = build_manifest(path, block_size=4)

        assert manifest.mtime == 1_700_000_000
        assert isinstance(manifest.ctime, int)

    def test_missing_file(self, tmp_path: Path) -> None:
        """Should propagate the OS error."""
        with pytest.raises(FileNotFoundError):
            build_manifest(tmp_path / "missing.bin", block_size=4)

    def test_digests_lowercase_hex(self, tmp_path: Path) -> None:
        """Digests are 32 lowercase hex characters."""
        manifest = build_manifest(write_file(tmp_path, b"Hello"), block_size=4)

        for digest in (manifest.content_md5, manifest.slice_md5, *manifest.block_list):
            assert len(digest) == 32
            assert digest == digest.lower()


class TestSliceManifest:
    """Tests for SliceManifest block ranges."""

    def make_manifest(self, size: int, block_size: int) -> SliceManifest:
        count = get_block_count(size, block_size)
        return SliceManifest(
            path=Path("x"),
            size=size,
            block_size=block_size,
            content_md5="",
            slice_md5="",
            block_list=tuple("" for _ in range(count)),
            ctime=0,
            mtime=0,
        )

    def test_iter_blocks(self) -> None:
        """Should yield ranges in ascending order."""
        manifest = self.make_manifest(10, 4)
        assert [b.index for b in manifest.iter_blocks()] == [0, 1, 2]
        assert [b.offset for b in manifest.iter_blocks()] == [0, 4, 8]

    def test_block_range_out_of_bounds(self) -> None:
        """Should reject indices outside the manifest."""
        manifest = self.make_manifest(10, 4)
        with pytest.raises(IndexError):
            manifest.block_range(3)
        with pytest.raises(IndexError):
            manifest.block_range(-1)


class TestShortRead:
    """Tests for files that shrink while being sliced."""

    def test_shrunk_file(self, tmp_path: Path) -> None:
        """A file shorter than its recorded size raises SliceError."""
        path = tmp_path / "shrinking.bin"
        path.write_bytes(b"x" * 10)
        real_stat = Path.stat

        class Grown:
            def __init__(self, st: os.stat_result) -> None:
                self.st_size = st.st_size + 5
                self.st_ctime = st.st_ctime
                self.st_mtime = st.st_mtime

        def fake_stat(self: Path, *args, **kwargs):  # type: ignore[no-untyped-def]
            return Grown(real_stat(self, *args, **kwargs))

        with patch.object(Path, "stat", fake_stat), pytest.raises(SliceError):
            build_manifest(path, 4)

    def test_slice_error_is_os_error(self) -> None:
        assert issubclass(SliceError, OSError)

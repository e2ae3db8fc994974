"""Shared types for transfer operations.

This module provides:
- TransferError, UploadError, UploadCancelledError: Exception classes
- TransferStateError: Phase-order contract violations
- DownloadReport: Per-item outcome of a batch download
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pcscli.core.types import TransferPhase


class TransferError(Exception):
    """Base exception for transfer errors."""


class UploadError(TransferError):
    """Failed to upload a file."""


class UploadCancelledError(UploadError):
    """Raised when an upload is cancelled between blocks."""


class TransferStateError(RuntimeError):
    """A sliced-upload phase was entered out of order.

    This is a programming error, not a runtime condition to recover from:
    merging before every block succeeded would corrupt the remote file.
    """

    def __init__(self, current: TransferPhase, expected: TransferPhase) -> None:
        self.current = current
        self.expected = expected
        super().__init__(
            f"Illegal transition: upload is {current.value}, expected {expected.value}"
        )


@dataclass
class DownloadReport:
    """Result of a download call.

    Directory downloads are best-effort: each entry is recorded as
    succeeded or failed and the caller decides the aggregate outcome.
    """

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True if no item failed."""
        return not self.failed

    @property
    def total(self) -> int:
        """Number of items attempted."""
        return len(self.succeeded) + len(self.failed)

"""Shared types for pcscli.

This module defines enums used by both the wire client and the transfer
engine.
"""

from __future__ import annotations

from enum import Enum


class ConflictPolicy(str, Enum):
    """What the server does when the remote path already exists.

    The same policy must be sent to precreate and to create (merge).
    """

    FAIL = "fail"
    RENAME = "rename"
    OVERWRITE = "overwrite"
    NEW_COPY = "newcopy"

    @property
    def rtype(self) -> int:
        """Numeric naming strategy used by the sliced upload endpoints.

        1 renames on any path clash, 2 renames only when the block list
        differs, 3 overwrites. The sliced protocol has no "fail" mode, so
        FAIL is sent as an overwrite.
        """
        if self is ConflictPolicy.RENAME:
            return 1
        if self is ConflictPolicy.NEW_COPY:
            return 2
        return 3

    @property
    def ondup(self) -> str:
        """Value of the ``ondup`` parameter of the single-shot upload."""
        if self is ConflictPolicy.FAIL:
            return "fail"
        if self is ConflictPolicy.OVERWRITE:
            return "overwrite"
        return "newcopy"


class TransferPhase(str, Enum):
    """Phase of a sliced upload.

    IDLE -> PREPARED -> BLOCKS_UPLOADED -> MERGED, and FAILED from any
    non-terminal phase.
    """

    IDLE = "idle"
    PREPARED = "prepared"
    BLOCKS_UPLOADED = "blocks_uploaded"
    MERGED = "merged"
    FAILED = "failed"

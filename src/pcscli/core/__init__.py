"""Core module - Slicing, configuration and shared types."""

from pcscli.core.config import ApiConfig, AppCredentials
from pcscli.core.slicing import (
    LEAD_SLICE_SIZE,
    BlockRange,
    SliceError,
    SliceManifest,
    build_manifest,
    compute_block_ranges,
    get_block_count,
)
from pcscli.core.types import ConflictPolicy, TransferPhase

__all__ = [
    # Config
    "ApiConfig",
    "AppCredentials",
    # Slicing
    "LEAD_SLICE_SIZE",
    "BlockRange",
    "SliceError",
    "SliceManifest",
    "build_manifest",
    "compute_block_ranges",
    "get_block_count",
    # Types
    "ConflictPolicy",
    "TransferPhase",
]

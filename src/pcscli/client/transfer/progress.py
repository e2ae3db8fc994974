"""Progress reporting for transfers.

This module provides:
- ProgressEvent: one progress report (one per I/O chunk)
- ProgressCallback: type alias for progress consumers
- ProgressCounter: converts bytes flushed on the wire into events

A ProgressCounter belongs to one transfer. Blocks of a transfer are sent
one after another, so the only concurrent access is the HTTP layer reading
the current block while the block loop waits; a single lock is enough.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of a transfer.

    Attributes:
        total_bytes: Size of the whole transfer (0 if unknown).
        completed_bytes: Bytes of all units completed before the current one.
        unit_index: Index of the current unit (block), from 0.
        unit_size: Size of the current unit.
        unit_bytes: Bytes of the current unit sent or received so far.
    """

    total_bytes: int
    completed_bytes: int
    unit_index: int
    unit_size: int
    unit_bytes: int

    @property
    def transferred(self) -> int:
        """Running total of bytes for the whole transfer."""
        return self.completed_bytes + self.unit_bytes

    @property
    def percent(self) -> float:
        """Whole-transfer percentage (0 when the total is unknown)."""
        if self.total_bytes <= 0:
            return 0.0
        return min(100.0, self.transferred * 100 / self.total_bytes)

    @property
    def unit_percent(self) -> float:
        """Percentage of the current unit."""
        if self.unit_size <= 0:
            return 100.0
        return min(100.0, self.unit_bytes * 100 / self.unit_size)


# Type alias for progress callback
ProgressCallback = Callable[[ProgressEvent], None]


class ProgressCounter:
    """Thread-safe byte counter that emits ProgressEvents.

    The counter never goes backwards within a unit: re-reading a block
    (e.g. the HTTP layer rewinding the body) does not emit lower totals.
    """

    def __init__(
        self,
        callback: ProgressCallback | None,
        total_bytes: int,
    ) -> None:
        self._callback = callback
        self._total_bytes = total_bytes
        self._lock = threading.Lock()
        self._completed = 0
        self._unit_index = 0
        self._unit_size = 0
        self._unit_bytes = 0
        self._reported = 0

    @property
    def transferred(self) -> int:
        """Bytes counted so far across all units."""
        with self._lock:
            return self._completed + self._unit_bytes

    def start_unit(self, index: int, size: int, completed: int) -> None:
        """Begin counting a new unit.

        Args:
            index: Unit index.
            size: Unit size in bytes.
            completed: Bytes of all previous units.
        """
        with self._lock:
            self._unit_index = index
            self._unit_size = size
            self._completed = completed
            self._unit_bytes = 0

    def rewind_unit(self) -> None:
        """Restart counting the current unit (body re-sent)."""
        with self._lock:
            self._unit_bytes = 0

    def add(self, nbytes: int) -> None:
        """Count ``nbytes`` more bytes of the current unit and report."""
        with self._lock:
            self._unit_bytes += nbytes
            if self._unit_size > 0:
                self._unit_bytes = min(self._unit_size, self._unit_bytes)
            event = self._snapshot()
        if event is not None and self._callback is not None:
            self._callback(event)

    def finish(self) -> None:
        """Emit a terminal event at total_bytes if none reached it yet."""
        with self._lock:
            if self._total_bytes <= 0 or self._reported >= self._total_bytes:
                return
            self._completed = self._total_bytes - self._unit_bytes
            event = self._snapshot()
        if event is not None and self._callback is not None:
            self._callback(event)

    def _snapshot(self) -> ProgressEvent | None:
        # Caller holds the lock.
        running = self._completed + self._unit_bytes
        if running < self._reported:
            return None
        self._reported = running
        return ProgressEvent(
            total_bytes=self._total_bytes,
            completed_bytes=self._completed,
            unit_index=self._unit_index,
            unit_size=self._unit_size,
            unit_bytes=self._unit_bytes,
        )

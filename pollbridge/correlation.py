"""Correlation table mapping outstanding ids to single-assignment result slots."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Waiter:
    """Pending result slot for one correlation id."""

    correlation_id: str
    slot: Future = field(default_factory=Future)
    registered_at: float = field(default_factory=time.monotonic)
    deadline: float | None = None


class CorrelationTable:
    """Thread-safe map of correlation id to waiter.

    A waiter leaves the table the moment it is resolved or cancelled, so at
    most one outcome ever reaches the caller. All operations on the table share
    one lock; each is a dict lookup plus a future transition, so independent
    ids do not wait on each other for long.
    """

    def __init__(self) -> None:
        self._waiters: dict[str, Waiter] = {}
        self._lock = Lock()

    def register(self, correlation_id: str, timeout: float | None = None) -> Waiter:
        """Register a waiter for an id.

        Args:
            correlation_id: Id minted for the command
            timeout: Seconds until the caller gives up, recorded as the deadline

        Returns:
            The new Waiter

        Raises:
            ValueError: If the id already has a live waiter
        """
        waiter = Waiter(correlation_id=correlation_id)
        if timeout is not None:
            waiter.deadline = waiter.registered_at + timeout

        with self._lock:
            if correlation_id in self._waiters:
                raise ValueError(f"Correlation id already registered: {correlation_id}")
            self._waiters[correlation_id] = waiter
        return waiter

    def resolve(self, correlation_id: str, data: Any) -> bool:
        """Complete the waiter for an id with data.

        Returns:
            True if a live waiter existed and received the data, False otherwise
        """
        with self._lock:
            waiter = self._waiters.pop(correlation_id, None)
            if waiter is None:
                return False
            waiter.slot.set_result(data)
        return True

    def cancel(self, correlation_id: str) -> bool:
        """Remove the waiter for an id and mark its slot cancelled.

        Returns:
            True if a pending waiter was cancelled, False if it was already gone
        """
        with self._lock:
            waiter = self._waiters.pop(correlation_id, None)
            if waiter is None:
                return False
            waiter.slot.cancel()
        return True

    def __contains__(self, correlation_id: object) -> bool:
        with self._lock:
            return correlation_id in self._waiters

    def __len__(self) -> int:
        with self._lock:
            return len(self._waiters)

    def ids(self) -> list[str]:
        """Snapshot of the outstanding correlation ids."""
        with self._lock:
            return list(self._waiters)

"""FIFO queue of commands awaiting pickup by the poller."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any


@dataclass(frozen=True)
class Command:
    """A command issued to the sandboxed runtime."""

    id: str
    action: str
    args: Any = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"action": self.action, "id": self.id, "args": self.args}


class CommandQueue:
    """Unbounded FIFO of commands.

    There is no size limit: with no poller draining it the backlog grows
    without bound, and every queued command's caller times out.
    """

    def __init__(self) -> None:
        self._queue: deque[Command] = deque()
        self._lock = Lock()

    def enqueue(self, command: Command) -> int:
        """Append a command to the tail, return the new depth."""
        with self._lock:
            self._queue.append(command)
            return len(self._queue)

    def try_dequeue(self) -> Command | None:
        """Remove and return the head command, or None if empty."""
        with self._lock:
            if self._queue:
                return self._queue.popleft()
            return None

    def size(self) -> int:
        """Get queue depth."""
        with self._lock:
            return len(self._queue)

    def __len__(self) -> int:
        return self.size()

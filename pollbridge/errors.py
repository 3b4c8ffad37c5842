"""Exceptions raised by the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge failures."""

    pass


class BridgeTimeoutError(BridgeError):
    """Raised when no result arrived before the caller's deadline.

    A command lost in transit to the poller, or a result dropped because it
    raced its waiter, surfaces the same way.
    """

    def __init__(self, action: str, correlation_id: str, timeout: float):
        self.action = action
        self.correlation_id = correlation_id
        self.timeout = timeout
        super().__init__(
            f"No result for '{action}' ({correlation_id}) within {timeout:.2f}s"
        )


class RemoteActionError(BridgeError):
    """Raised when the poller reported an error payload for a command."""

    def __init__(self, action: str, message: str):
        self.action = action
        self.message = message
        super().__init__(f"Remote action '{action}' failed: {message}")

"""Request/reply broker between host callers and the sandboxed poller."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from pydantic import TypeAdapter

from pollbridge.command_queue import Command, CommandQueue
from pollbridge.config import get_settings
from pollbridge.correlation import CorrelationTable, Waiter
from pollbridge.errors import BridgeTimeoutError
from pollbridge.schemas import to_camel_key

logger = logging.getLogger(__name__)

_json_values = TypeAdapter(Any)


def new_correlation_id() -> str:
    """Mint a fresh correlation id."""
    return str(uuid.uuid4())


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        converted: dict[str, Any] = {}
        for k, v in value.items():
            key = to_camel_key(str(k))
            if key in converted:
                raise ValueError(f"Argument keys collide on the wire: {key!r}")
            converted[key] = _camelize(v)
        return converted
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


def serialize_args(args: Any) -> Any:
    """Convert command arguments to their wire form.

    Models, dataclasses and mappings become plain JSON values with every
    mapping key in camelCase, the one naming convention the poller reads.

    Args:
        args: None, a pydantic model, a mapping, or any JSON-compatible value

    Returns:
        JSON-compatible value; None becomes an empty object

    Raises:
        ValueError: If two keys map to the same camelCase key
    """
    if args is None:
        return {}
    return _camelize(_json_values.dump_python(args, mode="json"))


class Broker:
    """Owns the command queue and correlation table.

    ``issue`` is called from any number of host threads at once, and
    ``issue_async`` from the transport's event loop; ``deliver``
    is called by the transport when the poller posts a result.
    """

    def __init__(
        self,
        default_timeout: float | None = None,
        queue: CommandQueue | None = None,
        table: CorrelationTable | None = None,
    ):
        self.default_timeout = (
            default_timeout if default_timeout is not None else get_settings().request_timeout
        )
        self.queue = queue if queue is not None else CommandQueue()
        self.table = table if table is not None else CorrelationTable()

    def _submit(self, action: str, args: Any, timeout: float) -> Waiter:
        correlation_id = new_correlation_id()
        payload = serialize_args(args)

        # Waiter goes in before the command becomes visible to the poller
        waiter = self.table.register(correlation_id, timeout)
        depth = self.queue.enqueue(Command(id=correlation_id, action=action, args=payload))
        logger.info(f"Issued {action} ({correlation_id}), queue depth {depth}")
        return waiter

    def _expire(self, action: str, waiter: Waiter, timeout: float) -> Any:
        correlation_id = waiter.correlation_id
        if not self.table.cancel(correlation_id):
            # A delivery won the race against the deadline
            return waiter.slot.result()
        logger.warning(f"Timed out waiting for {action} ({correlation_id}) after {timeout:.2f}s")
        raise BridgeTimeoutError(action, correlation_id, timeout)

    def issue(self, action: str, args: Any = None, timeout: float | None = None) -> Any:
        """Send a command to the poller and wait for its result.

        Blocks the calling thread only.

        Args:
            action: Capability name the poller dispatches on
            args: Command arguments, serialized with camelCase keys
            timeout: Seconds to wait (defaults to ``default_timeout``)

        Returns:
            The data the poller delivered for this command

        Raises:
            BridgeTimeoutError: If no result arrived in time
        """
        timeout = self.default_timeout if timeout is None else timeout
        waiter = self._submit(action, args, timeout)

        started = time.monotonic()
        try:
            data = waiter.slot.result(timeout=timeout)
        except FutureTimeoutError:
            return self._expire(action, waiter, timeout)

        logger.debug(f"Completed {action} ({waiter.correlation_id}) in {time.monotonic() - started:.3f}s")
        return data

    async def issue_async(self, action: str, args: Any = None, timeout: float | None = None) -> Any:
        """Coroutine form of ``issue`` for use on an event loop.

        The wait suspends the task instead of occupying a worker thread.
        """
        timeout = self.default_timeout if timeout is None else timeout
        waiter = self._submit(action, args, timeout)

        # Shielded so the timeout does not cancel the slot behind the table's back
        pending = asyncio.wrap_future(waiter.slot)
        try:
            return await asyncio.wait_for(asyncio.shield(pending), timeout)
        except asyncio.TimeoutError:
            return self._expire(action, waiter, timeout)
        except asyncio.CancelledError:
            self.table.cancel(waiter.correlation_id)
            raise

    def deliver(self, correlation_id: str, data: Any) -> bool:
        """Hand a delivered result to its waiter.

        Returns:
            True if a live waiter took the result; False for an orphaned
            delivery, which is discarded
        """
        if self.table.resolve(correlation_id, data):
            logger.debug(f"Delivered result for {correlation_id}")
            return True
        logger.info(f"Discarded orphaned delivery for {correlation_id}")
        return False

    def next_command(self) -> Command | None:
        """Take the next command for the poller, if any."""
        return self.queue.try_dequeue()

    def pending_count(self) -> int:
        """Number of callers still waiting on a result."""
        return len(self.table)


# Global broker instance
_broker_instance: Broker | None = None


def get_broker() -> Broker:
    """Get or create the global broker instance."""
    global _broker_instance
    if _broker_instance is None:
        _broker_instance = Broker()
    return _broker_instance

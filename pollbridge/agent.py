"""Poller agent that runs inside the sandboxed runtime.

The agent cannot accept connections, so it pulls work: it polls
``/pending``, runs the named capability, and posts the outcome to
``/deliver``. It never long-polls; idle and error backoffs set the cadence.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Mapping

import httpx
from pydantic import TypeAdapter

from pollbridge.capabilities import Capability
from pollbridge.config import get_settings

logger = logging.getLogger(__name__)

UNKNOWN_ACTION = "unknown action"

_json_values = TypeAdapter(Any)


class PollOutcome(str, Enum):
    """Result of one polling step."""

    COMMAND = "command"
    EMPTY = "empty"
    ERROR = "error"


class PollerAgent:
    """Single sequential fetch/execute/submit loop."""

    def __init__(
        self,
        capabilities: Mapping[str, Capability],
        base_url: str | None = None,
        client: httpx.Client | None = None,
        idle_interval: float | None = None,
        error_interval: float | None = None,
        request_timeout: float = 10.0,
    ):
        """Initialize the agent.

        Args:
            capabilities: Action name to handler mapping
            base_url: Bridge URL (defaults to the configured host and port)
            client: HTTP client to use; one is created if omitted
            idle_interval: Seconds to wait after an empty poll
            error_interval: Seconds to wait after a transport failure
            request_timeout: Per-request timeout for a created client
        """
        settings = get_settings()
        self.capabilities = dict(capabilities)
        self.idle_interval = settings.idle_interval if idle_interval is None else idle_interval
        self.error_interval = settings.error_interval if error_interval is None else error_interval

        self._owns_client = client is None
        self.client = client or httpx.Client(
            base_url=base_url or settings.base_url,
            timeout=request_timeout,
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._thread_lock = threading.Lock()

    # --- Wire calls ---

    def fetch_next(self) -> dict[str, Any]:
        """Poll for the next command; {} means the queue was empty."""
        response = self.client.get("/pending", headers={"Cache-Control": "no-store"})
        response.raise_for_status()
        return response.json()

    def submit_result(self, correlation_id: str, data: Any) -> None:
        """Post a result for a command."""
        response = self.client.post("/deliver", json={"id": correlation_id, "data": data})
        response.raise_for_status()

    # --- Dispatch ---

    def execute(self, action: str, args: Any) -> Any:
        """Run the handler for an action.

        The result is returned in JSON form. Unknown actions, failing handlers
        and results that cannot be encoded yield an error payload so the
        issuing caller gets a failure instead of waiting out its timeout.
        """
        handler = self.capabilities.get(action)
        if handler is None:
            logger.warning(f"Unknown action: {action}")
            return {"error": UNKNOWN_ACTION, "action": action}

        try:
            return _json_values.dump_python(handler(args), mode="json")
        except Exception as e:
            logger.error(f"Capability '{action}' failed: {e}", exc_info=True)
            return {"error": f"{type(e).__name__}: {e}", "action": action}

    def run_once(self) -> PollOutcome:
        """Perform one poll step, including its backoff."""
        try:
            command = self.fetch_next()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Poll failed, backing off: {e}")
            self._pause(self.error_interval)
            return PollOutcome.ERROR

        correlation_id = command.get("id") if isinstance(command, dict) else None
        if not correlation_id:
            self._pause(self.idle_interval)
            return PollOutcome.EMPTY

        action = command.get("action", "")
        logger.info(f"Executing {action} ({correlation_id})")
        data = self.execute(action, command.get("args", {}))

        try:
            self.submit_result(correlation_id, data)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to submit result for {correlation_id}: {e}")
            self._pause(self.error_interval)
            return PollOutcome.ERROR

        return PollOutcome.COMMAND

    # --- Lifecycle ---

    def run_forever(self) -> None:
        """Poll until ``stop`` is called."""
        logger.info("Poller loop started")
        while not self._stop.is_set():
            self.run_once()
        logger.info("Poller loop stopped")

    def start(self) -> bool:
        """Run the loop on a background thread unless it is already running.

        Returns:
            True if a new loop was started
        """
        with self._thread_lock:
            if self._thread is not None and self._thread.is_alive():
                return False
            self._stop.clear()
            self._thread = threading.Thread(target=self.run_forever, name="pollbridge-poller", daemon=True)
            self._thread.start()
            return True

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for it."""
        self._stop.set()
        with self._thread_lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def close(self) -> None:
        """Stop the loop and release the HTTP client if the agent created it."""
        self.stop()
        if self._owns_client:
            self.client.close()

    def _pause(self, interval: float) -> None:
        if interval > 0:
            self._stop.wait(interval)


class KeepAlive:
    """Periodically restarts the poller loop if it is no longer running."""

    def __init__(self, agent: PollerAgent, interval: float | None = None):
        self.agent = agent
        self.interval = get_settings().keepalive_interval if interval is None else interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> bool:
        """Start the agent if needed; True if it had to be (re)started."""
        restarted = self.agent.start()
        if restarted:
            logger.info("Keep-alive started the poller loop")
        return restarted

    def _run(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pollbridge-keepalive", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()

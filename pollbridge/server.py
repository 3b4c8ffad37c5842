"""HTTP transport for the bridge: poll, deliver, and proxy endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from pollbridge import __version__
from pollbridge.broker import Broker, get_broker
from pollbridge.errors import BridgeTimeoutError
from pollbridge.schemas import DeliveryRequest, ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Proxy route -> action issued to the poller
PROXY_ACTIONS = {
    "active-items": "getItems",
    "activate": "activate",
    "open": "open",
    "close": "close",
}


def create_app(broker: Broker | None = None) -> FastAPI:
    """Build the bridge application around a broker.

    Routes run on the event loop. The poller routes only take a short lock
    and a proxy awaits its result without holding a worker thread.

    Args:
        broker: Broker to serve (defaults to the global instance)

    Returns:
        FastAPI application
    """
    broker = broker if broker is not None else get_broker()

    app = FastAPI(
        title="PollBridge",
        description="Request/reply bridge for a polling sandboxed runtime",
        version=__version__,
    )
    app.state.broker = broker

    async def _proxy(action: str, args: Any = None) -> Any:
        try:
            return await broker.issue_async(action, args)
        except BridgeTimeoutError as e:
            return JSONResponse(
                status_code=504,
                content=ErrorResponse(
                    detail=str(e),
                    correlation_id=e.correlation_id,
                    error_code="TIMEOUT",
                ).model_dump(),
            )

    @app.middleware("http")
    async def close_connection(request: Request, call_next):
        response = await call_next(request)
        response.headers["Connection"] = "close"
        return response

    # --- Poller endpoints ---

    @app.api_route("/pending", methods=["GET", "POST"])
    async def pending() -> dict[str, Any]:
        """Hand the next queued command to the poller, or {} if none."""
        command = broker.next_command()
        if command is None:
            return {}
        logger.info(f"Dispatching {command.action} ({command.id}) to poller")
        return command.to_wire()

    @app.post("/deliver", status_code=204)
    async def deliver(request: DeliveryRequest) -> Response:
        """Accept a result from the poller.

        Always answers 204, whether or not a caller was still waiting.
        """
        broker.deliver(request.id, request.data)
        return Response(status_code=204)

    # --- Convenience proxies ---

    @app.api_route("/active-items", methods=["GET", "POST"])
    async def active_items() -> Any:
        """List the items open in the sandboxed runtime."""
        return await _proxy(PROXY_ACTIONS["active-items"])

    @app.post("/activate")
    async def activate(payload: dict[str, Any] = Body(...)) -> Any:
        """Bring an item to the front."""
        return await _proxy(PROXY_ACTIONS["activate"], payload)

    @app.post("/open")
    async def open_item(payload: dict[str, Any] = Body(...)) -> Any:
        """Open a new item."""
        return await _proxy(PROXY_ACTIONS["open"], payload)

    @app.post("/close")
    async def close_item(payload: dict[str, Any] = Body(...)) -> Any:
        """Close an item."""
        return await _proxy(PROXY_ACTIONS["close"], payload)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Report queue depth and outstanding waiters."""
        return HealthResponse(
            broker="healthy",
            queue_depth=broker.queue.size(),
            pending_waiters=broker.pending_count(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                detail=f"{type(exc).__name__}: {exc}",
                error_code="INTERNAL_ERROR",
            ).model_dump(),
            headers={"Connection": "close"},
        )

    return app


app = create_app()

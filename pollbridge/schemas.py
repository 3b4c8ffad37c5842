"""Pydantic schemas for the bridge wire contract.

Field names on the wire are camelCase and case-sensitive. Models that travel
between host and poller derive from ``WireModel`` so their aliases follow that
convention while Python code keeps snake_case attribute names.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def to_camel_key(name: str) -> str:
    """Convert a snake_case key to camelCase.

    camelCase keys and keys with a leading underscore pass through unchanged.
    """
    if name.startswith("_"):
        return name
    head, *rest = name.split("_")
    if not rest:
        return name
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class WireModel(BaseModel):
    """Base for payloads exchanged with the poller."""

    model_config = ConfigDict(alias_generator=to_camel_key, populate_by_name=True)


# --- Core envelopes ---


class CommandEnvelope(BaseModel):
    """Command handed to the poller by /pending."""

    action: str
    id: str
    args: Any = Field(default_factory=dict)


class DeliveryRequest(BaseModel):
    """Result posted by the poller to /deliver."""

    id: str = Field(..., min_length=1, description="Correlation id of the command")
    data: Any = Field(..., description="Opaque result payload")


class ErrorPayload(WireModel):
    """Error reported by the poller in place of a result."""

    error: str
    action: str | None = None


# --- Item capability payloads ---


class ItemInfo(WireModel):
    """One item (e.g. a browser tab) held by the sandboxed runtime."""

    window_id: int
    item_id: int
    title: str = ""
    url: str = ""
    active: bool = False


class OpenRequest(WireModel):
    """Arguments for the ``open`` action."""

    url: str


class OpenedItem(WireModel):
    """Result of the ``open`` action."""

    window_id: int
    item_id: int


class ActivateRequest(WireModel):
    """Arguments for the ``activate`` action."""

    window_id: int
    item_id: int


class ActivateResult(WireModel):
    """Result of the ``activate`` action."""

    ok: bool
    title: str = ""


class CloseRequest(WireModel):
    """Arguments for the ``close`` action."""

    item_id: int


# --- HTTP responses ---


class ErrorResponse(BaseModel):
    """Error response for failed requests."""

    detail: str
    correlation_id: str | None = None
    error_code: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    broker: Literal["healthy", "unhealthy"] = "healthy"
    queue_depth: int = 0
    pending_waiters: int = 0

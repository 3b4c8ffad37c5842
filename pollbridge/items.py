"""Host-side access to the items held by the sandboxed runtime."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import TypeAdapter

from pollbridge.broker import Broker
from pollbridge.errors import RemoteActionError
from pollbridge.schemas import (
    ActivateRequest,
    ActivateResult,
    CloseRequest,
    ErrorPayload,
    ItemInfo,
    OpenedItem,
    OpenRequest,
)

logger = logging.getLogger(__name__)

_item_list = TypeAdapter(list[ItemInfo])


def raise_for_error(action: str, data: Any) -> Any:
    """Raise RemoteActionError if data is an error payload, else return it."""
    if isinstance(data, dict) and "error" in data:
        payload = ErrorPayload.model_validate(data)
        raise RemoteActionError(payload.action or action, payload.error)
    return data


class ItemsClient:
    """Typed wrapper over ``Broker.issue`` for the item actions."""

    def __init__(self, broker: Broker, timeout: float | None = None):
        self.broker = broker
        self.timeout = timeout

    def _call(self, action: str, args: Any = None) -> Any:
        data = self.broker.issue(action, args, timeout=self.timeout)
        return raise_for_error(action, data)

    def list_items(self) -> list[ItemInfo]:
        return _item_list.validate_python(self._call("getItems"))

    def open_item(self, url: str) -> OpenedItem:
        return OpenedItem.model_validate(self._call("open", OpenRequest(url=url)))

    def activate_item(self, window_id: int, item_id: int) -> ActivateResult:
        result = self._call("activate", ActivateRequest(window_id=window_id, item_id=item_id))
        return ActivateResult.model_validate(result)

    def close_item(self, item_id: int) -> None:
        self._call("close", CloseRequest(item_id=item_id))

    def open_and_activate(self, url: str) -> ActivateResult:
        """Open an item and bring its window to the front."""
        opened = self.open_item(url)
        logger.debug(f"Opened item {opened.item_id} in window {opened.window_id}")
        return self.activate_item(opened.window_id, opened.item_id)

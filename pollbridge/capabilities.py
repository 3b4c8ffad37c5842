"""Capability handlers executed by the poller inside the sandboxed runtime.

The real runtime drives browser tabs. ``ItemWorkspace`` keeps the same shape
of state (windows holding items, one active item per window, one focused
window) in memory, so the poller can be run and tested without a browser.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any, Callable

from pollbridge.schemas import ActivateRequest, CloseRequest, OpenRequest

logger = logging.getLogger(__name__)

Capability = Callable[[Any], Any]


@dataclass
class Item:
    """An item open in a window."""

    window_id: int
    item_id: int
    title: str
    url: str
    active: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "windowId": self.window_id,
            "itemId": self.item_id,
            "title": self.title,
            "url": self.url,
            "active": self.active,
        }


class ItemWorkspace:
    """Thread-safe in-memory set of windows and items."""

    def __init__(self) -> None:
        self._items: dict[int, Item] = {}
        self._ids = itertools.count(1)
        self._focused_window: int | None = None
        self._lock = Lock()

    @property
    def focused_window(self) -> int | None:
        return self._focused_window

    def list_items(self) -> list[Item]:
        with self._lock:
            return [replace(item) for item in self._items.values()]

    def open(self, url: str, title: str | None = None) -> Item:
        """Open an item in a new window and focus it."""
        with self._lock:
            window_id = next(self._ids)
            item = Item(
                window_id=window_id,
                item_id=next(self._ids),
                title=title or url,
                url=url,
                active=True,
            )
            self._items[item.item_id] = item
            self._focused_window = window_id
        logger.debug(f"Opened item {item.item_id} in window {window_id}")
        return item

    def activate(self, window_id: int, item_id: int) -> Item:
        """Focus a window and make one of its items active.

        Raises:
            KeyError: If the item does not exist in that window
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.window_id != window_id:
                raise KeyError(f"No item {item_id} in window {window_id}")
            for other in self._items.values():
                if other.window_id == window_id:
                    other.active = other.item_id == item_id
            self._focused_window = window_id
            return item

    def close(self, item_id: int) -> None:
        """Close an item.

        Raises:
            KeyError: If the item does not exist
        """
        with self._lock:
            if item_id not in self._items:
                raise KeyError(f"No item {item_id}")
            del self._items[item_id]


def build_capabilities(workspace: ItemWorkspace) -> dict[str, Capability]:
    """Map action names to handlers over a workspace.

    Handlers take the command's wire args and return wire data.
    """

    def get_items(args: Any) -> list[dict[str, Any]]:
        return [item.to_wire() for item in workspace.list_items()]

    def open_item(args: Any) -> dict[str, Any]:
        request = OpenRequest.model_validate(args)
        item = workspace.open(request.url)
        return {"windowId": item.window_id, "itemId": item.item_id}

    def activate(args: Any) -> dict[str, Any]:
        request = ActivateRequest.model_validate(args)
        item = workspace.activate(request.window_id, request.item_id)
        return {"ok": True, "title": item.title}

    def close(args: Any) -> str:
        request = CloseRequest.model_validate(args)
        workspace.close(request.item_id)
        return "ok"

    def ping(args: Any) -> Any:
        return args

    return {
        "getItems": get_items,
        "open": open_item,
        "activate": activate,
        "close": close,
        "ping": ping,
    }

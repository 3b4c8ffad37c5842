"""CLI for PollBridge - run the bridge, run a poller, drive items."""

from __future__ import annotations

import json
import logging
import signal
import threading
from typing import Any

import click
import httpx

from pollbridge import __version__
from pollbridge.config import get_settings


def _base_url(url: str | None) -> str:
    return (url or get_settings().base_url).rstrip("/")


def _request(method: str, url: str | None, path: str, payload: dict[str, Any] | None = None) -> Any:
    """Call a proxy route and return its JSON body, or exit with an error."""
    timeout = get_settings().request_timeout + 5.0
    try:
        with httpx.Client(base_url=_base_url(url), timeout=timeout) as client:
            response = client.request(method, path, json=payload)
    except httpx.HTTPError as e:
        raise click.ClickException(f"Bridge unreachable: {e}") from e

    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        raise click.ClickException(f"Bridge returned {response.status_code}: {detail}")

    data = response.json()
    if isinstance(data, dict) and "error" in data:
        raise click.ClickException(f"Remote action failed: {data['error']}")
    return data


def _wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    done = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: done.set())
    signal.signal(signal.SIGTERM, lambda *_: done.set())
    done.wait()


@click.group()
@click.version_option(version=__version__, prog_name="pollbridge")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """PollBridge - request/reply bridge to a polling sandboxed runtime.

    Run the bridge with `serve`, a poller with `poll`, and issue item
    commands through the bridge with `items`.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
        logging.getLogger().setLevel(logging.DEBUG)


@main.command()
@click.option("--port", default=None, type=int, help="Port to run the bridge on")
@click.option("--host", default=None, help="Host to bind to (keep it loopback)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(port: int | None, host: str | None, reload: bool) -> None:
    """Start the PollBridge HTTP server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    click.echo(f"PollBridge listening on http://{host}:{port}/")
    uvicorn.run(
        "pollbridge.server:app",
        host=host,
        port=port,
        reload=reload,
    )


@main.command()
@click.option("--url", default=None, help="Bridge URL (defaults to configured host/port)")
def poll(url: str | None) -> None:
    """Run a poller against the bridge with the in-memory item workspace.

    \b
    Example:
        pollbridge poll
        pollbridge poll --url http://127.0.0.1:9234
    """
    from pollbridge.agent import KeepAlive, PollerAgent
    from pollbridge.capabilities import ItemWorkspace, build_capabilities

    agent = PollerAgent(build_capabilities(ItemWorkspace()), base_url=_base_url(url))
    keepalive = KeepAlive(agent)

    click.echo(f"Polling {_base_url(url)} (Ctrl+C to stop)")
    keepalive.start()
    _wait_for_shutdown()
    keepalive.stop()
    agent.close()
    click.echo("Poller stopped")


@main.group()
def items() -> None:
    """Manage items in the sandboxed runtime through the bridge."""
    pass


@items.command("list")
@click.option("--url", default=None, help="Bridge URL")
@click.option("--raw", is_flag=True, help="Output raw JSON instead of formatted text")
def list_items(url: str | None, raw: bool) -> None:
    """List open items."""
    data = _request("GET", url, "/active-items")

    if raw:
        click.echo(json.dumps(data, indent=2))
        return

    if not data:
        click.echo("No items open.")
        return

    click.echo("\n--- Items ---")
    for i, item in enumerate(data, 1):
        marker = "*" if item.get("active") else " "
        click.echo(f"{i}. {marker} [{item.get('windowId')}/{item.get('itemId')}] {item.get('title', '')}")


@items.command("open")
@click.argument("target_url")
@click.option("--url", default=None, help="Bridge URL")
def open_item(target_url: str, url: str | None) -> None:
    """Open TARGET_URL in a new item and focus it.

    \b
    Example:
        pollbridge items open https://example.com
    """
    opened = _request("POST", url, "/open", {"url": target_url})
    result = _request("POST", url, "/activate", {"windowId": opened["windowId"], "itemId": opened["itemId"]})
    click.echo(f"Opened item {opened['itemId']} in window {opened['windowId']}: {result.get('title', '')}")


@items.command("activate")
@click.argument("window_id", type=int)
@click.argument("item_id", type=int)
@click.option("--url", default=None, help="Bridge URL")
def activate_item(window_id: int, item_id: int, url: str | None) -> None:
    """Bring ITEM_ID in WINDOW_ID to the front."""
    result = _request("POST", url, "/activate", {"windowId": window_id, "itemId": item_id})
    click.echo(f"Activated: {result.get('title', '')}")


@items.command("close")
@click.argument("item_id", type=int)
@click.option("--url", default=None, help="Bridge URL")
def close_item(item_id: int, url: str | None) -> None:
    """Close ITEM_ID."""
    _request("POST", url, "/close", {"itemId": item_id})
    click.echo(f"Closed item {item_id}")


if __name__ == "__main__":
    main()

"""Tests for the HTTP transport endpoints."""

import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pollbridge.broker import Broker
from pollbridge.server import create_app


class TestPendingEndpoint:
    """Test the poller's pull endpoint."""

    def test_empty_queue_returns_empty_object(self, client):
        response = client.get("/pending")
        assert response.status_code == 200
        assert response.json() == {}

    def test_returns_command_wire_form(self, client, broker, executor, wait_for):
        """A queued command comes back as {action, id, args}."""
        future = executor.submit(broker.issue, "ping", {"x": 1}, 5.0)
        assert wait_for(lambda: broker.queue.size() == 1)

        data = client.get("/pending").json()
        assert data["action"] == "ping"
        assert data["args"] == {"x": 1}
        assert data["id"] in broker.table

        broker.deliver(data["id"], None)
        future.result(timeout=2)

    def test_any_method_accepted(self, client):
        assert client.post("/pending").json() == {}

    def test_fifo_across_polls(self, client, broker, executor, wait_for):
        """Each poll returns one command, in enqueue order."""
        first = executor.submit(broker.issue, "getItems", None, 5.0)
        assert wait_for(lambda: broker.queue.size() == 1)
        second = executor.submit(broker.issue, "open", {"url": "https://example.com"}, 5.0)
        assert wait_for(lambda: broker.queue.size() == 2)

        cmd1 = client.get("/pending").json()
        assert cmd1["action"] == "getItems"
        assert broker.queue.size() == 1
        cmd2 = client.get("/pending").json()
        assert cmd2["action"] == "open"
        assert client.get("/pending").json() == {}

        # Resolve in reverse order
        assert client.post("/deliver", json={"id": cmd2["id"], "data": {"itemId": 5}}).status_code == 204
        assert client.post("/deliver", json={"id": cmd1["id"], "data": []}).status_code == 204

        assert first.result(timeout=2) == []
        assert second.result(timeout=2) == {"itemId": 5}


class TestDeliverEndpoint:
    """Test the poller's push endpoint."""

    def test_deliver_resolves_issue(self, client, broker, executor, wait_for):
        """Poll, then deliver: the issuing caller gets the data."""
        future = executor.submit(broker.issue, "ping", {"x": 1}, 5.0)
        assert wait_for(lambda: broker.queue.size() == 1)

        command = client.get("/pending").json()
        assert command == {"action": "ping", "id": command["id"], "args": {"x": 1}}

        response = client.post("/deliver", json={"id": command["id"], "data": {"x": 2}})
        assert response.status_code == 204
        assert response.content == b""
        assert future.result(timeout=2) == {"x": 2}

    def test_unknown_id_still_succeeds(self, client, broker):
        """An orphaned delivery returns 204 and changes nothing."""
        response = client.post("/deliver", json={"id": "never-issued", "data": {"x": 1}})

        assert response.status_code == 204
        assert broker.queue.size() == 0
        assert broker.pending_count() == 0

    def test_null_data_accepted(self, client):
        response = client.post("/deliver", json={"id": "abc", "data": None})
        assert response.status_code == 204

    def test_missing_id_returns_422(self, client):
        response = client.post("/deliver", json={"data": {"x": 1}})
        assert response.status_code == 422

    def test_invalid_json_returns_422(self, client):
        response = client.post(
            "/deliver",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 422

    def test_get_not_allowed(self, client):
        assert client.get("/deliver").status_code == 405


class TestProxyEndpoints:
    """Test the synchronous issue/await proxies."""

    def _serve_one(self, broker, wait_for, data):
        """Act as the poller for a single command."""
        assert wait_for(lambda: broker.queue.size() == 1)
        command = broker.next_command()
        broker.deliver(command.id, data)
        return command

    def test_active_items(self, app, broker, executor, wait_for):
        """GET /active-items issues getItems and returns the result."""
        items = [{"windowId": 1, "itemId": 2, "title": "Home", "url": "about:blank", "active": True}]
        future = executor.submit(TestClient(app).get, "/active-items")

        command = self._serve_one(broker, wait_for, items)
        response = future.result(timeout=5)

        assert command.action == "getItems"
        assert command.args == {}
        assert response.status_code == 200
        assert response.json() == items

    def test_activate_passes_body_as_args(self, app, broker, executor, wait_for):
        future = executor.submit(TestClient(app).post, "/activate", json={"windowId": 1, "itemId": 2})

        command = self._serve_one(broker, wait_for, {"ok": True, "title": "Home"})
        response = future.result(timeout=5)

        assert command.action == "activate"
        assert command.args == {"windowId": 1, "itemId": 2}
        assert response.json() == {"ok": True, "title": "Home"}

    def test_open_and_close(self, app, broker, executor, wait_for):
        opened = executor.submit(TestClient(app).post, "/open", json={"url": "https://example.com"})
        command = self._serve_one(broker, wait_for, {"windowId": 3, "itemId": 4})
        assert command.action == "open"
        assert opened.result(timeout=5).json() == {"windowId": 3, "itemId": 4}

        closed = executor.submit(TestClient(app).post, "/close", json={"itemId": 4})
        command = self._serve_one(broker, wait_for, "ok")
        assert command.action == "close"
        assert closed.result(timeout=5).json() == "ok"

    def test_error_payload_returned_as_is(self, app, broker, executor, wait_for):
        """An error payload from the poller is relayed unchanged."""
        future = executor.submit(TestClient(app).post, "/activate", json={"windowId": 1, "itemId": 99})
        self._serve_one(broker, wait_for, {"error": "KeyError: 'No item 99 in window 1'"})

        response = future.result(timeout=5)
        assert response.status_code == 200
        assert "error" in response.json()

    def test_proxy_timeout_returns_504(self):
        """With no poller, a proxy answers 504 instead of hanging."""
        broker = Broker(default_timeout=0.1)
        client = TestClient(create_app(broker))

        response = client.get("/active-items")

        assert response.status_code == 504
        data = response.json()
        assert data["error_code"] == "TIMEOUT"
        assert data["correlation_id"]
        assert broker.pending_count() == 0

    def test_concurrent_proxies_isolated(self, app, broker, executor, wait_for):
        """Proxy requests in flight together each get their own result."""
        first = executor.submit(TestClient(app).post, "/open", json={"url": "https://a.example"})
        assert wait_for(lambda: broker.queue.size() == 1)
        second = executor.submit(TestClient(app).post, "/open", json={"url": "https://b.example"})
        assert wait_for(lambda: broker.queue.size() == 2)

        cmd_a = broker.next_command()
        cmd_b = broker.next_command()
        broker.deliver(cmd_b.id, {"url": cmd_b.args["url"]})
        broker.deliver(cmd_a.id, {"url": cmd_a.args["url"]})

        assert first.result(timeout=5).json() == {"url": "https://a.example"}
        assert second.result(timeout=5).json() == {"url": "https://b.example"}


    def test_waiting_proxies_do_not_starve_poller(self, app, broker, wait_for):
        """More waiting proxies than worker threads still leave /pending responsive."""
        waiting = 45
        with TestClient(app) as shared, ThreadPoolExecutor(max_workers=waiting) as pool:
            futures = [pool.submit(shared.get, "/active-items") for _ in range(waiting)]
            assert wait_for(lambda: broker.queue.size() == waiting, timeout=5.0)

            started = time.monotonic()
            command = shared.get("/pending").json()
            assert time.monotonic() - started < 1.0

            assert shared.post("/deliver", json={"id": command["id"], "data": []}).status_code == 204
            while (next_command := broker.next_command()) is not None:
                broker.deliver(next_command.id, [])

            responses = [f.result(timeout=5) for f in futures]

        assert [r.status_code for r in responses] == [200] * waiting
        assert broker.pending_count() == 0


class TestErrorsAndHousekeeping:
    """Test 404s, 500s, health and connection handling."""

    def test_unknown_route_returns_404(self, client):
        assert client.get("/no-such-route").status_code == 404

    def test_handler_exception_returns_500(self):
        """An exception inside a handler yields 500 with diagnostic text."""
        broker = MagicMock(spec=Broker)
        broker.next_command.side_effect = RuntimeError("queue exploded")
        client = TestClient(create_app(broker), raise_server_exceptions=False)

        response = client.get("/pending")

        assert response.status_code == 500
        data = response.json()
        assert data["error_code"] == "INTERNAL_ERROR"
        assert "RuntimeError" in data["detail"]
        assert "queue exploded" in data["detail"]

    def test_responses_close_connection(self, client):
        response = client.get("/pending")
        assert response.headers["connection"] == "close"

    def test_health_reports_depth(self, client, broker, executor, wait_for):
        future = executor.submit(broker.issue, "ping", None, 5.0)
        assert wait_for(lambda: broker.queue.size() == 1)

        data = client.get("/health").json()
        assert data == {"broker": "healthy", "queue_depth": 1, "pending_waiters": 1}

        command = broker.next_command()
        broker.deliver(command.id, None)
        future.result(timeout=2)
        assert client.get("/health").json()["pending_waiters"] == 0

    def test_module_app_uses_global_broker(self):
        from pollbridge.broker import get_broker
        from pollbridge.server import app

        assert app.state.broker is get_broker()

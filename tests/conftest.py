"""Pytest configuration and fixtures for PollBridge tests."""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from pollbridge.broker import Broker
from pollbridge.capabilities import ItemWorkspace, build_capabilities
from pollbridge.server import create_app


def _wait_for(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll predicate until it returns truthy or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def wait_for():
    """Helper that polls a predicate until it holds."""
    return _wait_for


@pytest.fixture
def broker() -> Broker:
    """Private broker with a short default timeout."""
    return Broker(default_timeout=2.0)


@pytest.fixture
def app(broker):
    """Bridge app bound to the test broker."""
    return create_app(broker)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def executor():
    """Thread pool standing in for independent host callers."""
    pool = ThreadPoolExecutor(max_workers=16)
    yield pool
    pool.shutdown(wait=True, cancel_futures=True)


@pytest.fixture
def workspace() -> ItemWorkspace:
    return ItemWorkspace()


@pytest.fixture
def capabilities(workspace):
    return build_capabilities(workspace)

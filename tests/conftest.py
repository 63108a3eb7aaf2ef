"""
Pytest configuration and shared fixtures
"""

import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from cbshell.client.http_client import ClusterClient
from cbshell.commands import CommandContext
from cbshell.execution.cancellation import CancellationToken
from cbshell.execution.executor import FanOutExecutor
from cbshell.models.cluster import ClusterTimeouts, ConnectionRecord, ShellConfiguration
from cbshell.registry.cluster_registry import ClusterRegistry
from cbshell.storage.base import StorageBackend


class MockStorageBackend(StorageBackend):
    """In-memory storage backend for testing."""

    def __init__(self, configuration: Optional[ShellConfiguration] = None):
        self.configuration = configuration or ShellConfiguration()
        self.saved: List[ShellConfiguration] = []
        self.initialized = False

    async def initialize(self) -> bool:
        self.initialized = True
        return True

    async def load(self) -> ShellConfiguration:
        return self.configuration.model_copy(deep=True)

    async def save(self, configuration: ShellConfiguration) -> bool:
        self.saved.append(configuration)
        self.configuration = configuration
        return True


def make_record(identifier: str, timeout: float = 5.0, **kwargs) -> ConnectionRecord:
    """Build a connection record whose timeouts all equal ``timeout``."""
    fields = dict(
        identifier=identifier,
        connstr=f"couchbase://{identifier}.example.com",
        username="Administrator",
        password="password",
        timeouts=ClusterTimeouts(
            data_timeout=timeout,
            query_timeout=timeout,
            analytics_timeout=timeout,
            search_timeout=timeout,
            management_timeout=timeout
        )
    )
    fields.update(kwargs)
    return ConnectionRecord(**fields)


@pytest.fixture
def mock_storage():
    """Create mock storage backend."""
    return MockStorageBackend()


@pytest.fixture
def registry(mock_storage):
    """Create an empty cluster registry."""
    return ClusterRegistry(mock_storage)


@pytest_asyncio.fixture
async def populated_registry(mock_storage):
    """Registry holding prod-a, prod-b and staging-1 with prod-a active."""
    mock_storage.configuration = ShellConfiguration(
        active_cluster="prod-a",
        clusters=[
            make_record("prod-a"),
            make_record("prod-b"),
            make_record("staging-1"),
        ]
    )
    registry = ClusterRegistry(mock_storage)
    await registry.initialize()
    return registry


@pytest.fixture
def executor(registry):
    """Executor with a short cancellation grace period."""
    return FanOutExecutor(registry, max_concurrency=8, cancel_grace_period=0.1)


@pytest.fixture
def token():
    return CancellationToken()


def transport_factory(handler: Callable[[httpx.Request], httpx.Response]):
    """Client factory whose clients answer through ``handler``."""
    def factory(record: ConnectionRecord) -> ClusterClient:
        return ClusterClient(record, transport=httpx.MockTransport(handler))
    return factory


def routed_handler(routes: Dict[str, Dict[str, Any]]):
    """HTTP handler answering per host and path.

    ``routes`` maps a host to ``{path: response}`` where a response is a JSON
    body, an ``httpx.Response`` or an exception to raise.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        paths = routes.get(request.url.host, {})
        if request.url.path not in paths:
            return httpx.Response(404, json={"message": f"no route for {request.url.path}"})
        response = paths[request.url.path]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)
    return handler


@pytest.fixture
def command_context(populated_registry, token):
    """Command context over the populated registry; clients answer 404 until a handler is set."""
    return CommandContext(
        registry=populated_registry,
        executor=FanOutExecutor(populated_registry, max_concurrency=8, cancel_grace_period=0.1),
        token=token,
        client_factory=transport_factory(routed_handler({}))
    )


def deadline_in(seconds: float) -> float:
    return time.monotonic() + seconds

"""Shared test fixtures: in-memory transports and a stub control plane."""

import asyncio

import pytest

from voxrelay.core.errors import TransportError, UpstreamProvisionError
from voxrelay.transports.base import BaseTransport

_CLOSE = object()


class FakeTransport(BaseTransport):
    """In-memory transport. Tests feed inbound messages and read ``sent``."""

    def __init__(self, connected: bool = True) -> None:
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list = []
        self.connected = connected
        self.accepted = False
        self.disconnect_calls = 0

    def feed(self, message) -> None:
        self.inbox.put_nowait(message)

    def close_from_peer(self) -> None:
        self.inbox.put_nowait(_CLOSE)

    async def connect(self, **kwargs) -> None:
        self.accepted = True
        self.connected = True

    async def send(self, data) -> None:
        if not self.connected:
            raise TransportError("closed")
        self.sent.append(data)

    async def recv(self):
        if not self.connected:
            raise TransportError("closed")
        item = await self.inbox.get()
        if item is _CLOSE:
            self.connected = False
            raise TransportError("peer closed")
        return item

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        self.inbox.put_nowait(_CLOSE)

    def is_connected(self) -> bool:
        return self.connected


class StubProvisioner:
    """Stands in for VapiProvisioner without any network access."""

    def __init__(self, url: str = "wss://upstream.example/call/1", error: str | None = None) -> None:
        self.url = url
        self.error = error
        self.calls = 0
        self.sample_rates: list = []
        self.closed = False

    async def provision(self, assistant_id=None, sample_rate=None) -> str:
        self.calls += 1
        self.sample_rates.append(sample_rate)
        if self.error:
            raise UpstreamProvisionError(self.error, status=500)
        return self.url

    async def close(self) -> None:
        self.closed = True


async def wait_until(predicate, timeout: float = 1.0, interval: float = 0.005) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def stub_provisioner():
    return StubProvisioner


@pytest.fixture
def until():
    return wait_until

"""
Shared fixtures for relay tests.
"""

import asyncio
import json
from typing import Any, Dict, List

import pytest
import pytest_asyncio

from gador_common.test_utils import active_service
from gador_relay.broadcaster import Broadcaster
from gador_relay.config import RelayServiceConfig, ValidationConfig
from gador_relay.registry import Connection, ConnectionRegistry
from gador_relay.relay_service import RelayService
from gador_relay.router import EventRouter
from gador_relay.state import StateAuthority


class FakeWebSocket:
    """Stands in for aiohttp's WebSocketResponse in unit tests."""

    def __init__(self, fail_send: bool = False, fail_ping: bool = False, stalled: bool = False):
        self.closed = False
        self.sent: List[str] = []
        self.pings = 0
        self.fail_send = fail_send
        self.fail_ping = fail_ping
        # a peer that stopped reading: writes never drain
        self.stalled = stalled
        self._drained = asyncio.Event()

    async def send_str(self, data: str):
        if self.fail_send:
            raise ConnectionResetError("Cannot write to closing transport")
        if self.stalled:
            await self._drained.wait()
        self.sent.append(data)

    async def ping(self, message: bytes = b""):
        if self.fail_ping:
            raise ConnectionResetError("Cannot write to closing transport")
        if self.stalled:
            await self._drained.wait()
        self.pings += 1

    async def close(self, code: int = 1000, message: bytes = b""):
        self.closed = True

    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def types(self) -> List[str]:
        return [event["type"] for event in self.events()]



class FakeTransport:
    def __init__(self):
        self.aborted = False

    def is_closing(self) -> bool:
        return self.aborted

    def abort(self):
        self.aborted = True


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_connection():
    """Factory for Connections backed by FakeWebSocket."""
    def _make(transport=None, **kwargs) -> Connection:
        return Connection(FakeWebSocket(**kwargs), peer="127.0.0.1", transport=transport)
    return _make


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def broadcaster(registry):
    return Broadcaster(registry, send_timeout=0.2)


@pytest.fixture
def authority():
    return StateAuthority()


@pytest.fixture
def router(authority, registry, broadcaster):
    return EventRouter(authority, registry, broadcaster, ValidationConfig(), scene_ids=[1, 2, 3, 4])


@pytest.fixture
def relay_config():
    return RelayServiceConfig(host="127.0.0.1", port=0, heartbeat_interval=0.1)


@pytest_asyncio.fixture
async def relay(relay_config):
    """A running RelayService on an ephemeral port."""
    service = RelayService(relay_config)
    async with active_service(service) as active:
        yield active

"""
Shared fixtures for client tests.
"""

import pytest
import pytest_asyncio

from gador_common.test_utils import active_service
from gador_relay.config import RelayServiceConfig
from gador_relay.relay_service import RelayService


@pytest_asyncio.fixture
async def relay():
    """A running relay on an ephemeral port."""
    config = RelayServiceConfig(host="127.0.0.1", port=0, heartbeat_interval=0.2)
    async with active_service(RelayService(config)) as service:
        yield service


@pytest.fixture
def relay_url(relay):
    return f"ws://127.0.0.1:{relay.port}{relay.config.ws_path}"

"""
Fan-out of protocol events to relay connections.
"""

import asyncio
import logging
from typing import Iterable, Optional

from gador_common.constants import SEND_TIMEOUT
from gador_common.schemas import WireModel, encode_event

from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    """Best-effort, at-most-once delivery to the registry's open connections.

    Each event is serialized once per call and written to every target
    concurrently. A send that fails or does not finish within
    ``send_timeout`` is logged and counted; a peer that timed out is aborted
    so it cannot hold up later broadcasts.
    """

    def __init__(self, registry: ConnectionRegistry, send_timeout: float = SEND_TIMEOUT):
        self.registry = registry
        self.send_timeout = send_timeout
        self.messages_sent = 0
        self.send_failures = 0
        self.send_timeouts = 0

    async def send(self, conn: Connection, event: WireModel) -> bool:
        """Send one event to one connection."""
        return await self._deliver(conn, encode_event(event), event)

    async def broadcast_all(self, event: WireModel) -> int:
        """Send to every open connection. Returns the number delivered."""
        return await self._fan_out(self.registry, encode_event(event), event)

    async def broadcast_except(self, event: WireModel, excluded: Optional[Connection]) -> int:
        """Send to every open connection other than ``excluded``."""
        targets = [conn for conn in self.registry if conn is not excluded]
        return await self._fan_out(targets, encode_event(event), event)

    async def _fan_out(self, targets: Iterable[Connection], text: str, event: WireModel) -> int:
        results = await asyncio.gather(*(self._deliver(conn, text, event) for conn in list(targets)))
        return sum(1 for delivered in results if delivered)

    async def _deliver(self, conn: Connection, text: str, event: WireModel) -> bool:
        if not conn.is_open:
            logger.debug(f"Skipping closed connection {conn.id} for {event.type}")
            return False
        try:
            await asyncio.wait_for(conn.send_text(text), self.send_timeout)
        except asyncio.TimeoutError:
            self.send_failures += 1
            self.send_timeouts += 1
            logger.warning(f"Sending {event.type} to {conn.id} timed out after {self.send_timeout}s, "
                           f"dropping the connection")
            conn.abort()
            return False
        except Exception as e:
            self.send_failures += 1
            logger.warning(f"Failed to send {event.type} to {conn.id}: {e!r}")
            return False
        self.messages_sent += 1
        return True

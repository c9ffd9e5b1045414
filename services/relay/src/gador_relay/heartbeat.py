"""
Transport-level liveness probing.

This is the WebSocket ping/pong of the transport, separate from the
application ``heartbeat`` event which the router answers.
"""

import asyncio
import logging

from gador_common.constants import HEARTBEAT_INTERVAL, SEND_TIMEOUT

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class HeartbeatMonitor:
    """Pings every open connection on a fixed interval.

    A failed ping is only logged. Dead peers are reaped by the transport
    closing the socket, which ends that connection's handler. A ping that
    cannot be written within ``ping_timeout`` aborts the peer.
    """

    def __init__(self, registry: ConnectionRegistry, interval: float = HEARTBEAT_INTERVAL,
                 ping_timeout: float = SEND_TIMEOUT):
        self.registry = registry
        self.interval = interval
        self.ping_timeout = ping_timeout
        self.rounds = 0
        self.ping_failures = 0

    async def ping_all(self) -> int:
        """Run one ping round. Returns how many pings were sent."""
        sent = 0
        for conn in self.registry:
            if not conn.is_open:
                continue
            try:
                await asyncio.wait_for(conn.ping(), self.ping_timeout)
                sent += 1
            except asyncio.TimeoutError:
                self.ping_failures += 1
                logger.warning(f"Ping to {conn.id} timed out, dropping the connection")
                conn.abort()
            except Exception as e:
                self.ping_failures += 1
                logger.debug(f"Ping to {conn.id} failed: {e!r}")
        self.rounds += 1
        return sent

    async def run(self):
        """Ping forever, until cancelled."""
        logger.debug(f"Heartbeat monitor started (interval {self.interval}s)")
        while True:
            await asyncio.sleep(self.interval)
            sent = await self.ping_all()
            logger.debug(f"Heartbeat round {self.rounds}: pinged {sent} connection(s)")

"""
Live connection tracking for the relay.
"""

import asyncio
import itertools
import logging
import time
from typing import Dict, Iterator, List, Optional

from aiohttp import WSCloseCode, web

from gador_common.schemas import ClientRole

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class Connection:
    """One accepted WebSocket peer and its declared role."""

    def __init__(self, ws: web.WebSocketResponse, peer: Optional[str] = None,
                 transport: Optional[asyncio.Transport] = None):
        self.id = f"conn-{next(_connection_ids)}"
        self.ws = ws
        self.transport = transport
        self.aborted = False
        self.peer = peer or "unknown"
        self.role = ClientRole.UNIDENTIFIED
        self.connected_at = time.time()

    @property
    def is_open(self) -> bool:
        return not self.aborted and not self.ws.closed

    async def send_text(self, text: str):
        await self.ws.send_str(text)

    async def ping(self):
        await self.ws.ping()

    async def close(self, code: int = WSCloseCode.GOING_AWAY, message: bytes = b"relay shutting down"):
        await self.ws.close(code=code, message=message)

    def abort(self):
        """Drop the connection without a close handshake.

        Used for peers whose writes no longer drain; the reader side then ends
        and the connection is unregistered as usual.
        """
        self.aborted = True
        if self.transport is not None and not self.transport.is_closing():
            self.transport.abort()

    def __repr__(self) -> str:
        return f"Connection({self.id}, peer={self.peer}, role={self.role})"


class ConnectionRegistry:
    """Tracks live connections in accept order.

    Iterating yields a snapshot list, so callers may await sends while
    connections come and go.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def add(self, conn: Connection):
        conn.role = ClientRole.UNIDENTIFIED
        self._connections[conn.id] = conn
        logger.info(f"Connection {conn.id} from {conn.peer} added ({len(self)} open)")

    def identify(self, conn: Connection, role: str):
        """Set (or overwrite) the declared role of a registered connection."""
        if conn.id not in self._connections:
            logger.warning(f"Ignoring identify for unregistered connection {conn.id}")
            return
        previous = conn.role
        conn.role = ClientRole(role)
        if previous == ClientRole.UNIDENTIFIED:
            logger.info(f"Connection {conn.id} identified as {conn.role}")
        else:
            logger.info(f"Connection {conn.id} re-identified: {previous} -> {conn.role}")

    def remove(self, conn: Connection):
        if self._connections.pop(conn.id, None) is not None:
            logger.info(f"Connection {conn.id} ({conn.role}) removed ({len(self)} open)")

    def get(self, conn_id: str) -> Optional[Connection]:
        return self._connections.get(conn_id)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def by_role(self, role: str) -> List[Connection]:
        return [conn for conn in self._connections.values() if conn.role == role]

    def role_counts(self) -> Dict[str, int]:
        counts = {role.value: 0 for role in ClientRole}
        for conn in self._connections.values():
            counts[conn.role.value] += 1
        return counts

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.connections())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn: object) -> bool:
        return isinstance(conn, Connection) and conn.id in self._connections

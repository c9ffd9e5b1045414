"""
Client side of the Gador realtime protocol.

ClientConnectionManager keeps one WebSocket open to the relay, announces its
role as soon as the socket opens and reconnects after a fixed delay whenever
the socket closes. It holds at most one reconnect timer and never runs two
connection attempts at once.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import aiohttp

from gador_common.constants import RECONNECT_DELAY
from gador_common.schemas import (
    ClientIdentify, ClientRole, ProtocolError, RealtimeEvent, StringComparableEnum,
    WireModel, encode_event, parse_event,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[RealtimeEvent], Union[None, Awaitable[None]]]
StatusCallback = Callable[["ConnectionState"], Any]


class ConnectionState(StringComparableEnum):
    """Client connection lifecycle."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"      # socket open, identify not sent yet
    IDENTIFIED = "identified"    # client_identify sent


class ClientConnectionManager:
    """Connect, identify and reconnect to the relay.

    Every valid inbound event goes to ``on_message`` (plain or async callable)
    whether or not identification has completed. ``send_event`` never queues:
    while the socket is closed it logs and returns False.
    """

    def __init__(self,
                 url: str,
                 role: str,
                 on_message: Optional[MessageHandler] = None,
                 reconnect_delay: float = RECONNECT_DELAY,
                 on_status: Optional[StatusCallback] = None,
                 connect_timeout: float = 5.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = url
        self.role = ClientRole(role)
        if self.role == ClientRole.UNIDENTIFIED:
            raise ValueError("role must be 'remote' or 'stage'")
        self.on_message = on_message
        self.on_status = on_status
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout

        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._state = ConnectionState.DISCONNECTED
        self._running = False
        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._identified = asyncio.Event()

        # Statistics
        self.connect_attempts = 0
        self.reconnects_scheduled = 0
        self.messages_sent = 0
        self.messages_received = 0
        self.protocol_errors = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        """True while the socket is open."""
        return self._ws is not None and not self._ws.closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    async def start(self):
        """Begin connecting. Returns immediately."""
        if self._running:
            return
        self._running = True
        if self._session is None or self._session.closed:
            # only the handshake is bounded, the socket itself stays open indefinitely
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)
            )
            self._owns_session = True
        self._begin_connect()

    async def stop(self):
        """Close the socket and stop reconnecting."""
        self._running = False
        self._cancel_reconnect()

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if self._connect_task is not None:
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass
            self._connect_task = None

        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def __aenter__(self) -> "ClientConnectionManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def wait_identified(self, timeout: Optional[float] = None) -> bool:
        """Wait until the role has been announced on an open socket."""
        try:
            await asyncio.wait_for(self._identified.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def send_event(self, event: WireModel) -> bool:
        """Send one event if the socket is open.

        Returns:
            True if the frame was written, False otherwise
        """
        ws = self._ws
        if ws is None or ws.closed:
            logger.error(f"Not connected, cannot send {event.type}")
            return False
        try:
            await ws.send_str(encode_event(event))
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.warning(f"Failed to send {event.type}: {e!r}")
            return False
        self.messages_sent += 1
        logger.debug(f"Sent {event.type}")
        return True

    def _begin_connect(self):
        self._reconnect_handle = None
        if not self._running:
            return
        if self._connect_task is not None and not self._connect_task.done():
            logger.debug("Connection attempt already in flight, not starting another")
            return
        self._connect_task = asyncio.create_task(
            self._connect_and_listen(), name=f"gador-{self.role}-connection"
        )

    async def _connect_and_listen(self):
        """One connection lifecycle: connect, identify, read until closed."""
        self.connect_attempts += 1
        self._set_state(ConnectionState.CONNECTING)
        try:
            async with self._session.ws_connect(self.url, autoping=True) as ws:
                self._ws = ws
                self._set_state(ConnectionState.CONNECTED)
                logger.info(f"Connected to {self.url} as {self.role}")

                await self._identify(ws)

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        await self._dispatch(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning(f"WebSocket error: {ws.exception()!r}")
                        break
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Connection to {self.url} failed: {e!r}")
        finally:
            self._ws = None
            self._handle_closed()

    async def _identify(self, ws: aiohttp.ClientWebSocketResponse):
        await ws.send_str(encode_event(ClientIdentify(role=self.role.value)))
        self.messages_sent += 1
        self._identified.set()
        self._set_state(ConnectionState.IDENTIFIED)

    async def _dispatch(self, raw: str):
        try:
            event = parse_event(raw)
        except ProtocolError as e:
            self.protocol_errors += 1
            logger.warning(f"Dropping invalid frame from relay: {e.reason}")
            return

        self.messages_received += 1
        logger.debug(f"Received {event.type}")
        if self.on_message is None:
            return
        try:
            result = self.on_message(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in message handler for {event.type}: {e!r}", exc_info=True)

    def _handle_closed(self):
        self._identified.clear()
        if self._state != ConnectionState.DISCONNECTED:
            logger.info(f"Disconnected from {self.url}")
        self._set_state(ConnectionState.DISCONNECTED)

        self._cancel_reconnect()
        if not self._running:
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._begin_connect)
        self.reconnects_scheduled += 1
        logger.info(f"Reconnecting in {self.reconnect_delay}s")

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _set_state(self, new_state: ConnectionState):
        if new_state == self._state:
            return
        logger.debug(f"Connection state {self._state} -> {new_state}")
        self._state = new_state
        if self.on_status is not None:
            try:
                self.on_status(new_state)
            except Exception as e:
                logger.error(f"Error in status callback: {e!r}")

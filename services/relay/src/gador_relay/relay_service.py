"""
Main Gador Relay Service implementation.

This service:
1. Accepts WebSocket connections from the stage and remote controls
2. Owns the authoritative installation state and relays protocol events
3. Pings every connection periodically to keep the transport alive
4. Serves read-only status endpoints under /api
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from aiohttp import WSMsgType, web

from gador_common.base_service import BaseService
from gador_common.constants import API_PREFIX

from .broadcaster import Broadcaster
from .config import RelayServiceConfig, DEFAULT_CONFIG_PATH
from .heartbeat import HeartbeatMonitor
from .registry import Connection, ConnectionRegistry
from .router import EventRouter
from .state import StateAuthority

SERVICE_TYPE = "relay"

logger = logging.getLogger(__name__)

# Inbox item kinds
CONNECT = "connect"
FRAME = "frame"
DISCONNECT = "disconnect"

InboxItem = Tuple[str, Connection, Optional[Union[str, bytes]]]


class RelayService(BaseService):
    """
    Relay Service for the Gador installation.

    WebSocket handlers only read frames and post them to a single inbox.
    One dispatcher task drains the inbox strictly in order, so connects,
    frames and disconnects from every peer are processed one at a time.
    """

    def __init__(self, config: RelayServiceConfig):
        """Initialize the relay service.

        Args:
            config: Service configuration object.
        """
        self.config = config

        super().__init__(service_name=self.config.service_name, service_type=SERVICE_TYPE)

        self.authority = StateAuthority(self.config.initial_state.to_state())
        self.registry = ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry, send_timeout=self.config.send_timeout)
        self.router = EventRouter(
            self.authority,
            self.registry,
            self.broadcaster,
            validation=self.config.validation,
            scene_ids=self.config.scene_ids,
        )
        self.heartbeat = HeartbeatMonitor(
            self.registry, self.config.heartbeat_interval, ping_timeout=self.config.send_timeout
        )

        self._inbox: "asyncio.Queue[InboxItem]" = asyncio.Queue()
        self.app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self.port: Optional[int] = None

    async def start(self):
        """Start the HTTP/WebSocket listener and register the background tasks."""
        self.app = self._create_app()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()

        # port 0 binds an ephemeral port, report the real one
        addresses = self._runner.addresses
        self.port = addresses[0][1] if addresses else self.config.port
        logger.info(f"Relay listening on {self.config.host}:{self.port}{self.config.ws_path}")

        self.add_task(self._dispatch_loop())
        self.add_task(self.heartbeat.run())

        await super().start()

    async def stop(self):
        """Close every connection and shut the listener down."""
        logger.info("Stopping relay service...")

        for conn in self.registry.connections():
            try:
                await asyncio.wait_for(conn.close(), self.config.send_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Close handshake with {conn.id} timed out, aborting")
                conn.abort()
            except Exception as e:
                logger.debug(f"Error closing {conn.id}: {e!r}")

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        await super().stop()

        logger.info("Relay service stopped")

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.config.ws_path, self._handle_websocket)
        app.router.add_get(f"{API_PREFIX}/state", self._handle_state)
        app.router.add_get(f"{API_PREFIX}/scenes", self._handle_scenes)
        app.router.add_get(f"{API_PREFIX}/connections", self._handle_connections)
        app.router.add_get(f"{API_PREFIX}/status", self._handle_status)
        return app

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        conn = Connection(ws, peer=request.remote, transport=request.transport)
        await self._inbox.put((CONNECT, conn, None))

        try:
            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    self.messages_received += 1
                    await self._inbox.put((FRAME, conn, msg.data))
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"Connection {conn.id} closed with exception {ws.exception()!r}")
        finally:
            await self._inbox.put((DISCONNECT, conn, None))

        return ws

    async def _dispatch_loop(self):
        """Process inbox items one at a time, in arrival order."""
        while True:
            kind, conn, payload = await self._inbox.get()
            try:
                if kind == CONNECT:
                    await self.router.handle_connect(conn)
                elif kind == FRAME:
                    await self.router.handle_frame(conn, payload)
                elif kind == DISCONNECT:
                    await self.router.handle_disconnect(conn)
            except Exception as e:
                self.record_error(e, custom_message=f"Error handling {kind} for {conn.id}: {e!r}")
            finally:
                self._inbox.task_done()

    async def drain(self):
        """Wait until every queued item has been dispatched."""
        await self._inbox.join()

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self.authority.get().to_wire())

    async def _handle_scenes(self, request: web.Request) -> web.Response:
        return web.json_response([scene.model_dump() for scene in self.config.scenes])

    async def _handle_connections(self, request: web.Request) -> web.Response:
        return web.json_response({
            "total": len(self.registry),
            "roles": self.registry.role_counts(),
        })

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_stats())

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats["messages_sent"] = self.broadcaster.messages_sent
        stats.update({
            "connections": len(self.registry),
            "events_handled": self.router.events_handled,
            "protocol_errors": self.router.protocol_errors,
            "rejected_values": self.router.rejected_values,
            "send_failures": self.broadcaster.send_failures,
            "send_timeouts": self.broadcaster.send_timeouts,
            "heartbeat_rounds": self.heartbeat.rounds,
        })
        return stats


async def run_relay_service(
    config_path: Union[str, Path] = DEFAULT_CONFIG_PATH,
    args: Optional[argparse.Namespace] = None
):
    """
    Run the Gador Relay Service.

    Args:
        config_path: Path to configuration file
        args: CLI arguments from argparse
    """
    config = RelayServiceConfig.from_overrides(
        config_file=config_path,
        args=args
    )

    service = RelayService(config=config)

    await service.start()
    await service.run()

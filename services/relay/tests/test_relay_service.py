"""
End-to-end tests for the RelayService over real WebSocket connections.
"""

import asyncio

import aiohttp
import pytest
import pytest_asyncio

from gador_common.config import ConfigError
from gador_common.schemas import ClientRole
from gador_common.service_state import ServiceState
from gador_common.test_utils import active_service, wait_until
from gador_relay.config import RelayServiceConfig
from gador_relay.relay_service import RelayService

RECEIVE_TIMEOUT = 2.0
QUIET_TIMEOUT = 0.3


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


def ws_url(relay) -> str:
    return f"ws://127.0.0.1:{relay.port}{relay.config.ws_path}"


def api_url(relay, endpoint: str) -> str:
    return f"http://127.0.0.1:{relay.port}/api/{endpoint}"


async def join(session, relay, role=None):
    """Open a connection, consume the initial state_sync, optionally identify."""
    ws = await session.ws_connect(ws_url(relay))
    greeting = await ws.receive_json(timeout=RECEIVE_TIMEOUT)
    assert greeting["type"] == "state_sync"
    if role:
        await ws.send_json({"type": "client_identify", "role": role})
    return ws


async def assert_quiet(ws):
    with pytest.raises(asyncio.TimeoutError):
        await ws.receive(timeout=QUIET_TIMEOUT)


class TestScenarios:

    @pytest.mark.asyncio
    async def test_connect_receives_state_sync(self, relay, session):
        ws = await session.ws_connect(ws_url(relay))
        message = await ws.receive_json(timeout=RECEIVE_TIMEOUT)

        assert message == {
            "type": "state_sync",
            "state": {"currentScene": 1, "volume": 0.8, "scene1AutoEnabled": False},
        }
        await ws.close()

    @pytest.mark.asyncio
    async def test_scene_change_fanout(self, relay, session):
        stage = await join(session, relay, "stage")
        remote = await join(session, relay, "remote")

        await remote.send_json({"type": "scene_change", "sceneId": 3})

        assert await stage.receive_json(timeout=RECEIVE_TIMEOUT) == {"type": "scene_change", "sceneId": 3}
        expected_sync = {
            "type": "state_sync",
            "state": {"currentScene": 3, "volume": 0.8, "scene1AutoEnabled": False},
        }
        assert await stage.receive_json(timeout=RECEIVE_TIMEOUT) == expected_sync
        assert await remote.receive_json(timeout=RECEIVE_TIMEOUT) == expected_sync
        await assert_quiet(remote)

    @pytest.mark.asyncio
    async def test_leaving_scene1_clears_auto(self, relay, session):
        stage = await join(session, relay, "stage")
        remote = await join(session, relay, "remote")

        await remote.send_json({"type": "scene1_complete"})
        assert (await stage.receive_json(timeout=RECEIVE_TIMEOUT))["type"] == "scene1_complete"
        sync = await stage.receive_json(timeout=RECEIVE_TIMEOUT)
        assert sync["state"]["scene1AutoEnabled"] is True
        await remote.receive_json(timeout=RECEIVE_TIMEOUT)

        await remote.send_json({"type": "scene_change", "sceneId": 2})
        await stage.receive_json(timeout=RECEIVE_TIMEOUT)
        sync = await stage.receive_json(timeout=RECEIVE_TIMEOUT)

        assert sync["state"] == {"currentScene": 2, "volume": 0.8, "scene1AutoEnabled": False}

    @pytest.mark.asyncio
    async def test_phrase_not_replayed_on_reconnect(self, relay, session):
        stage = await join(session, relay, "stage")
        remote = await join(session, relay, "remote")
        await wait_until(lambda: len(relay.registry.by_role(ClientRole.STAGE)) == 1)

        await stage.close()
        await wait_until(lambda: len(relay.registry) == 1, message="stage to unregister")

        await remote.send_json({"type": "phrase_trigger", "phraseText": "Hola", "sceneId": 2})
        await relay.drain()

        stage = await session.ws_connect(ws_url(relay))
        message = await stage.receive_json(timeout=RECEIVE_TIMEOUT)
        assert message == {
            "type": "state_sync",
            "state": {"currentScene": 1, "volume": 0.8, "scene1AutoEnabled": False},
        }
        await assert_quiet(stage)
        # the sender never hears its own phrase either
        await assert_quiet(remote)


class TestRelayBehaviour:

    @pytest.mark.asyncio
    async def test_invalid_frames_keep_connection_open(self, relay, session):
        remote = await join(session, relay, "remote")

        await remote.send_str("this is not json")
        await remote.send_json({"type": "teleport"})
        await remote.send_bytes(b"\xff\xfe")
        await remote.send_json({"type": "heartbeat"})

        assert await remote.receive_json(timeout=RECEIVE_TIMEOUT) == {"type": "heartbeat"}
        assert not remote.closed
        assert relay.router.protocol_errors == 3
        assert relay.authority.get().current_scene == 1

    @pytest.mark.asyncio
    async def test_hostile_json_counted_as_protocol_error(self, relay, session):
        remote = await join(session, relay, "remote")

        await remote.send_str('{"type": "scene_change", "sceneId": ' + "1" * 5000 + "}")
        await remote.send_str("[" * 200000)
        await remote.send_json({"type": "heartbeat"})

        assert await remote.receive_json(timeout=RECEIVE_TIMEOUT) == {"type": "heartbeat"}
        assert relay.router.protocol_errors == 2
        assert relay.errors == 0
        assert not remote.closed

    @pytest.mark.asyncio
    async def test_roles_registered(self, relay, session):
        await join(session, relay, "remote")
        await join(session, relay, "remote")
        await join(session, relay, "stage")
        await join(session, relay)

        await wait_until(lambda: relay.registry.role_counts()["stage"] == 1)
        await relay.drain()
        assert relay.registry.role_counts() == {"unidentified": 1, "remote": 2, "stage": 1}

    @pytest.mark.asyncio
    async def test_concurrent_senders_converge(self, relay, session):
        stage = await join(session, relay, "stage")
        remotes = [await join(session, relay, "remote") for _ in range(3)]

        await asyncio.gather(*(
            ws.send_json({"type": "scene_change", "sceneId": scene_id})
            for ws, scene_id in zip(remotes, (2, 3, 4))
        ))
        await wait_until(lambda: relay.router.events_handled >= 3 + 4)
        await relay.drain()

        final = relay.authority.get().to_wire()
        last_sync = None
        while True:
            try:
                message = await stage.receive_json(timeout=QUIET_TIMEOUT)
            except asyncio.TimeoutError:
                break
            if message["type"] == "state_sync":
                last_sync = message
        assert last_sync == {"type": "state_sync", "state": final}

    @pytest.mark.asyncio
    async def test_heartbeat_rounds(self, relay, session):
        await join(session, relay, "stage")
        await wait_until(lambda: relay.heartbeat.rounds >= 2, timeout=3.0, message="heartbeat rounds")
        assert relay.heartbeat.ping_failures == 0

    @pytest.mark.asyncio
    async def test_disconnect_unregisters(self, relay, session):
        ws = await join(session, relay, "remote")
        await wait_until(lambda: len(relay.registry) == 1)
        await ws.close()
        await wait_until(lambda: len(relay.registry) == 0, message="connection removal")


class TestHttpApi:

    @pytest.mark.asyncio
    async def test_state_endpoint(self, relay, session):
        remote = await join(session, relay, "remote")
        await remote.send_json({"type": "volume_change", "volume": 0.4})
        await remote.receive_json(timeout=RECEIVE_TIMEOUT)

        async with session.get(api_url(relay, "state")) as response:
            assert response.status == 200
            assert await response.json() == {"currentScene": 1, "volume": 0.4, "scene1AutoEnabled": False}

    @pytest.mark.asyncio
    async def test_scenes_endpoint(self, relay, session):
        async with session.get(api_url(relay, "scenes")) as response:
            scenes = await response.json()
        assert [scene["id"] for scene in scenes] == [1, 2, 3, 4]
        assert len(scenes[0]["phrases"]) == 5

    @pytest.mark.asyncio
    async def test_connections_and_status(self, relay, session):
        await join(session, relay, "stage")
        await wait_until(lambda: relay.registry.role_counts()["stage"] == 1)

        async with session.get(api_url(relay, "connections")) as response:
            assert await response.json() == {
                "total": 1,
                "roles": {"unidentified": 0, "remote": 0, "stage": 1},
            }

        async with session.get(api_url(relay, "status")) as response:
            status = await response.json()
        assert status["state"] == "running"
        assert status["type"] == "relay"
        assert status["connections"] == 1


class TestRelayLifecycle:

    @pytest.mark.asyncio
    async def test_ephemeral_port_resolved(self, relay_config):
        service = RelayService(relay_config)
        async with active_service(service) as active:
            assert active.state == ServiceState.RUNNING
            assert active.port > 0
        assert service.state == ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_closes_clients(self, relay_config):
        service = RelayService(relay_config)
        async with aiohttp.ClientSession() as client_session:
            async with active_service(service) as active:
                ws = await join(client_session, active, "remote")
                # keep reading so the close handshake completes
                pending = asyncio.create_task(ws.receive(timeout=RECEIVE_TIMEOUT))
                await asyncio.sleep(0)
            message = await pending
            assert message.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING)
            assert ws.closed

    @pytest.mark.asyncio
    async def test_custom_initial_state(self):
        config = RelayServiceConfig(
            host="127.0.0.1", port=0,
            initial_state={"scene": 2, "volume": 0.5, "scene1_auto_enabled": False},
        )
        async with aiohttp.ClientSession() as client_session:
            async with active_service(RelayService(config)) as active:
                ws = await client_session.ws_connect(ws_url(active))
                message = await ws.receive_json(timeout=RECEIVE_TIMEOUT)
                await ws.close()
        assert message["state"] == {"currentScene": 2, "volume": 0.5, "scene1AutoEnabled": False}


class TestRelayConfig:

    def test_load_from_toml(self, tmp_path):
        config_file = tmp_path / "relay.toml"
        config_file.write_text(
            'port = 5050\n'
            'heartbeat_interval = 10.0\n'
            '[initial_state]\n'
            'volume = 0.3\n'
            '[validation]\n'
            'volume_policy = "reject"\n'
        )

        config = RelayServiceConfig.from_overrides(config_file=config_file)

        assert config.port == 5050
        assert config.heartbeat_interval == 10.0
        assert config.initial_state.volume == 0.3
        assert config.initial_state.scene == 1
        assert config.validation.volume_policy == "reject"
        assert config.scene_ids == [1, 2, 3, 4]

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "relay.toml"
        config_file.write_text("port = 5050\n")
        monkeypatch.setenv("GADOR_PORT", "6060")

        config = RelayServiceConfig.from_overrides(config_file=config_file)

        assert config.port == 6060

    @pytest.mark.parametrize("override", [
        {"ws_path": "ws"},
        {"initial_state": {"scene": 9}},
        {"initial_state": {"volume": 1.5}},
        {"scenes": [{"id": 1, "name": "a"}, {"id": 1, "name": "b"}]},
    ])
    def test_invalid_config(self, override):
        with pytest.raises(ConfigError):
            RelayServiceConfig.from_overrides(override_config=override)

    def test_unknown_initial_scene_allowed_with_allow_policy(self):
        config = RelayServiceConfig.from_overrides(override_config={
            "initial_state": {"scene": 9},
            "validation": {"scene_policy": "allow"},
        })
        assert config.initial_state.scene == 9

"""
Tests for the StageMirror event model.
"""

import asyncio

import pytest

from gador_common.schemas import (
    Heartbeat, InstallationState, PhraseTrigger, Scene1Complete, SceneChange, StateSync, VolumeChange,
)
from gador_client.stage import StageMirror


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mirror(clock):
    return StageMirror(phrase_lifetime=35.0, auto_phrases=["uno", "dos", "tres"], clock=clock)


class TestStateMirroring:

    def test_state_sync_replaces_state(self, mirror):
        snapshot = InstallationState(current_scene=3, volume=0.4, scene1_auto_enabled=False)
        mirror.handle_event(StateSync(state=snapshot))
        assert mirror.state == snapshot
        assert mirror.synced

    def test_relayed_events_update_state(self, mirror):
        mirror.handle_event(Scene1Complete())
        assert mirror.state.scene1_auto_enabled

        mirror.handle_event(VolumeChange(volume=0.1))
        assert mirror.state.volume == 0.1

        mirror.handle_event(SceneChange(scene_id=2))
        assert mirror.state.current_scene == 2
        assert not mirror.state.scene1_auto_enabled

    def test_returning_to_scene1_keeps_auto(self, mirror):
        mirror.handle_event(Scene1Complete())
        mirror.handle_event(SceneChange(scene_id=1))
        assert mirror.auto_play_active

    def test_heartbeat_counted_only(self, mirror):
        mirror.handle_event(Heartbeat())
        assert mirror.events_seen == 1
        assert mirror.state == InstallationState()


class TestPhrases:

    def test_phrase_trigger_shown(self, mirror, clock):
        shown = []
        mirror.on_phrase = shown.append

        mirror.handle_event(PhraseTrigger(phrase_text="Hola", scene_id=2))

        assert [p.text for p in mirror.active_phrases] == ["Hola"]
        assert shown[0].scene_id == 2
        assert shown[0].expires_at == clock.now + 35.0
        assert not shown[0].automatic

    def test_phrases_expire(self, mirror, clock):
        mirror.show_phrase("first", 2)
        clock.advance(20.0)
        mirror.show_phrase("second", 2)

        clock.advance(15.0)
        assert [p.text for p in mirror.active_phrases] == ["second"]

        clock.advance(20.0)
        assert mirror.active_phrases == []


class TestAutoPlay:

    def test_inactive_until_scene1_complete(self, mirror):
        assert not mirror.auto_play_active
        assert mirror.next_auto_phrase() is None

    def test_cycles_phrases(self, mirror):
        mirror.handle_event(Scene1Complete())
        texts = [mirror.next_auto_phrase() for _ in range(4)]
        assert texts == ["uno", "dos", "tres", "uno"]
        assert all(p.automatic for p in mirror.active_phrases)

    def test_stops_when_scene_changes(self, mirror):
        mirror.handle_event(Scene1Complete())
        mirror.handle_event(SceneChange(scene_id=3))
        assert mirror.next_auto_phrase() is None

    def test_state_sync_disables(self, mirror):
        mirror.handle_event(Scene1Complete())
        mirror.handle_event(StateSync(state=InstallationState(current_scene=1, scene1_auto_enabled=False)))
        assert not mirror.auto_play_active

    @pytest.mark.asyncio
    async def test_run_auto_play(self):
        shown = []
        mirror = StageMirror(auto_phrases=["uno"], on_phrase=shown.append)
        mirror.handle_event(Scene1Complete())

        task = asyncio.create_task(mirror.run_auto_play(0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(shown) >= 2
        assert {p.text for p in shown} == {"uno"}

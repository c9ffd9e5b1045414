"""Command line for Gador clients.

Usage examples:
  gador-client remote scene 3              # switch the installation to scene 3
  gador-client remote phrase "Hola" --scene 2
  gador-client remote volume 0.5
  gador-client remote mute                 # toggle mute
  gador-client remote reset                # emergency stop, back to scene 1
  gador-client remote scene1-next          # next scene 1 phrase, then scene1_complete
  gador-client stage                       # follow the installation like the stage display

Environment overrides:
  GADOR_URL, GADOR_RECONNECT_DELAY, ... (see ClientConfig)
"""
import argparse
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from gador_common.config import ConfigError
from gador_common.logger import setup_logging
from gador_common.schemas import ClientRole, InstallationState, RealtimeEvent, StateSync, DEFAULT_SCENES, find_scene

from .config import ClientConfig, DEFAULT_CONFIG_PATH
from .connection import ClientConnectionManager, ConnectionState
from .remote import RemoteControl
from .stage import ActivePhrase, StageMirror

logger = logging.getLogger(__name__)

console = Console()

# Seconds to wait for the relay's state_sync after an action
SYNC_WAIT = 1.0


def print_state(state: InstallationState, scenes) -> None:
    scene = find_scene(scenes, state.current_scene)
    table = Table(title="Installation state", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("scene", f"{state.current_scene} ({scene.name if scene else 'unknown'})")
    table.add_row("volume", "muted" if state.volume == 0 else f"{state.volume:.2f}")
    table.add_row("scene 1 auto", "on" if state.scene1_auto_enabled else "off")
    console.print(table)


async def _scene(remote: RemoteControl, args: argparse.Namespace) -> bool:
    return await remote.select_scene(args.scene_id)


async def _phrase(remote: RemoteControl, args: argparse.Namespace) -> bool:
    return await remote.trigger_phrase(args.text, args.scene)


async def _volume(remote: RemoteControl, args: argparse.Namespace) -> bool:
    return await remote.set_volume(args.volume)


async def _mute(remote: RemoteControl, args: argparse.Namespace) -> bool:
    return await remote.toggle_mute()


async def _reset(remote: RemoteControl, args: argparse.Namespace) -> bool:
    return await remote.emergency_stop()


async def _scene1_next(remote: RemoteControl, args: argparse.Namespace) -> bool:
    # a one-shot process keeps no sequence position, --index supplies it
    remote.scene1_index = args.index
    phrase = await remote.advance_scene1()
    if not remote.connection.connected:
        return False
    if phrase is not None:
        console.print(f"Sent phrase: [cyan]{phrase}[/cyan]")
    else:
        console.print("Scene 1 sequence complete, automatic playback enabled")
    return True


REMOTE_ACTIONS: Dict[str, Callable[[RemoteControl, argparse.Namespace], Awaitable[bool]]] = {
    "scene": _scene,
    "phrase": _phrase,
    "volume": _volume,
    "mute": _mute,
    "reset": _reset,
    "scene1-next": _scene1_next,
}


async def run_remote(config: ClientConfig, args: argparse.Namespace) -> int:
    async with RemoteControl.from_config(config) as remote:
        if not await remote.wait_synced(config.connect_timeout):
            console.print(f"[red]Could not reach the relay at {config.url}[/red]")
            return 1

        remote.synced.clear()
        ok = await REMOTE_ACTIONS[args.action](remote, args)
        if not ok:
            console.print("[red]Action was not sent[/red]")
            return 1

        await remote.wait_synced(SYNC_WAIT)
        print_state(remote.state, remote.scenes)
    return 0


async def run_stage(config: ClientConfig) -> int:
    mirror = StageMirror(phrase_lifetime=config.phrase_lifetime, on_phrase=_show_phrase)

    def on_event(event: RealtimeEvent):
        mirror.handle_event(event)
        if isinstance(event, StateSync):
            print_state(event.state, DEFAULT_SCENES)

    def on_status(state: ConnectionState):
        style = "green" if state == ConnectionState.IDENTIFIED else "yellow"
        console.print(f"[{style}]connection: {state}[/{style}]")

    connection = ClientConnectionManager(
        config.url,
        ClientRole.STAGE,
        on_message=on_event,
        reconnect_delay=config.reconnect_delay,
        on_status=on_status,
        connect_timeout=config.connect_timeout,
    )
    async with connection:
        await mirror.run_auto_play(config.auto_phrase_interval)
    return 0


def _show_phrase(phrase: ActivePhrase) -> None:
    tag = "auto" if phrase.automatic else f"scene {phrase.scene_id}"
    console.print(f"[magenta]{tag}[/magenta] {phrase.text}")


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be zero or greater, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gador-client", description="Gador remote control and stage client")
    p.add_argument("--url", help="Relay WebSocket URL (default from config)")
    p.add_argument("--config", "-c", default=str(DEFAULT_CONFIG_PATH), help="Path to client config file")
    p.add_argument("--log-level", "-l", default="WARNING",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], help="Logging level")
    sub = p.add_subparsers(dest="command", required=True)

    p_remote = sub.add_parser("remote", help="Send one operator action")
    actions = p_remote.add_subparsers(dest="action", required=True)

    a_scene = actions.add_parser("scene", help="Switch to a scene")
    a_scene.add_argument("scene_id", type=int, help="Scene number")

    a_phrase = actions.add_parser("phrase", help="Trigger a phrase on the stage")
    a_phrase.add_argument("text", help="Phrase text")
    a_phrase.add_argument("--scene", type=int, help="Scene id (default: current scene)")

    a_volume = actions.add_parser("volume", help="Set the volume")
    a_volume.add_argument("volume", type=float, help="Volume between 0 and 1")

    actions.add_parser("mute", help="Toggle mute")
    actions.add_parser("reset", help="Emergency stop, back to scene 1")

    a_next = actions.add_parser("scene1-next", help="Send scene 1 phrase INDEX, or scene1_complete past the end")
    a_next.add_argument("--index", type=_non_negative_int, default=0, help="Zero-based phrase position")

    sub.add_parser("stage", help="Follow events like the stage display")

    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("", args.log_level, service_label="CLIENT")

    overrides = {"role": "remote" if args.command == "remote" else "stage"}
    if args.url:
        overrides["url"] = args.url
    try:
        config = ClientConfig.from_overrides(config_file=args.config, override_config=overrides)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        return 1

    try:
        if args.command == "remote":
            return asyncio.run(run_remote(config, args))
        return asyncio.run(run_stage(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

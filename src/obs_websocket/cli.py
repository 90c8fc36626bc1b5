"""OBS WebSocket CLI.

Usage:
    obs-websocket status                      # Streaming/recording status
    obs-websocket stream start|stop|toggle    # Control the stream
    obs-websocket stream settings             # Show stream settings

    obs-websocket scene current               # Show the program scene
    obs-websocket scene list                  # List scenes
    obs-websocket scene switch <name>         # Switch scene
    obs-websocket scene items [<name>]        # List scene items
    obs-websocket scene render <item> --show|--hide

    obs-websocket studio-mode status|enable|disable|toggle

    obs-websocket media play-pause|restart|stop|state <source>

    obs-websocket call <RequestType> --args '{"k": "v"}'
    obs-websocket listen                      # Print events until Ctrl+C

Connection options can also come from OBS_WEBSOCKET_URL,
OBS_WEBSOCKET_PASSWORD and OBS_WEBSOCKET_TIMEOUT.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click
from pydantic import BaseModel

from .client import ObsWebSocket, create_client_from_env
from .errors import ObsWebSocketError
from .protocol.messages import ObsEvent

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def _configure_logging(verbose: bool) -> None:
    # Logs go to stderr so JSON output on stdout stays clean
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _emit(ctx: click.Context, value: Any) -> None:
    """Print a result in the selected output format."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True)

    if ctx.obj["format"] == FORMAT_JSON:
        click.echo(json.dumps(value, indent=2))
        return

    if isinstance(value, dict):
        width = max((len(str(k)) for k in value), default=0)
        for key, item in value.items():
            if isinstance(item, (dict, list)):
                item = json.dumps(item)
            click.echo(f"{str(key):<{width}}  {item}")
    else:
        click.echo(str(value))


def _run(ctx: click.Context, action: Callable[[ObsWebSocket], Awaitable[Any]]) -> Any:
    """Connect, run one action, disconnect. Exits 1 on failure."""
    settings = ctx.obj

    async def run() -> Any:
        client = create_client_from_env(
            url=settings["url"],
            password=settings["password"],
            timeout=settings["timeout"],
        )
        async with client:
            return await action(client)

    try:
        return asyncio.run(run())
    except ObsWebSocketError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except TimeoutError as e:
        click.echo(f"Timed out: {e}", err=True)
        sys.exit(1)
    except (ConnectionError, OSError) as e:
        click.echo(f"Cannot connect to OBS: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--url", default=None, help="Server URL (default: ws://localhost:4444)")
@click.option("--password", default=None, help="Password, if OBS requires authentication")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for each response")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    url: str | None,
    password: str | None,
    timeout: float | None,
    output_format: str,
    verbose: bool,
) -> None:
    """Remote control for OBS Studio over its WebSocket API."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj.update(url=url, password=password, timeout=timeout, format=output_format)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show streaming and recording status."""
    _emit(ctx, _run(ctx, lambda obs: obs.streaming.get_status()))


@main.command()
@click.argument("request_type")
@click.option("--args", "args_json", default=None, help="Request arguments as a JSON object")
@click.pass_context
def call(ctx: click.Context, request_type: str, args_json: str | None) -> None:
    """Send any request and print the response payload."""
    args = None
    if args_json:
        try:
            args = json.loads(args_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--args") from e
        if not isinstance(args, dict):
            raise click.BadParameter("Must be a JSON object", param_hint="--args")

    response = _run(ctx, lambda obs: obs.command(request_type, args))
    _emit(ctx, response.data)


@main.command()
@click.pass_context
def listen(ctx: click.Context) -> None:
    """Print server events until interrupted."""
    output_format = ctx.obj["format"]

    def print_event(event: ObsEvent, client: ObsWebSocket) -> None:
        if output_format == FORMAT_JSON:
            click.echo(event.raw)
        else:
            click.echo(f"{event.update_type}  {json.dumps(event.data)}")

    async def wait_forever(obs: ObsWebSocket) -> None:
        obs.add_listener(print_event)
        while obs.is_connected:
            await asyncio.sleep(0.5)

    click.echo("Listening for events, press Ctrl+C to stop", err=True)
    try:
        _run(ctx, wait_forever)
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)


# =============================================================================
# Stream Commands
# =============================================================================


@main.group()
def stream() -> None:
    """Control streaming."""


@stream.command("start")
@click.pass_context
def stream_start(ctx: click.Context) -> None:
    """Start streaming."""
    _run(ctx, lambda obs: obs.streaming.start())
    click.echo("Streaming started")


@stream.command("stop")
@click.pass_context
def stream_stop(ctx: click.Context) -> None:
    """Stop streaming."""
    _run(ctx, lambda obs: obs.streaming.stop())
    click.echo("Streaming stopped")


@stream.command("toggle")
@click.pass_context
def stream_toggle(ctx: click.Context) -> None:
    """Toggle streaming."""
    _run(ctx, lambda obs: obs.streaming.toggle())
    click.echo("Streaming toggled")


@stream.command("settings")
@click.pass_context
def stream_settings(ctx: click.Context) -> None:
    """Show stream service settings."""
    _emit(ctx, _run(ctx, lambda obs: obs.streaming.get_settings()))


# =============================================================================
# Scene Commands
# =============================================================================


@main.group()
def scene() -> None:
    """Inspect and switch scenes."""


@scene.command("current")
@click.pass_context
def scene_current(ctx: click.Context) -> None:
    """Show the program scene."""
    current = _run(ctx, lambda obs: obs.scenes.get_current())
    if ctx.obj["format"] == FORMAT_JSON:
        _emit(ctx, current)
        return

    click.echo(current.name)
    for item in current.sources:
        marker = " " if item.render else "-"
        click.echo(f"  {marker} {item.name}")


@scene.command("list")
@click.pass_context
def scene_list(ctx: click.Context) -> None:
    """List scenes, marking the current one."""
    scenes = _run(ctx, lambda obs: obs.scenes.list())
    if ctx.obj["format"] == FORMAT_JSON:
        _emit(ctx, scenes)
        return

    for entry in scenes.scenes:
        marker = "*" if entry.name == scenes.current_scene else " "
        click.echo(f"{marker} {entry.name}")


@scene.command("switch")
@click.argument("name")
@click.pass_context
def scene_switch(ctx: click.Context, name: str) -> None:
    """Switch the program scene."""
    _run(ctx, lambda obs: obs.scenes.set_current(name))
    click.echo(f"Switched to {name}")


@scene.command("items")
@click.argument("name", required=False)
@click.pass_context
def scene_items(ctx: click.Context, name: str | None) -> None:
    """List the items of a scene."""
    items = _run(ctx, lambda obs: obs.scenes.get_items(name))
    if ctx.obj["format"] == FORMAT_JSON:
        _emit(ctx, items)
        return

    click.echo(items.scene_name)
    for item in items.scene_items:
        click.echo(f"  {item.item_id:>4}  {item.source_name}  ({item.source_kind or '-'})")


@scene.command("render")
@click.argument("item")
@click.option("--show/--hide", default=True, help="Show or hide the item")
@click.option("--scene", "scene_name", default=None, help="Scene holding the item")
@click.pass_context
def scene_render(ctx: click.Context, item: str, show: bool, scene_name: str | None) -> None:
    """Show or hide a scene item."""
    _run(ctx, lambda obs: obs.scenes.set_item_render(item, show, scene_name))
    click.echo(f"{item} {'shown' if show else 'hidden'}")


# =============================================================================
# Studio Mode Commands
# =============================================================================


@main.group("studio-mode")
def studio_mode() -> None:
    """Control studio mode."""


@studio_mode.command("status")
@click.pass_context
def studio_mode_status(ctx: click.Context) -> None:
    """Show whether studio mode is enabled."""
    _emit(ctx, _run(ctx, lambda obs: obs.studio_mode.get_status()))


@studio_mode.command("enable")
@click.pass_context
def studio_mode_enable(ctx: click.Context) -> None:
    _run(ctx, lambda obs: obs.studio_mode.enable())
    click.echo("Studio mode enabled")


@studio_mode.command("disable")
@click.pass_context
def studio_mode_disable(ctx: click.Context) -> None:
    _run(ctx, lambda obs: obs.studio_mode.disable())
    click.echo("Studio mode disabled")


@studio_mode.command("toggle")
@click.pass_context
def studio_mode_toggle(ctx: click.Context) -> None:
    _run(ctx, lambda obs: obs.studio_mode.toggle())
    click.echo("Studio mode toggled")


# =============================================================================
# Media Commands
# =============================================================================


@main.group()
def media() -> None:
    """Control media sources."""


@media.command("play-pause")
@click.argument("source")
@click.option("--pause/--play", default=None, help="Force a state instead of toggling")
@click.pass_context
def media_play_pause(ctx: click.Context, source: str, pause: bool | None) -> None:
    """Toggle play/pause of a media source."""
    _run(ctx, lambda obs: obs.media.play_pause(source, pause))
    action = {None: "toggled", True: "paused", False: "playing"}[pause]
    click.echo(f"{source} {action}")


@media.command("restart")
@click.argument("source")
@click.pass_context
def media_restart(ctx: click.Context, source: str) -> None:
    _run(ctx, lambda obs: obs.media.restart(source))
    click.echo(f"{source} restarted")


@media.command("stop")
@click.argument("source")
@click.pass_context
def media_stop(ctx: click.Context, source: str) -> None:
    _run(ctx, lambda obs: obs.media.stop(source))
    click.echo(f"{source} stopped")


@media.command("state")
@click.argument("source")
@click.pass_context
def media_state(ctx: click.Context, source: str) -> None:
    """Show the state of a media source."""
    _emit(ctx, _run(ctx, lambda obs: obs.media.get_state(source)))


if __name__ == "__main__":
    main()

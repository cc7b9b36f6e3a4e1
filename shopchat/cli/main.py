"""shopchat command-line interface."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from shopchat import __version__
from shopchat.client import ChatClient
from shopchat.config import DEFAULT_API_URL, ClientConfig
from shopchat.conversation import ConversationView
from shopchat.display import render_message
from shopchat.errors import TransportFailure
from shopchat.models import MessageKind
from shopchat.prompts import IMAGE_TIP, QUICK_ACTIONS, WELCOME_TEXT


def _build_client(config: ClientConfig) -> ChatClient:
    return ChatClient(config)


def _fail(message: str) -> None:
    click.echo(f"✗ {message}", err=True)
    sys.exit(1)


def _echo_quick_actions() -> None:
    for index, action in enumerate(QUICK_ACTIONS, start=1):
        click.echo(f"  {index}. {action.label}")


@click.group()
@click.version_option(version=__version__, prog_name="shopchat")
@click.option(
    "--api-url",
    envvar="SHOPCHAT_API_URL",
    default=DEFAULT_API_URL,
    show_default=True,
    help="Base URL of the chat backend.",
)
@click.option(
    "--ws-url",
    envvar="SHOPCHAT_WS_URL",
    default=None,
    help="Base URL of the push channel (defaults to <api-url>/ws).",
)
@click.option(
    "--timeout",
    "timeout_s",
    envvar="SHOPCHAT_TIMEOUT_S",
    type=float,
    default=30.0,
    show_default=True,
    help="Request timeout in seconds.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def app(ctx: click.Context, api_url: str, ws_url: str | None, timeout_s: float, verbose: bool) -> None:
    """shopchat - talk to the AI shopping assistant from a terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    try:
        ctx.obj = ClientConfig(api_url=api_url, ws_url=ws_url, timeout_s=timeout_s)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


@app.command()
@click.pass_obj
def health(config: ClientConfig) -> None:
    """Probe the backend health endpoint."""

    async def _run() -> dict:
        client = _build_client(config)
        try:
            return await client.health()
        finally:
            await client.aclose()

    try:
        payload = asyncio.run(_run())
    except TransportFailure as exc:
        _fail(f"Health check failed: {exc}")
        return
    click.echo(json.dumps(payload, indent=2, default=str))


@app.command()
@click.argument("message", default="")
@click.option(
    "--image",
    "image_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Image to search with.",
)
@click.pass_obj
def ask(config: ClientConfig, message: str, image_path: Path | None) -> None:
    """Send a single MESSAGE (and optional image) and print the reply."""
    image = image_path.read_bytes() if image_path is not None else None
    if not message.strip() and image is None:
        _fail("Provide a message or an image.")
        return

    async def _run() -> tuple[list[str], bool]:
        async with _build_client(config) as client:
            if not client.session.is_active:
                return [client.coordinator.notice or "Session unavailable"], False
            result = await client.submit(message, image)
            if result.reply is None:
                return [f"Message rejected ({result.reason.value if result.reason else 'unknown'})"], False
            ok = result.reply.kind != MessageKind.ERROR_NOTICE
            return render_message(result.reply), ok

    lines, ok = asyncio.run(_run())
    if not ok:
        _fail("\n".join(lines))
        return
    for line in lines:
        click.echo(line)


def _read_line() -> str | None:
    try:
        return click.prompt("You", default="", show_default=False)
    except click.Abort:
        return None


async def _chat_loop(client: ChatClient) -> None:
    click.echo(WELCOME_TEXT)
    _echo_quick_actions()
    click.echo(IMAGE_TIP)
    click.echo("Type a number for a quick action, '/image PATH [text]' to attach an image, '/quit' to exit.")

    last_connected: list[bool] = [False]

    def _on_view(view: ConversationView) -> None:
        if view.is_connected != last_connected[0]:
            last_connected[0] = view.is_connected
            click.echo("[online]" if view.is_connected else "[connecting...]")

    client.subscribe(_on_view)

    while True:
        line = await asyncio.to_thread(_read_line)
        if line is None or line.strip() == "/quit":
            break
        line = line.strip()
        if not line:
            _echo_quick_actions()
            continue
        image: bytes | None = None
        if line.isdigit() and 1 <= int(line) <= len(QUICK_ACTIONS):
            result = await client.quick_action(QUICK_ACTIONS[int(line) - 1].prompt)
        else:
            if line.startswith("/image "):
                _, _, rest = line.partition(" ")
                path_text, _, line = rest.partition(" ")
                path = Path(path_text).expanduser()
                if not path.is_file():
                    click.echo(f"✗ No such image: {path}", err=True)
                    continue
                image = path.read_bytes()
            result = await client.submit(line, image)
        if result.reply is None:
            click.echo(f"✗ Message rejected ({result.reason.value if result.reason else 'unknown'})", err=True)
            continue
        for rendered in render_message(result.reply):
            click.echo(rendered)


@app.command()
@click.pass_obj
def chat(config: ClientConfig) -> None:
    """Start an interactive conversation."""

    async def _run() -> str | None:
        async with _build_client(config) as client:
            if not client.session.is_active:
                return client.coordinator.notice or "Session unavailable"
            await _chat_loop(client)
        return None

    error = asyncio.run(_run())
    if error:
        _fail(error)


if __name__ == "__main__":  # pragma: no cover
    app()

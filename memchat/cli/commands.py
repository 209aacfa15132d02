"""CLI commands for memchat."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from memchat import __version__
from memchat.config.loader import get_config_path, load_config, save_config
from memchat.config.schema import Config
from memchat.errors import CompletionError
from memchat.logging import setup_logging

app = typer.Typer(
    name="memchat",
    help="Chat assistant with bounded short-term and long-term memory.",
    no_args_is_help=True,
)

_EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"memchat v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """memchat - bounded conversational memory."""


def _load(config_path: Optional[Path]) -> Config:
    config = load_config(config_path)
    setup_logging(json_output=config.logging.json_output, level=config.logging.level)
    return config


def _build_service(config: Config):
    from memchat.agent.chat import ChatService

    return ChatService.from_config(config)


@app.command()
def init(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file to create"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
) -> None:
    """Write a default configuration file."""
    path = config_path or get_config_path()
    if path.exists() and not force:
        typer.echo(f"Config already exists at {path} (use --force to overwrite)")
        raise typer.Exit(1)
    save_config(Config(), path)
    typer.echo(f"Created config at {path}")


@app.command()
def serve(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Start the HTTP chat server."""
    from memchat.server import ChatServer

    config = _load(config_path)
    service = _build_service(config)
    server = ChatServer(
        service,
        host=host or config.server.host,
        port=port or config.server.port,
    )
    typer.echo(f"memchat listening on http://{server.host}:{server.port}")
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        typer.echo("\nGoodbye!")


@app.command()
def chat(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Send one message and exit"),
    session_id: str = typer.Option("default", "--session", "-s", help="Session id"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    show_debug: bool = typer.Option(False, "--debug", help="Print context stats after each reply"),
) -> None:
    """Chat from the terminal, one shot or interactively."""
    config = _load(config_path)
    service = _build_service(config)

    async def _turn(text: str) -> None:
        try:
            result = await service.handle_turn(text, session_id=session_id)
        except CompletionError as e:
            typer.echo(f"Error: {e}", err=True)
            return
        typer.echo(result.reply)
        if show_debug:
            typer.echo(json.dumps(result.debug, ensure_ascii=False))

    if message:
        asyncio.run(_turn(message))
        return

    async def _repl() -> None:
        typer.echo("Interactive mode (type exit or Ctrl+C to quit)\n")
        while True:
            try:
                text = await asyncio.to_thread(input, "You: ")
            except (EOFError, KeyboardInterrupt):
                typer.echo("\nGoodbye!")
                return
            text = text.strip()
            if not text:
                continue
            if text.lower() in _EXIT_COMMANDS:
                typer.echo("Goodbye!")
                return
            await _turn(text)

    asyncio.run(_repl())


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to look for"),
    session_id: str = typer.Option("default", "--session", "-s", help="Session id"),
    limit: int = typer.Option(5, "--limit", "-n", min=0, help="Maximum results"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Rank stored messages of a session by similarity to QUERY."""
    config = _load(config_path)
    service = _build_service(config)
    results = asyncio.run(service.search(query, session_id=session_id, limit=limit))
    if not results:
        typer.echo("No results.")
        return
    for i, r in enumerate(results, 1):
        typer.echo(f"{i}. [{r['score']:.3f}] {r['role']}: {r['content']}")


if __name__ == "__main__":
    app()

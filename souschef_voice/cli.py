"""Command line entry points for the SousChef voice client."""

from __future__ import annotations

import asyncio
import json

import httpx
import typer

from . import app as app_module
from .config.settings import get_settings

cli = typer.Typer(name="souschef", help="SousChef voice client")


@cli.command()
def chat(voice: bool = typer.Option(False, "--voice", help="Enable the microphone and spoken replies")) -> None:
    """Start an interactive cooking conversation."""
    app_module.run(voice=voice, settings=get_settings())


@cli.command()
def say(text: str = typer.Argument(..., help="What to tell the assistant")) -> None:
    """Send a single message and print the reply."""
    for line in asyncio.run(app_module.say_once(get_settings(), text)):
        typer.echo(line)


@cli.command()
def sessions() -> None:
    """List active cooking sessions."""
    try:
        items = asyncio.run(app_module.list_sessions(get_settings()))
    except httpx.HTTPError as exc:
        typer.echo(f"Failed to load sessions: {exc}")
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"sessions": items}, ensure_ascii=False))


@cli.command()
def config() -> None:
    """Print the effective settings (the API token is masked)."""
    data = get_settings().model_dump()
    if data.get("api_token"):
        data["api_token"] = "***"
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

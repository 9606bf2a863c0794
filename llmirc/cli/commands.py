"""CLI commands for llmirc."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich.console import Console

from llmirc import __logo__, __version__

app = typer.Typer(
    name="llmirc",
    help=f"{__logo__} llmirc - LLM conversation bot for IRC",
    no_args_is_help=True,
)

console = Console()

EXIT_CONFIG_ERROR = 1
EXIT_FATAL = 2


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} llmirc v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """llmirc - LLM conversation bot for IRC."""


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _build_overrides(
    *,
    model: str | None,
    server: str | None,
    port: int | None,
    channels: list[str] | None,
    nickname: str | None,
    tls: bool | None,
    leader: bool | None,
    respond_all: bool | None,
    bots: list[str] | None,
    api_key_env: str | None,
) -> dict[str, Any]:
    """Translate CLI flags into snake_case config overrides; unset flags are omitted."""
    irc: dict[str, Any] = {}
    if server:
        irc["server"] = server
    if port is not None:
        irc["port"] = port
    if channels:
        irc["channels"] = channels
    if nickname:
        irc["nickname"] = nickname
    if tls is not None:
        irc["tls"] = tls

    model_cfg: dict[str, Any] = {}
    if model:
        model_cfg["model"] = model
    if api_key_env:
        model_cfg["api_key_env"] = api_key_env

    trigger: dict[str, Any] = {}
    if leader is not None:
        trigger["lead"] = leader
    if respond_all is not None:
        trigger["respond_to_all"] = respond_all
    if bots:
        trigger["bot_nicks"] = bots

    overrides: dict[str, Any] = {}
    for key, section in (("irc", irc), ("model", model_cfg), ("trigger", trigger)):
        if section:
            overrides[key] = section
    return overrides


def _load(config_path: Path | None, overrides: dict[str, Any] | None = None):
    from llmirc.config.loader import load_config
    from llmirc.core.errors import ConfigError

    try:
        return load_config(config_path, overrides)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)


# ============================================================================
# Onboard / Config
# ============================================================================


@app.command()
def onboard(
    config_path: Path | None = typer.Option(None, "--config", help="Config file to write"),
) -> None:
    """Write a default llmirc configuration file."""
    from llmirc.config.loader import get_config_path, save_config
    from llmirc.config.schema import Config

    path = config_path or get_config_path()
    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), path)
    console.print(f"[green]✓[/green] Created config at {path}")
    console.print(f"\n{__logo__} llmirc is ready!")
    console.print("\nNext steps:")
    console.print("  1. Export your API key: [cyan]export OPENROUTER_API_KEY=...[/cyan]")
    console.print("     Get one at: https://openrouter.ai/keys")
    console.print("  2. Run: [cyan]llmirc run -c '#mychannel' -n mybot[/cyan]")


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(None, "--config", help="Config file to read"),
) -> None:
    """Print the effective configuration as JSON."""
    from llmirc.config.loader import convert_to_camel, get_config_path

    config = _load(config_path)
    path = config_path or get_config_path()
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[dim]defaults[/dim]'}")
    data = convert_to_camel(config.model_dump())
    if data.get("irc", {}).get("password"):
        data["irc"]["password"] = "***"
    console.print_json(json.dumps(data))


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    model: str | None = typer.Option(None, "--model", "-m", help="Model id to request"),
    server: str | None = typer.Option(None, "--server", "-s", help="IRC server host"),
    port: int | None = typer.Option(None, "--port", "-p", help="IRC server port"),
    channels: list[str] | None = typer.Option(
        None, "--channel", "-c", help="Channel to join (repeatable)"
    ),
    nickname: str | None = typer.Option(None, "--nickname", "-n", help="Bot nickname"),
    tls: bool | None = typer.Option(None, "--tls/--no-tls", help="Connect with TLS"),
    leader: bool | None = typer.Option(
        None, "--leader/--no-leader", "-l", help="Start conversations when the channel is idle"
    ),
    respond_all: bool | None = typer.Option(
        None, "--respond-all/--addressed-only", help="Answer every message, not only mentions"
    ),
    bots: list[str] | None = typer.Option(
        None, "--bot", help="Nick pattern of another bot (repeatable, fnmatch)"
    ),
    api_key_env: str | None = typer.Option(
        None, "--api-key-env", help="Environment variable holding the API key"
    ),
    config_path: Path | None = typer.Option(None, "--config", help="Config file to read"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """Connect to IRC and start talking."""
    from llmirc.core.errors import (
        AuthenticationError,
        ConfigError,
        ConnectError,
        UnauthorizedError,
    )
    from llmirc.providers.factory import ProviderFactory
    from llmirc.session.supervisor import SessionSupervisor
    from llmirc.telemetry.inmemory import InMemoryTelemetry

    _configure_logging(verbose)
    overrides = _build_overrides(
        model=model,
        server=server,
        port=port,
        channels=channels,
        nickname=nickname,
        tls=tls,
        leader=leader,
        respond_all=respond_all,
        bots=bots,
        api_key_env=api_key_env,
    )
    config = _load(config_path, overrides)

    try:
        client = ProviderFactory(config).create_chat_client()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    telemetry = InMemoryTelemetry()
    supervisor = SessionSupervisor(config=config, model=client, telemetry=telemetry)

    mode = "leader" if config.trigger.lead else "follower"
    console.print(
        f"{__logo__} Starting llmirc as [cyan]{config.irc.nickname}[/cyan] on "
        f"{config.irc.server}:{config.irc.port} ({', '.join(config.irc.channels)}, {mode})"
    )

    async def serve() -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGTERM, lambda: loop.create_task(supervisor.stop()))
        except NotImplementedError:
            pass
        try:
            await supervisor.run()
        finally:
            await client.aclose()

    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
    except (AuthenticationError, ConnectError, UnauthorizedError) as e:
        console.print(f"[red]Fatal:[/red] {e}")
        raise typer.Exit(EXIT_FATAL)


if __name__ == "__main__":
    app()

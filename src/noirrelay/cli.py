"""
Noir Relay CLI

Command-line interface for running and inspecting the relay server.
"""

import logging
from typing import Optional

import click
import structlog

from noirrelay import __version__
from noirrelay.config import settings

logger = structlog.get_logger()


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
    )


def _mask(value: Optional[str]) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 4:
        return "****"
    return f"{value[:2]}{'*' * (len(value) - 4)}{value[-2:]}"


# ══════════════════════════════════════════════════════════════
# CLI Group
# ══════════════════════════════════════════════════════════════


@click.group()
@click.version_option(version=__version__, prog_name="noirrelay")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Noir Relay - WebSocket bridge to a live generative-AI endpoint.

    Buffers client frames until the upstream handshake completes, then
    relays both directions.
    """
    _configure_logging("DEBUG" if debug or settings.debug else settings.log_level)


# ══════════════════════════════════════════════════════════════
# Server Commands
# ══════════════════════════════════════════════════════════════


@cli.command()
@click.option("--host", default=None, help="Host to bind to (default: HOST)")
@click.option("--port", default=None, type=int, help="Port to bind to (default: PORT)")
@click.option("--reload/--no-reload", default=False, help="Enable auto-reload")
def serve(host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Start the relay server."""
    import uvicorn

    host = host or settings.host
    port = port or settings.port

    click.echo(f"Starting Noir Relay on {host}:{port}")
    click.echo(f"  - ws://{host}:{port}/?password=...")
    if settings.open_mode:
        click.echo("  ! APP_PASSWORD not set, accepting every client")
    if not settings.gemini_api_key:
        click.echo("  ! GEMINI_API_KEY not set, sessions will be refused", err=True)

    uvicorn.run(
        "noirrelay.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        workers=1,
        factory=True,
    )


@cli.command()
def config() -> None:
    """Show the effective configuration with secrets masked."""
    click.echo(f"Environment:     {settings.app_env}")
    click.echo(f"Listen:          {settings.host}:{settings.port}")
    click.echo(f"Static dir:      {settings.static_dir}")
    click.echo(
        "Access gate:     "
        + ("open mode" if settings.open_mode else f"password {_mask(settings.app_password)}")
    )
    click.echo(f"Upstream URL:    {settings.upstream_url}")
    click.echo(f"Upstream key:    {_mask(settings.gemini_api_key)}")

    timeout = settings.upstream_open_timeout
    click.echo(f"Open timeout:    {f'{timeout}s' if timeout else 'none'}")

    bound = settings.pending_queue_max_frames
    click.echo(
        f"Pending queue:   {bound or 'unbounded'}"
        + (f" frames, overflow={settings.pending_queue_overflow}" if bound else "")
    )


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

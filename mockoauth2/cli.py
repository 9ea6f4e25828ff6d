"""
Mock OAuth2 Server Command-Line Interface

Provides commands to start the server and inspect its configuration.
"""

import sys
import json
import logging
from pathlib import Path
from typing import Optional

import click
import uvicorn
from fastapi import FastAPI

from mockoauth2.core.config_manager import ConfigManager, MockOAuth2Config
from mockoauth2.core.logging_config import setup_logging
from mockoauth2.oauth.request_handler import OAuth2HttpRequestHandler
from mockoauth2.oauth.routes import create_router


__version__ = "0.1.0"


def create_app(
    config: Optional[MockOAuth2Config] = None,
    handler: Optional[OAuth2HttpRequestHandler] = None,
) -> FastAPI:
    """
    Create the FastAPI application serving the mock authorization server.

    Args:
        config: Server configuration, loaded from the environment if None
        handler: Request handler to serve, built from ``config`` if None

    Returns:
        FastAPI app; the handler is available as ``app.state.oauth2_handler``
    """
    if handler is None:
        if config is None:
            config = ConfigManager().load()
        handler = OAuth2HttpRequestHandler(config)

    app = FastAPI(
        title="Mock OAuth2 Server",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.oauth2_handler = handler
    app.include_router(create_router(handler))
    return app


@click.group()
@click.version_option(version=__version__, prog_name="mock-oauth2-server")
@click.pass_context
def cli(ctx):
    """
    Mock OAuth2 Server - OAuth2/OpenID Connect authorization server for tests

    Issues real signed JWTs for any issuer id in the request path.
    """
    ctx.ensure_object(dict)


@cli.command()
@click.option(
    "--host",
    default=None,
    help="Host to bind to (default: 127.0.0.1)",
)
@click.option(
    "--port",
    default=None,
    help="Port to bind to (default: 8080)",
    type=int,
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
@click.option(
    "--interactive-login",
    is_flag=True,
    default=None,
    help="Render a login form at the authorization endpoint",
)
def start(
    host: Optional[str],
    port: Optional[int],
    config: Optional[Path],
    log_level: Optional[str],
    interactive_login: Optional[bool],
):
    """
    Start the mock OAuth2 server.

    Examples:
        mock-oauth2-server start
        mock-oauth2-server start --port 9000 --interactive-login
        mock-oauth2-server start --config config.yaml --log-level DEBUG
    """
    overrides = {}
    if host:
        overrides.setdefault("server", {})["host"] = host
    if port:
        overrides.setdefault("server", {})["port"] = port
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level.upper()
    if interactive_login:
        overrides["interactive_login"] = True

    loaded = ConfigManager().load(
        config_file=str(config) if config else None,
        cli_overrides=overrides,
    )
    setup_logging(
        level=loaded.logging.level,
        format_type=loaded.logging.format,
        log_file=loaded.logging.file,
        rotation_size=loaded.logging.rotation_size,
        rotation_count=loaded.logging.rotation_count,
        module_levels=loaded.logging.module_levels,
    )
    logger = logging.getLogger("mockoauth2.cli")

    click.echo(f"Starting Mock OAuth2 Server v{__version__}")
    click.echo(f"Host: {loaded.server.host}:{loaded.server.port}")
    if config:
        click.echo(f"Config: {config}")
    click.echo(f"Interactive login: {loaded.interactive_login}")
    click.echo()

    try:
        uvicorn.run(
            create_app(loaded),
            host=loaded.server.host,
            port=loaded.server.port,
            log_level=loaded.logging.level.lower(),
            access_log=True,
        )
    except KeyboardInterrupt:
        click.echo("\nShutting down Mock OAuth2 Server...")
    except Exception as e:
        logger.exception("server terminated")
        click.echo(f"[ERROR] Error starting Mock OAuth2 Server: {e}", err=True)
        sys.exit(1)


@cli.command()
def version():
    """Show the server version."""
    click.echo(f"Mock OAuth2 Server version {__version__}")


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
def config(config: Optional[Path]):
    """
    Show the effective configuration.

    Merges the configuration file, MOCK_OAUTH2_* environment variables and
    defaults, and prints the result as JSON.
    """
    loaded = ConfigManager().load(config_file=str(config) if config else None)
    click.echo(json.dumps(loaded.model_dump(), indent=2))


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()

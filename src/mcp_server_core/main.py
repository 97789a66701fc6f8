"""
Command-line interface for the MCP server core.

``serve`` loads configuration, imports component modules and serves
over stdio; ``init`` writes a default configuration file.
"""

import asyncio
import importlib
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __version__
from .components.registry import ComponentRegistry
from .config.settings import create_default_config, load_config
from .server import MCPServer
from .utils.logging import get_logger, setup_logging


def load_component_modules(registry: ComponentRegistry, module_names: Tuple[str, ...]) -> None:
    """
    Import each module and call its ``register(registry)`` hook.

    Raises:
        click.ClickException: If a module cannot be imported or has no hook
    """
    for module_name in module_names:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise click.ClickException(f"Cannot import component module {module_name}: {e}")

        register = getattr(module, "register", None)
        if not callable(register):
            raise click.ClickException(
                f"Component module {module_name} has no register(registry) function"
            )
        register(registry)


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Set logging level",
)
@click.option("--debug/--no-debug", default=None, help="Include internal error detail in responses")
@click.option(
    "--module",
    "-m",
    "modules",
    multiple=True,
    help="Import a module exposing register(registry); repeatable",
)
@click.version_option(version=__version__)
def main(
    config: Optional[Path] = None,
    log_level: Optional[str] = None,
    debug: Optional[bool] = None,
    modules: Tuple[str, ...] = (),
) -> None:
    """
    MCP Server Core - serve tools, resources and prompts over stdio.
    """
    try:
        config_data = load_config(config_path=config)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to load configuration: {e}")

    if log_level:
        config_data.server.log_level = log_level.upper()
    if debug is not None:
        config_data.server.debug = debug

    setup_logging(config_data.server.log_level)
    logger = get_logger(__name__)

    registry = ComponentRegistry()
    load_component_modules(registry, modules)

    logger.info(
        "Starting MCP server",
        version=config_data.server_info.version,
        config_file=str(config) if config else "default",
        log_level=config_data.server.log_level,
        modules=list(modules),
    )

    server = MCPServer(config_data, registry)

    try:
        asyncio.run(server.run_stdio())
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server failed", error=str(e), exc_info=True)
        sys.exit(1)


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    help="Path to save configuration file",
)
def init_config(config: Optional[Path] = None) -> None:
    """Initialize a configuration file with default settings."""
    config_path = config or Path("config.json")

    if config_path.exists():
        click.echo(f"Configuration file already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            return

    try:
        create_default_config(config_path)
    except OSError as e:
        click.echo(f"Failed to create configuration file: {e}", err=True)
        sys.exit(1)

    click.echo(f"Created configuration file: {config_path}")
    click.echo("\nNext steps:")
    click.echo(f"   mcp-server-core serve --config {config_path} --module your_package.components")


@click.group()
def cli() -> None:
    """MCP Server Core CLI."""
    pass


cli.add_command(main, name="serve")
cli.add_command(init_config, name="init")


if __name__ == "__main__":
    cli()

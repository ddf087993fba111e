"""Command-line interface for agerus."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .context import AppContext
from .errors import AgerusError, BackendConnectionError, ConfigurationError
from .interface.app import App
from .interface.display import DisplayManager
from .interface.terminal import TerminalInterface
from .llm.client import OllamaClient
from .memory.store import SessionStore
from .utils.config import AgentConfig, ConfigManager
from .utils.logging import setup_logging

display = DisplayManager()


def _apply_overrides(
    config: AgentConfig,
    model: Optional[str],
    workspace: Optional[str],
    no_sandbox: bool,
) -> None:
    if model:
        config.llm.model = model
    if workspace:
        config.workspace_path = Path(workspace).expanduser().resolve()
    if no_sandbox:
        config.sandbox.enabled = False


async def _open_app(manager: ConfigManager, session: Optional[str]) -> App:
    context = AppContext(manager)
    try:
        await context.start_workspace()
    except AgerusError:
        await context.close()
        raise
    app = App(context, session)
    if session:
        await app.load_session(session)
    return app


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Configuration file path")
@click.pass_context
def cli(ctx, config_path):
    """agerus - a local coding agent with a sandboxed shell."""
    manager = ConfigManager(Path(config_path) if config_path else None)
    manager.load_config()
    ctx.obj = manager


def _workspace_options(func):
    func = click.option("--no-sandbox", is_flag=True, help="Run a local bash instead of the Docker sandbox")(func)
    func = click.option("--workspace", "-w", type=click.Path(file_okay=False), help="Workspace directory")(func)
    func = click.option("--model", "-m", help="Model name")(func)
    return func


@cli.command()
@_workspace_options
@click.option("--session", "-s", help="Session to resume")
@click.pass_obj
def start(manager: ConfigManager, model, workspace, no_sandbox, session):
    """Start the interactive terminal interface."""
    _apply_overrides(manager.config, model, workspace, no_sandbox)
    setup_logging(manager.config)

    display.print_panel(
        "🤖 Starting agerus...",
        title="Initialization",
        style="cyan",
        border_style="cyan"
    )

    async def interactive():
        app = await _open_app(manager, session)
        await TerminalInterface(app, display).start()

    try:
        asyncio.run(interactive())
    except KeyboardInterrupt:
        display.print("\n👋 Agent stopped", style="yellow")
    except AgerusError as e:
        display.print_error(f"Failed to start agent: {e}")
        sys.exit(1)


@cli.command()
@click.argument("message")
@_workspace_options
@click.option("--quiet", "-q", is_flag=True, help="Hide shell output")
@click.pass_obj
def chat(manager: ConfigManager, message, model, workspace, no_sandbox, quiet):
    """Send a single message to the agent (non-interactive mode)."""
    _apply_overrides(manager.config, model, workspace, no_sandbox)
    setup_logging(manager.config)
    display.show_terminal = not quiet

    async def single_chat():
        app = await _open_app(manager, None)
        try:
            await TerminalInterface(app, display).run_once(message)
        finally:
            await app.shutdown()
            await app.context.close()

    try:
        asyncio.run(single_chat())
    except KeyboardInterrupt:
        display.print("\nChat interrupted", style="yellow")
    except AgerusError as e:
        display.print_error(f"Chat failed: {e}")
        sys.exit(1)


@cli.command()
@click.pass_obj
def models(manager: ConfigManager):
    """List the models available on the backend."""
    llm = manager.config.llm
    client = OllamaClient(llm.chat_url, llm.model, llm.request_timeout)
    try:
        names = client.list_models()
    except BackendConnectionError as e:
        display.print_error(str(e))
        sys.exit(1)
    display.print_models(names, llm.model)


@cli.command()
@click.pass_obj
def config(manager: ConfigManager):
    """Show current configuration."""
    display.print_tree(manager.config.model_dump(mode="json"), title="⚙️ Current Configuration")
    display.print(f"Loaded from {manager.config_path}", style="dim")


@cli.command()
@click.option("--key", "-k", required=True, help="Configuration key, e.g. llm.model")
@click.option("--value", "-v", required=True, help="Configuration value")
@click.pass_obj
def set_config(manager: ConfigManager, key, value):
    """Set a configuration value."""
    data = manager.config.model_dump(mode="json")
    keys = key.split(".")
    current = data
    for k in keys[:-1]:
        current = current.get(k)
        if not isinstance(current, dict):
            display.print_error(f"Unknown configuration key: {key}")
            sys.exit(1)
    if keys[-1] not in current:
        display.print_error(f"Unknown configuration key: {key}")
        sys.exit(1)
    current[keys[-1]] = value

    try:
        manager.load_from_dict(data)
    except ConfigurationError as e:
        display.print_error(f"Failed to set configuration: {e}")
        sys.exit(1)
    manager.save_config()
    display.print_success(f"Set {key} = {value}")


@cli.command()
@click.option("--delete", "-d", "delete_name", help="Delete the named session")
def sessions(delete_name):
    """List saved chat sessions."""

    async def run():
        store = SessionStore()
        try:
            if delete_name:
                if await store.delete_session(delete_name):
                    display.print_success(f"Deleted session {delete_name}")
                else:
                    display.print_error(f"No session named '{delete_name}'")
                return
            display.print_sessions(await store.list_sessions())
        finally:
            await store.close()

    asyncio.run(run())


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

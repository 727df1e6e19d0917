"""Main CLI entry point for TestSys.

Provides commands that work against the object store in the state directory:
    testsys add <manifest>
    testsys status [--name <name>] [--state <state>]
    testsys delete --all | --name <name> [--include-dependencies]
    testsys restart-test <name>
    testsys controller [--once]
    testsys agent list
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import yaml

from .. import __version__
from ..agents import AgentRegistry
from ..config import ControllerConfig
from ..manager import CrdState, SelectionParams, TestManager
from ..model import CrdKind, FileStore, TestSysError

_KINDS = {"test": CrdKind.TEST, "resource": CrdKind.RESOURCE}

# Global registry instance
_registry: AgentRegistry | None = None


def get_registry() -> AgentRegistry:
    """Get or create the agent registry."""
    global _registry
    if _registry is None:
        _registry = AgentRegistry()
        _registry.discover_agents()
    return _registry


def run_async(coro: Any) -> Any:
    """Run an async coroutine synchronously.

    TestSys errors and invalid input are reported as CLI errors.
    """
    try:
        return asyncio.run(coro)
    except (TestSysError, ValueError, yaml.YAMLError) as e:
        raise click.ClickException(str(e)) from None


def get_config() -> ControllerConfig:
    """The configuration set up by the `testsys` group."""
    ctx = click.get_current_context()
    config = ctx.find_object(ControllerConfig)
    if config is None:
        config = ControllerConfig.from_env()
    return config


def get_store() -> FileStore:
    return FileStore(get_config().state_dir)


def get_manager() -> TestManager:
    return TestManager(get_store(), get_config())


def selection_options(command: Callable[..., Any]) -> Callable[..., Any]:
    """Add the options that build a SelectionParams."""
    options = [
        click.option("--name", "-n", help="Select the object with this name"),
        click.option("--kind", "-k", type=click.Choice(sorted(_KINDS)), help="Select by kind"),
        click.option("--labels", "-l", help="Label selector in key=value,key2=value2 format"),
        click.option(
            "--state",
            "-s",
            type=click.Choice([s.value for s in CrdState]),
            help="Select by state",
        ),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def build_selection(
    name: str | None, kind: str | None, labels: str | None, state: str | None
) -> SelectionParams:
    try:
        return SelectionParams(
            name=name,
            kind=_KINDS[kind] if kind else None,
            labels=labels,
            state=CrdState(state) if state else None,
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--labels") from None


@click.group()
@click.version_option(version=__version__, prog_name="testsys")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding the object store (default: $TESTSYS_STATE_DIR or ~/.testsys/state)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, state_dir: Path | None, log_level: str) -> None:
    """TestSys - run Tests and the Resources they need.

    \b
    Manage objects:
        testsys add tests.yaml
        testsys status
        testsys delete --all
        testsys restart-test <name>

    \b
    Reconcile objects and run their agents:
        testsys controller
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = ControllerConfig.from_env()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from None
    if state_dir is not None:
        config = config.model_copy(update={"state_dir": state_dir.expanduser()})
    ctx.obj = config


# =============================================================================
# Add Command
# =============================================================================


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def add(manifest: Path) -> None:
    """Add the Tests and Resources in a YAML manifest.

    \b
    Examples:
        testsys add cluster.yaml
        testsys add tests.yaml
    """
    created = run_async(get_manager().add_manifest(manifest))
    if not created:
        click.echo("No objects found in manifest.")
        return
    for obj in created:
        click.echo(f"Created {obj.crd_name}")


# =============================================================================
# Agent Commands
# =============================================================================


@cli.group()
def agent() -> None:
    """Inspect installed agents.

    \b
    Commands:
        testsys agent list
    """
    pass


@agent.command("list")
def agent_list() -> None:
    """List installed agents."""
    agents = get_registry().list_agents()

    if not agents:
        click.echo("No agents installed.")
        return

    click.echo("Installed agents:")
    for name, kind in agents.items():
        click.echo(f"  - {name} ({kind})")


def main() -> None:
    """Main entry point."""
    cli()


# Lifecycle commands register themselves on `cli`.
from . import lifecycle  # noqa: E402,F401

if __name__ == "__main__":
    main()

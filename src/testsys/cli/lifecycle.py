"""Lifecycle commands for the TestSys CLI.

Provides status, delete, restart-test and controller commands for
following objects from creation to deletion.
"""

import asyncio
import signal

import click

from ..agents import AgentRunner, LocalJobLauncher
from ..controller import Controller
from ..manager import SelectionParams
from .main import (
    build_selection,
    cli,
    get_config,
    get_manager,
    get_registry,
    get_store,
    run_async,
    selection_options,
)

# =============================================================================
# Status Command
# =============================================================================


@cli.command()
@selection_options
@click.option(
    "--format", "-f", "output_format", type=click.Choice(["text", "json"]), default="text"
)
def status(
    name: str | None,
    kind: str | None,
    labels: str | None,
    state: str | None,
    output_format: str,
) -> None:
    """Show the state of Tests and Resources.

    \b
    Examples:
        testsys status
        testsys status --kind test --state failed
        testsys status --format json
    """
    selection = build_selection(name, kind, labels, state)
    snapshot = run_async(get_manager().status(selection))

    if output_format == "json":
        click.echo(snapshot.model_dump_json(indent=2))
        return

    if not snapshot.rows:
        click.echo("No objects found.")
        return
    click.echo(snapshot.to_table())
    click.echo("")
    click.echo(f"Finished: {'yes' if snapshot.finished else 'no'}")
    click.echo(f"Passed:   {'yes' if snapshot.passed else 'no'}")
    if snapshot.failed_tests:
        click.echo(f"Failed tests: {', '.join(snapshot.failed_tests)}")


# =============================================================================
# Delete Command
# =============================================================================


@cli.command()
@selection_options
@click.option("--all", "delete_all", is_flag=True, help="Delete every Test and Resource")
@click.option(
    "--include-dependencies", is_flag=True, help="Also delete the Resources the selection needs"
)
@click.option(
    "--force",
    is_flag=True,
    help="Remove Resources without destroying them. Their infrastructure may be left behind",
)
@click.option("--timeout", type=float, help="Give up after this many seconds")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def delete(
    name: str | None,
    kind: str | None,
    labels: str | None,
    state: str | None,
    delete_all: bool,
    include_dependencies: bool,
    force: bool,
    timeout: float | None,
    yes: bool,
) -> None:
    """Delete Tests and Resources in dependency order.

    Tests are deleted before the Resources they use, and Resources before
    the Resources they depend on. Deleting waits for the controller to
    destroy each Resource.

    \b
    Examples:
        testsys delete --all
        testsys delete --name my-test --include-dependencies
        testsys delete --kind resource --name broken-cluster --force
    """
    selection = build_selection(name, kind, labels, state)
    if delete_all:
        selection = SelectionParams()
    elif selection == SelectionParams():
        raise click.UsageError("Select objects to delete, or pass --all")

    manager = get_manager()

    if force:
        if not yes and not click.confirm(
            "Force deletion skips destroying Resources and may leave infrastructure behind. "
            "Proceed?"
        ):
            click.echo("Aborted.")
            return
        removed = run_async(manager.force_delete_resource(selection))
        for obj in removed:
            click.echo(f"Removed {obj.crd_name}")
        return

    async def _run() -> None:
        async with asyncio.timeout(timeout):
            async for event in manager.delete(selection, include_dependencies):
                click.echo(str(event))

    try:
        run_async(_run())
    except TimeoutError:
        raise click.ClickException(f"Deletion did not finish within {timeout} seconds") from None
    click.echo("Deletion complete.")


# =============================================================================
# Restart Command
# =============================================================================


@cli.command("restart-test")
@click.argument("name")
@click.option("--timeout", type=float, help="Seconds to wait for the old Test to be deleted")
def restart_test(name: str, timeout: float | None) -> None:
    """Delete a Test and create it again with a fresh status.

    \b
    Examples:
        testsys restart-test my-test
    """
    try:
        run_async(get_manager().restart_test(name, timeout=timeout))
    except TimeoutError:
        raise click.ClickException(
            f"Test '{name}' was not deleted within {timeout} seconds"
        ) from None
    click.echo(f"Test '{name}' restarted.")


# =============================================================================
# Controller Command
# =============================================================================


@cli.command()
@click.option("--once", is_flag=True, help="Reconcile every object once and wait for its jobs")
def controller(once: bool) -> None:
    """Reconcile Tests and Resources, running their agents in this process.

    Runs until interrupted unless --once is given.

    \b
    Examples:
        testsys controller
        testsys --log-level info controller
    """
    store = get_store()
    launcher = LocalJobLauncher(store, AgentRunner(store, get_registry()))
    reconciler = Controller(store, get_config(), launcher)

    async def _run_once() -> int:
        count = await reconciler.run_once(force=True)
        await launcher.join()
        return count

    async def _run_forever() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        try:
            await reconciler.run(stop)
        finally:
            await launcher.shutdown()

    if once:
        count = run_async(_run_once())
        click.echo(f"Reconciled {count} objects.")
        return

    click.echo(f"Controller watching {store.state_dir} (Ctrl+C to stop)")
    run_async(_run_forever())

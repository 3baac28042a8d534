"""QuestCanvas CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from questcanvas.config import ConfigError, EditorConfig, load_config
from questcanvas.gateway import (
    FileQuestGateway,
    GatewayError,
    QuestNotFound,
    ValidationFailure,
    create_gateway,
    fetch_catalog,
)
from questcanvas.graph import canonical_wire, to_document, to_graph
from questcanvas.models import localized
from questcanvas.observability import (
    close_file_logging,
    configure_logging,
    get_logger,
    quest_context,
)
from questcanvas.sync import SyncController

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from questcanvas.gateway import HttpQuestGateway
    from questcanvas.models import ReferenceCatalog, ValidationResult

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="qc",
    help="QuestCanvas: edit branching quests as graphs.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

# Global state set by the callback, used by commands
_config: EditorConfig = EditorConfig()


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_to_file: Annotated[
        bool,
        typer.Option("--log", help="Enable file logging to ./logs/debug.jsonl."),
    ] = False,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file (default: ./questcanvas.yaml if present).",
            envvar="QC_CONFIG",
        ),
    ] = None,
) -> None:
    """QuestCanvas: edit branching quests as graphs."""
    global _config

    if log_to_file:
        configure_logging(verbosity=verbose, log_to_file=True, logs_root=Path.cwd())
        atexit.register(close_file_logging)
    else:
        configure_logging(verbosity=verbose)

    try:
        _config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _run(
    action: Callable[[FileQuestGateway | HttpQuestGateway], Awaitable[Any]],
    quest_id: str | None = None,
) -> Any:
    """Run *action* against a fresh gateway, reporting gateway errors.

    With *quest_id*, every event logged along the way carries it.
    """

    async def _with_gateway() -> Any:
        gateway = create_gateway(_config)
        try:
            if quest_id is None:
                return await action(gateway)
            with quest_context(quest_id):
                return await action(gateway)
        finally:
            await gateway.aclose()

    try:
        return asyncio.run(_with_gateway())
    except QuestNotFound as e:
        console.print(f"[red]✗[/red] Quest not found: [bold]{e.quest_id}[/bold]")
        raise typer.Exit(1) from e
    except GatewayError as e:
        log.error("command_failed", error=str(e))
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def _print_issues(result: ValidationResult) -> None:
    for issue in result.errors:
        console.print(f"  [red]•[/red] {issue}")
    for issue in result.warnings:
        console.print(f"  [yellow]•[/yellow] {issue}")


@app.command()
def version() -> None:
    """Show version information."""
    from questcanvas import __version__

    console.print(f"QuestCanvas v{__version__}")


@app.command("list")
def list_quests() -> None:
    """List available quests."""
    quest_ids: list[str] = _run(lambda gateway: gateway.list_quests())

    if not quest_ids:
        console.print("[dim]No quests found.[/dim]")
        return

    table = Table(title="Quests")
    table.add_column("Quest ID", style="cyan")
    for quest_id in sorted(quest_ids):
        table.add_row(quest_id)
    console.print(table)


@app.command()
def show(
    quest_id: Annotated[str, typer.Argument(help="Quest to show.")],
) -> None:
    """Show a quest's nodes as laid out on the canvas."""

    async def _load(gateway: FileQuestGateway | HttpQuestGateway) -> tuple[Any, ReferenceCatalog]:
        loaded = await gateway.load_quest(quest_id)
        return loaded, await fetch_catalog(gateway)

    loaded, catalog = _run(_load, quest_id)
    document = loaded.document
    graph = to_graph(document, loaded.metadata)
    locale = _config.locale

    title = localized(document.display_name, locale) or document.quest_id
    console.print(f"[bold]{title}[/bold] [dim]({document.quest_id}, {document.quest_type})[/dim]")

    table = Table()
    table.add_column("Node", style="cyan", justify="right")
    table.add_column("Type", style="bold")
    table.add_column("Position", style="dim")
    table.add_column("Partner")
    table.add_column("Next")

    for gnode in graph.nodes:
        outgoing = [
            f"{edge.target} [dim]({edge.routing_handle})[/dim]"
            if edge.routing_handle
            else edge.target
            for edge in graph.edges_from(gnode.id)
        ]
        partner = gnode.data.get("ConversationPartner")
        table.add_row(
            gnode.id,
            gnode.node_type or "?",
            f"{gnode.position.x:g}, {gnode.position.y:g}",
            catalog.label("npcs", partner, locale) if partner else "",
            ", ".join(outgoing),
        )
    console.print(table)
    console.print(
        f"  Nodes: [bold]{len(graph.nodes)}[/bold]  Edges: [bold]{len(graph.edges)}[/bold]"
    )


@app.command()
def validate(
    quest_id: Annotated[str | None, typer.Argument(help="Quest to validate.")] = None,
    check_all: Annotated[
        bool,
        typer.Option("--all", help="Validate every local quest, including cross-quest rules."),
    ] = False,
) -> None:
    """Validate a quest (or all local quests) and list errors and warnings."""
    if check_all:
        _validate_all()
        return
    if quest_id is None:
        console.print("[red]Error:[/red] Give a QUEST_ID or use --all.")
        raise typer.Exit(2)
    target = quest_id

    async def _validate(gateway: FileQuestGateway | HttpQuestGateway) -> ValidationResult | None:
        controller = SyncController(gateway, settle_delay=_config.settle_delay)
        await controller.load_quest(target)
        return await controller.validate_now()

    result = _run(_validate, quest_id)
    if result is None:
        console.print("[yellow]Validation result was superseded.[/yellow]")
        raise typer.Exit(1)

    if result.valid:
        console.print(f"[green]✓[/green] {quest_id} is valid ({result.summary})")
    else:
        console.print(f"[red]✗[/red] {quest_id} has problems ({result.summary})")
    _print_issues(result)
    if not result.valid:
        raise typer.Exit(1)


def _validate_all() -> None:
    async def _check(gateway: FileQuestGateway | HttpQuestGateway) -> tuple[int, ValidationResult]:
        if not isinstance(gateway, FileQuestGateway):
            raise ValidationFailure("--all needs local quest files; unset api_url")
        return await gateway.validate_all()

    count, result = _run(_check)
    if result.valid:
        console.print(f"[green]✓[/green] Checked {count} quest(s), all valid ({result.summary})")
    else:
        console.print(f"[red]✗[/red] Checked {count} quest(s), found problems ({result.summary})")
    _print_issues(result)
    if not result.valid:
        raise typer.Exit(1)


@app.command()
def roundtrip(
    quest_id: Annotated[str, typer.Argument(help="Quest to check.")],
) -> None:
    """Convert a quest to a graph and back, and report any difference."""
    loaded = _run(lambda gateway: gateway.load_quest(quest_id), quest_id)
    document = loaded.document

    anomalies: list[Any] = []
    rebuilt = to_document(to_graph(document, loaded.metadata), document, anomalies=anomalies)
    before = canonical_wire(document)
    after = canonical_wire(rebuilt)

    for anomaly in anomalies:
        console.print(f"  [yellow]•[/yellow] {anomaly}")

    if before == after:
        console.print(f"[green]✓[/green] {quest_id} round-trips unchanged")
        return

    console.print(f"[red]✗[/red] {quest_id} changed in the round trip")
    before_nodes = {node["NodeID"]: node for node in before.get("QuestNodes", [])}
    after_nodes = {node["NodeID"]: node for node in after.get("QuestNodes", [])}
    for node_id in sorted(set(before_nodes) | set(after_nodes)):
        if before_nodes.get(node_id) != after_nodes.get(node_id):
            console.print(f"  [red]•[/red] Node {node_id} differs")
    raise typer.Exit(1)


if __name__ == "__main__":
    app()

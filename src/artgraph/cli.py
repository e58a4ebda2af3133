"""CLI for artgraph.

Commands:
    init-db                          - Create the schema (and pgvector extension)
    reset-db                         - Drop and recreate all tables
    index <type> <source-id>         - Index one source record now
    enqueue-index <type> <source-id> - Queue a source record for indexing
    merge <type> <winner> <loser>    - Merge two identities
    materialize <type> <entity-id>   - Recompute one golden record
    review                           - List pending similarity candidates
    accept <link-id> <winner> <loser>- Accept a candidate pair (merge)
    dismiss <link-id>                - Dismiss a candidate pair
    auto-merge <type>                - Merge pending pairs above a threshold
    rematerialize-stale              - Materialize never-materialized identities
    similarity <type> <extracted-id> - Compute extracted-record similarity links
    stats                            - Show pipeline statistics
    work                             - Run a queue worker
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from typing import Annotated, Any, TypeVar
from uuid import UUID

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from artgraph.clients.embeddings import EmbeddingClient
from artgraph.config import settings
from artgraph.curation import CuratorService
from artgraph.db import async_session_factory, init_db, reset_db
from artgraph.errors import ArtgraphError
from artgraph.golden.materializer import GoldenMaterializer
from artgraph.messages import IndexRequest
from artgraph.models.enums import EntityType, QueueName
from artgraph.queue import JobQueue
from artgraph.resolution.canonical import MergeResolver
from artgraph.resolution.extracted import ExtractedSimilarityService
from artgraph.resolution.indexer import IdentityIndexer
from artgraph.worker import PipelineWorker

app = typer.Typer(
    name="artgraph",
    help="artgraph: identity resolution and golden records for art galleries, artists and events",
    no_args_is_help=True,
)
console = Console()

T = TypeVar("T")


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG")] = False,
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in sync context."""
    try:
        return asyncio.run(coro)
    except ArtgraphError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[red]Error:[/red] Invalid UUID: {value}")
        raise typer.Exit(1) from None


async def _enqueue_all(queue: JobQueue, messages: Sequence[BaseModel]) -> None:
    for message in messages:
        await queue.enqueue(message)
    if messages:
        console.print(f"[dim]Queued {len(messages)} follow-up job(s)[/dim]")


EntityTypeArg = Annotated[EntityType, typer.Argument(help="artist, gallery or event")]


@app.command("init-db")
def init_db_command():
    """Initialize the database schema (creates tables if they don't exist)."""
    async def _init():
        await init_db()
        console.print("[green]Database initialized.[/green]")

    run_async(_init())


@app.command("reset-db")
def reset_db_command(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation prompt")
    ] = False,
):
    """Drop all tables and recreate them.

    WARNING: This destroys all data!
    """
    if not force:
        confirm = typer.confirm("This will DELETE ALL DATA. Are you sure?", default=False)
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    async def _reset():
        await reset_db()
        console.print("[green]Database reset.[/green]")

    run_async(_reset())


@app.command()
def index(
    entity_type: EntityTypeArg,
    source_id: Annotated[str, typer.Argument(help="Source record UUID")],
):
    """Index one source record and queue its materializations."""
    sid = parse_uuid(source_id)

    async def _index():
        async with async_session_factory() as session, session.begin():
            indexer = IdentityIndexer(session, EmbeddingClient())
            requests = await indexer.index_source(entity_type, sid)
            await _enqueue_all(JobQueue(session), requests)
        if not requests:
            console.print(f"[yellow]Source {entity_type.value} {sid} not found.[/yellow]")
        else:
            console.print(f"[green]Indexed[/green] → identity {requests[0].entity_id}")

    run_async(_index())


@app.command("enqueue-index")
def enqueue_index(
    entity_type: EntityTypeArg,
    source_ids: Annotated[list[str], typer.Argument(help="Source record UUIDs")],
):
    """Queue source records for the identity worker."""
    ids = [parse_uuid(s) for s in source_ids]

    async def _enqueue():
        async with async_session_factory() as session, session.begin():
            queue = JobQueue(session)
            for sid in ids:
                await queue.enqueue(IndexRequest(entity_type=entity_type, source_id=sid))
        console.print(f"[green]Queued {len(ids)} index job(s).[/green]")

    run_async(_enqueue())


@app.command()
def merge(
    entity_type: EntityTypeArg,
    winner_id: Annotated[str, typer.Argument(help="Identity that survives")],
    loser_id: Annotated[str, typer.Argument(help="Identity merged into the winner")],
    decided_by: Annotated[str, typer.Option(help="Curator identifier")] = "curator",
    notes: Annotated[str | None, typer.Option(help="Reason for the merge")] = None,
):
    """Merge two identities (and their families)."""
    winner, loser = parse_uuid(winner_id), parse_uuid(loser_id)

    async def _merge():
        async with async_session_factory() as session, session.begin():
            result = await MergeResolver(session).merge(
                entity_type, winner, loser, decided_by=decided_by, notes=notes
            )
            await _enqueue_all(JobQueue(session), result.requests)
        if result.merged:
            console.print(
                f"[green]Merged[/green] {len(result.absorbed_ids)} identities into "
                f"{result.canonical_id}"
            )
        else:
            console.print(f"[yellow]Already merged[/yellow] (canonical {result.canonical_id})")

    run_async(_merge())


@app.command()
def materialize(
    entity_type: EntityTypeArg,
    entity_id: Annotated[str, typer.Argument(help="Any identity of the family")],
):
    """Recompute a golden record now."""
    eid = parse_uuid(entity_id)

    async def _materialize():
        async with async_session_factory() as session, session.begin():
            golden = await GoldenMaterializer(session).materialize(entity_type, eid)
        if golden is None:
            console.print(f"[yellow]Identity {eid} not found.[/yellow]")
        else:
            console.print(f"[green]Materialized[/green] golden {entity_type.value} {golden.entity_id}")

    run_async(_materialize())


@app.command()
def review(
    entity_type: Annotated[
        EntityType | None, typer.Option("--type", "-t", help="Filter by entity type")
    ] = None,
    min_score: Annotated[float | None, typer.Option(help="Lower score bound")] = None,
    max_score: Annotated[float | None, typer.Option(help="Upper score bound")] = None,
    limit: Annotated[int, typer.Option(help="Maximum pairs to show")] = 50,
):
    """List pending similarity candidates for curator review."""
    async def _review():
        async with async_session_factory() as session:
            items = await CuratorService(session).list_pending(
                entity_type, min_score=min_score, max_score=max_score, limit=limit
            )

        if not items:
            console.print("[yellow]Nothing to review.[/yellow]")
            return

        table = Table(title="Pending candidates")
        table.add_column("Link")
        table.add_column("Type")
        table.add_column("Score", justify="right")
        table.add_column("A")
        table.add_column("B")
        for item in items:
            table.add_row(
                str(item.link_id),
                item.entity_type.value,
                f"{item.score:.4f}" if item.score is not None else "-",
                f"{item.a_name}\n[dim]{item.a_id}[/dim]",
                f"{item.b_name}\n[dim]{item.b_id}[/dim]",
            )
        console.print(table)

    run_async(_review())


@app.command()
def accept(
    link_id: Annotated[str, typer.Argument(help="Similarity link UUID")],
    winner_id: Annotated[str, typer.Argument(help="Identity that survives")],
    loser_id: Annotated[str, typer.Argument(help="Identity merged into the winner")],
    decided_by: Annotated[str, typer.Option(help="Curator identifier")] = "curator",
    notes: Annotated[str | None, typer.Option(help="Reason for the merge")] = None,
):
    """Accept a candidate pair: merge the loser into the winner."""
    lid, winner, loser = parse_uuid(link_id), parse_uuid(winner_id), parse_uuid(loser_id)

    async def _accept():
        async with async_session_factory() as session, session.begin():
            result = await CuratorService(session).accept(
                lid, winner, loser, decided_by=decided_by, notes=notes
            )
            await _enqueue_all(JobQueue(session), result.requests)
        console.print(f"[green]Accepted[/green] → canonical {result.canonical_id}")

    run_async(_accept())


@app.command()
def dismiss(
    link_id: Annotated[str, typer.Argument(help="Similarity link UUID")],
    decided_by: Annotated[str, typer.Option(help="Curator identifier")] = "curator",
    notes: Annotated[str | None, typer.Option(help="Why the pair is distinct")] = None,
):
    """Dismiss a candidate pair; it will not be proposed again."""
    lid = parse_uuid(link_id)

    async def _dismiss():
        async with async_session_factory() as session, session.begin():
            await CuratorService(session).dismiss(lid, decided_by=decided_by, notes=notes)
        console.print("[green]Dismissed.[/green]")

    run_async(_dismiss())


@app.command("auto-merge")
def auto_merge(
    entity_type: EntityTypeArg,
    threshold: Annotated[
        float | None, typer.Option(help="Minimum score (default: AUTO_MERGE_THRESHOLD)")
    ] = None,
):
    """Merge every pending pair scoring at or above a threshold."""
    if threshold is None and settings.auto_merge_threshold is None:
        console.print("[red]Error:[/red] pass --threshold or set AUTO_MERGE_THRESHOLD")
        raise typer.Exit(1)

    async def _auto_merge():
        async with async_session_factory() as session, session.begin():
            report = await CuratorService(session).auto_merge(entity_type, threshold)
            await _enqueue_all(JobQueue(session), report.requests)
        console.print(
            f"[green]Merged {report.merged}[/green] of {report.considered} candidate pair(s)"
        )

    run_async(_auto_merge())


@app.command("rematerialize-stale")
def rematerialize_stale(
    entity_type: Annotated[
        EntityType | None, typer.Option("--type", "-t", help="Filter by entity type")
    ] = None,
    limit: Annotated[int, typer.Option(help="Maximum identities to queue")] = 100,
):
    """Queue materialization for identities that never got a golden record."""
    async def _stale():
        async with async_session_factory() as session, session.begin():
            requests = await CuratorService(session).list_stale(entity_type, limit=limit)
            await _enqueue_all(JobQueue(session), requests)
        if not requests:
            console.print("[green]No stale identities.[/green]")

    run_async(_stale())


@app.command()
def similarity(
    entity_type: EntityTypeArg,
    extracted_id: Annotated[str, typer.Argument(help="Extracted record UUID")],
    threshold: Annotated[float | None, typer.Option(help="Override the type threshold")] = None,
):
    """Compute similarity links for one extracted record."""
    eid = parse_uuid(extracted_id)

    async def _similarity():
        async with async_session_factory() as session, session.begin():
            written = await ExtractedSimilarityService(session, EmbeddingClient()).compute(
                entity_type, eid, threshold
            )
        console.print(f"[green]{written}[/green] link(s) written")

    run_async(_similarity())


@app.command()
def stats():
    """Show review backlog and queue statistics."""
    async def _stats():
        async with async_session_factory() as session:
            pending = await CuratorService(session).pending_counts()
            extracted = await ExtractedSimilarityService(session, EmbeddingClient()).pending_counts()
            jobs = await JobQueue(session).counts()

        console.print(Panel(
            "\n".join(
                f"[bold]{entity_type.value}:[/bold] {pending.get(entity_type, 0)} identity, "
                f"{extracted.get(entity_type, 0)} extracted"
                for entity_type in EntityType
            ),
            title="Pending reviews",
        ))

        if jobs:
            table = Table(title="Jobs")
            table.add_column("Queue")
            table.add_column("Status")
            table.add_column("Count", justify="right")
            for (queue_name, status), count in sorted(
                jobs.items(), key=lambda x: (x[0][0].value, x[0][1].value)
            ):
                table.add_row(queue_name.value, status.value, str(count))
            console.print(table)

    run_async(_stats())


@app.command()
def work(
    queue_name: Annotated[
        QueueName, typer.Option("--queue", "-q", help="Queue to consume")
    ] = QueueName.IDENTITY,
):
    """Run a worker on one queue until interrupted."""
    worker = PipelineWorker(async_session_factory, EmbeddingClient(), queue_name)
    run_async(worker.start())


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

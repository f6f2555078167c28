"""``easel jobs`` — inspect (and optionally drain) the outbound job queue."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from easel.bridge.job_queue import JobQueue
from easel.config import config

console = Console()


def jobs_cmd(
    queue_db: Optional[Path] = typer.Option(
        None,
        "--queue",
        "-q",
        help="Path to the job queue SQLite database (default: EASEL_JOB_QUEUE_PATH).",
    ),
    drain: bool = typer.Option(
        False,
        "--drain",
        help="Remove the listed jobs from the queue.",
    ),
    limit: int = typer.Option(
        100,
        "--limit",
        "-n",
        min=1,
        help="Maximum number of jobs to list or drain.",
    ),
) -> None:
    """Show pending image-metadata jobs."""
    path = queue_db or config.job_queue_path
    if path is None:
        console.print("[bold red]No persistent job queue configured.[/bold red]")
        console.print("[dim]Set EASEL_JOB_QUEUE_PATH or pass --queue.[/dim]")
        raise typer.Exit(code=1)
    if not Path(path).exists():
        console.print(f"[bold red]Job queue not found:[/bold red] {path}")
        raise typer.Exit(code=1)

    with JobQueue(max_depth=config.max_job_queue, queue_db_path=Path(path)) as queue:
        depth = queue.depth
        jobs = queue.drain(max_jobs=limit) if drain else queue.pending()[:limit]

    console.print(f"Queue depth: [bold]{depth}[/bold]")
    if not jobs:
        console.print("[dim]No pending jobs.[/dim]")
        return

    table = Table(title="Drained jobs" if drain else "Pending jobs")
    table.add_column("Job", style="cyan")
    table.add_column("Kind")
    table.add_column("Record")
    table.add_column("Created (UTC)")
    for job in jobs:
        table.add_row(
            job.job_id[:8],
            job.job_kind.value,
            job.record_id,
            job.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    if drain:
        console.print(f"[green]Drained {len(jobs)} job(s).[/green]")

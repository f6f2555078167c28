"""``easel show RECORD_ID`` — print a stored record, its images and memberships."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from easel.bridge.persistence import SqlitePersistence
from easel.config import config
from easel.core import edition_inventory
from easel.core.validation import ValidationEngine

console = Console()


def show_cmd(
    record_id: str = typer.Argument(..., help="The record id to show."),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        "-d",
        help="Path to the SQLite database (default: EASEL_DATABASE_PATH).",
    ),
) -> None:
    """Show a stored artwork record."""
    db_path = db or config.database_path
    if not Path(db_path).exists():
        console.print(f"[bold red]Database not found:[/bold red] {db_path}")
        raise typer.Exit(code=1)

    persistence = SqlitePersistence(db_path)
    record = persistence.read_record(record_id)
    if record is None:
        console.print(f"[bold red]Record not found:[/bold red] {record_id}")
        raise typer.Exit(code=1)

    images = persistence.list_images(record_id)
    memberships = persistence.list_memberships(record_id)
    collections = (
        {c.id: c for c in persistence.list_collections(record.owner_id)}
        if record.owner_id
        else {}
    )

    price = (
        "on request"
        if record.price is None
        else f"{record.price:,.2f} {record.currency} ({record.pricing_mode.value})"
    )
    lines = [
        f"[bold]{record.title or '(untitled)'}[/bold]  [dim]{record.slug or ''}[/dim]",
        f"Medium: {record.medium or '-'}",
        f"Status: {record.status.value}",
        f"Price: {price}",
    ]
    if record.keywords:
        lines.append("Keywords: " + ", ".join(record.keywords))
    console.print(Panel("\n".join(lines), title=f"Record {record_id}"))

    if images:
        table = Table(title="Images")
        table.add_column("#", justify="right")
        table.add_column("Id", style="cyan")
        table.add_column("Primary", justify="center")
        table.add_column("URL")
        for image in images:
            table.add_row(
                str(image.position),
                image.id[:8],
                "[green]Yes[/green]" if image.is_primary else "",
                image.url,
            )
        console.print(table)
    else:
        console.print("[dim]No images.[/dim]")

    if memberships:
        console.print("Collections:")
        for collection_id in sorted(memberships):
            collection = collections.get(collection_id)
            name = collection.name if collection else collection_id
            marker = " [dim](system)[/dim]" if collection and collection.is_system else ""
            console.print(f"  [cyan]{name}[/cyan]{marker}")

    units = edition_inventory.generate_for(record.edition)
    if units:
        available = edition_inventory.available(record.edition)
        console.print(f"Edition: {len(available)} of {len(units)} unit(s) available")

    report = ValidationEngine().evaluate(record, len(images))
    if not report.is_valid:
        console.print(
            "[yellow]Would not pass validation:[/yellow] "
            + ", ".join(sorted(report.field_errors))
        )

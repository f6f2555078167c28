"""``easel editions NUMERIC AP`` — print the sellable units of an edition."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from easel.core import edition_inventory
from easel.models.record import EditionInfo

console = Console()


def editions_cmd(
    numeric: int = typer.Argument(..., min=1, help="Number of numbered units."),
    ap: int = typer.Argument(0, min=0, help="Number of artist proofs."),
    sold: Optional[list[str]] = typer.Option(
        None,
        "--sold",
        "-s",
        help="Identifier of a sold unit (repeatable), e.g. --sold 3/10.",
    ),
) -> None:
    """List edition unit identifiers and which of them are sold."""
    edition = EditionInfo(
        is_edition=True,
        numeric_size=numeric,
        ap_size=ap,
        sold_editions=frozenset(sold or ()),
    )

    table = Table(title=f"Edition of {numeric} + {ap} AP")
    table.add_column("Unit", style="cyan")
    table.add_column("Status", justify="center")
    for identifier in edition_inventory.generate_for(edition):
        status = (
            "[red]sold[/red]"
            if edition_inventory.is_sold(edition, identifier)
            else "[green]available[/green]"
        )
        table.add_row(identifier, status)
    console.print(table)

    available = edition_inventory.available(edition)
    console.print(f"{len(available)} of {numeric + ap} unit(s) available.")

    stale = edition_inventory.stale_sold(edition)
    if stale:
        console.print(
            "[yellow]Sold identifiers outside this edition:[/yellow] "
            + ", ".join(sorted(stale))
        )

"""``easel validate FILE`` — check a record JSON file against the save rules.

The file holds one ``ArtworkRecord`` as JSON.  The image count is not part
of the record, so it is passed with ``--images``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from easel.core.validation import ValidationEngine
from easel.models.record import ArtworkRecord

console = Console()


def validate_cmd(
    file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to a record JSON file.",
    ),
    images: int = typer.Option(
        0,
        "--images",
        "-i",
        min=0,
        help="Number of images attached to the record.",
    ),
) -> None:
    """Validate a record file and list every failing field."""
    try:
        record = ArtworkRecord.model_validate_json(file.read_text(encoding="utf-8"))
    except ValidationError as exc:
        console.print(f"[bold red]Not a valid record file:[/bold red] {file}")
        for err in exc.errors():
            location = ".".join(str(part) for part in err["loc"])
            console.print(f"  [yellow]{location}[/yellow]: {err['msg']}")
        raise typer.Exit(code=2)

    engine = ValidationEngine()
    report = engine.evaluate(record, images)
    if report.is_valid:
        console.print(f"[bold green]Valid[/bold green] {record.title!r} is ready to save.")
        return

    table = Table(title=f"Validation errors: {record.title or '(untitled)'}")
    table.add_column("Field", style="cyan")
    table.add_column("Problem")
    for field, message in sorted(report.field_errors.items()):
        table.add_row(field, message)
    console.print(table)
    raise typer.Exit(code=1)

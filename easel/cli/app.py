"""Main Typer application — imports and registers all CLI commands.

Entry point: ``easel`` (configured via pyproject.toml project.scripts).

Commands: validate, editions, jobs, show.
"""

from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.logging import RichHandler

from easel.cli.commands.editions import editions_cmd
from easel.cli.commands.jobs import jobs_cmd
from easel.cli.commands.show import show_cmd
from easel.cli.commands.validate import validate_cmd
from easel.config import config

app = typer.Typer(
    name="easel",
    help="Easel: artwork record editing and synchronization engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="validate", help="Validate a record JSON file.")(validate_cmd)
app.command(name="editions", help="Print the unit identifiers of an edition.")(editions_cmd)
app.command(name="jobs", help="Inspect or drain the outbound job queue.")(jobs_cmd)
app.command(name="show", help="Show a stored record.")(show_cmd)


def configure_logging(level: str) -> None:
    """Route library logging through Rich at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=config.debug, show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: EASEL_LOG_LEVEL).",
    ),
) -> None:
    """Easel: artwork record editing and synchronization engine."""
    configure_logging(log_level or config.log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

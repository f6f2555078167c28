"""Easel CLI — Typer-based command-line interface.

Provides the ``easel`` command with subcommands for validating record
files, printing edition inventories, inspecting the outbound job queue,
and showing stored records.

All output uses Rich for formatted terminal display.
"""

"""Shared console and I/O helpers for modforge.

Rich-based reporting (phase headers, summary tables, diagnostics) and small
JSON helpers used by the command-line pipeline.  The core components never
print on their own; only the pipeline and an explicitly supplied console do.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Iterable

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

from modforge.diagnostics import Diagnostic, DiagnosticKind
from modforge.scanner import Annotation

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> None:
    """Save data as pretty-printed JSON, creating parent directories.

    The write runs in a worker thread to avoid blocking the event loop.
    """
    file_path = Path(path)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)

    def _write() -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

    await asyncio.to_thread(_write)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(0.42)  -> "0.4s"
        format_duration(65.2)  -> "1m 5s"
    """
    if seconds < 0:
        return "0.0s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes > 0:
        return f"{minutes}m {int(secs)}s"
    return f"{secs:.1f}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STEP_COLORS: dict[int, str] = {
    1: "bright_cyan",
    2: "bright_green",
    3: "bright_yellow",
}

_DIAGNOSTIC_STYLES: dict[DiagnosticKind, str] = {
    DiagnosticKind.EMPTY_REQUEST: "dim",
    DiagnosticKind.UNKNOWN_MODULE: "yellow",
    DiagnosticKind.MISSING_OPTIONAL: "cyan",
    DiagnosticKind.DEPENDENCY_CYCLE: "red",
    DiagnosticKind.CONFLICT: "red",
    DiagnosticKind.MISSING_CORE: "yellow",
    DiagnosticKind.RECOMMENDATION: "green",
    DiagnosticKind.FILE_EXISTS_SKIPPED: "yellow",
}


def print_step_header(step: int, name: str) -> None:
    """Print a full-width rule announcing a pipeline step."""
    color = STEP_COLORS.get(step, "white")
    console.print()
    console.print(
        Rule(
            f"[bold {color}] Step {step}: {name.upper()} [/bold {color}]",
            style=color,
        )
    )
    console.print()


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_diagnostics(diagnostics: Iterable[Diagnostic], title: str = "Diagnostics") -> None:
    """Print diagnostics as a table; prints nothing when there are none."""
    rows = list(diagnostics)
    if not rows:
        return
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Kind", no_wrap=True)
    table.add_column("Module", style="dim")
    table.add_column("Message")

    for diag in rows:
        style = _DIAGNOSTIC_STYLES.get(diag.kind, "white")
        table.add_row(
            f"[{style}]{diag.kind.value}[/{style}]",
            diag.module or diag.path or "",
            escape(diag.message),
        )

    console.print(table)
    console.print()


def print_annotations(annotations: Iterable[Annotation], title: str = "Overlay constructs") -> None:
    """Print overlay annotations in the order given; nothing when empty."""
    rows = list(annotations)
    if not rows:
        return
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Priority", justify="right", no_wrap=True)
    table.add_column("Construct")
    table.add_column("Location", style="dim")

    for annotation in rows:
        table.add_row(
            str(annotation.priority),
            escape(annotation.construct_id),
            escape(annotation.location),
        )

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message to stderr."""
    err_console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")


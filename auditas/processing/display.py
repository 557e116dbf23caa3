#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Console output for batch runs: the run header and one row per item.
"""

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from auditas.core.formatting import (
    format_header_row,
    format_status_row,
    render_bar,
)
from .dispatcher import Outcome

STATUS_OK = "OK"
STATUS_FAIL = "FAIL"


def status_label(outcome: Outcome) -> str:
    """Short status text for a row, e.g. ``OK`` or ``FAIL (FLAC_FAIL)``."""
    if outcome.success:
        return STATUS_OK
    if outcome.category and outcome.category != STATUS_FAIL:
        return f"{STATUS_FAIL} ({outcome.category})"
    return STATUS_FAIL


class ProgressPrinter:
    """
    Prints one status row per completed item.

    Rows are rendered with the pure formatting functions and written via
    a rich Console, which serialises concurrent prints from worker threads.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        bar_width: int = 10,
        name_width: int = 80,
        root: Optional[Path] = None
    ):
        self.console = console or Console(highlight=False)
        self.bar_width = bar_width
        self.name_width = name_width
        self.root = Path(root) if root else None

    def _display_name(self, item: str) -> str:
        if self.root is not None:
            try:
                return str(Path(item).relative_to(self.root))
            except ValueError:
                pass
        return item

    def row(self, outcome: Outcome, count: int, total: int) -> str:
        bar = render_bar(count, total, self.bar_width)
        return format_status_row(
            self._display_name(outcome.item), bar, status_label(outcome), self.name_width
        )

    def __call__(self, outcome: Outcome, count: int, total: int):
        style = "green" if outcome.success else "red"
        self.console.print(
            self.row(outcome, count, total),
            style=style,
            markup=False,
            soft_wrap=True,
        )

    def header(self, title: str, total: int, jobs: int, already_completed: int = 0, resume: bool = False):
        """Print the run header and the column titles."""
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Label", style="bold")
        table.add_column("Value")
        if self.root is not None:
            table.add_row("Root directory", str(self.root))
        table.add_row("Total items", str(total))
        if resume:
            table.add_row("Already completed", f"{already_completed} (resume mode)")
        table.add_row("Parallel jobs", str(jobs))

        self.console.print(f"\n[bold blue]==> {title}[/bold blue]")
        self.console.print(table)
        rule = "-" * (self.name_width + 30)
        self.console.print(rule, markup=False)
        self.console.print(format_header_row(self.name_width), markup=False, soft_wrap=True)
        self.console.print(rule, markup=False)

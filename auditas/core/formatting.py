#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Pure text formatting for progress output.

Everything here is a function of its arguments only: no shared state,
no I/O. The dispatcher calls these once per completed item, so they stay
cheap.
"""

from typing import Optional


BAR_FILLED = "#"
BAR_EMPTY = "."
ELLIPSIS = "..."

# Width of the progress column in a status row ("[##########] 100%" is 17)
BAR_COLUMN_WIDTH = 18


def progress_percent(current: int, total: int) -> int:
    """Integer percentage ``floor(current * 100 / total)``, 0 when total is not positive."""
    if total <= 0:
        return 0
    return max(0, current) * 100 // total


def render_bar(current: int, total: int, width: int = 10) -> str:
    """
    Render a fixed-width progress bar with a percentage.

    Args:
        current: Items completed so far
        total: Items expected in this run
        width: Number of bar cells

    Returns:
        A string like ``"[###.......] 30%"``
    """
    filled = 0
    if total > 0:
        filled = max(0, current) * width // total
    filled = min(filled, width)

    bar = BAR_FILLED * filled + BAR_EMPTY * (width - filled)
    return f"[{bar}] {progress_percent(current, total)}%"


def truncate_identifier(text: str, max_len: int) -> str:
    """
    Shorten ``text`` to at most ``max_len`` characters.

    Keeps the start and the end joined by an ellipsis, so both the
    library root and the file name of a long path stay visible.
    """
    if len(text) <= max_len:
        return text
    if max_len <= len(ELLIPSIS):
        return text[:max_len]

    keep = max_len - len(ELLIPSIS)
    start = keep // 2
    end = keep - start
    return f"{text[:start]}{ELLIPSIS}{text[-end:]}"


def format_status_row(name: str, bar: str, status: str, width: int = 80) -> str:
    """
    Format one progress row: identifier, bar and status label.

    The identifier is truncated and padded to ``width`` so rows line up.
    """
    display_name = truncate_identifier(name.rstrip("\r\n"), width)
    return f"{display_name:<{width}} | {bar:<{BAR_COLUMN_WIDTH}} | {status}"


def format_header_row(width: int = 80) -> str:
    """Column titles matching :func:`format_status_row`."""
    return format_status_row("File", "Progress", "Status", width)


def format_duration(total_seconds: Optional[float]) -> str:
    """
    Format a duration in a human-readable way.

    Returns:
        Formatted string like ``"42s"``, ``"3m 12s"``, ``"2h 15m"``, or ``"N/A"``.
    """
    if total_seconds is None or total_seconds < 0:
        return "N/A"

    total_seconds = int(total_seconds)
    if total_seconds < 60:
        return f"{total_seconds}s"
    elif total_seconds < 3600:
        minutes = total_seconds // 60
        seconds = total_seconds % 60
        return f"{minutes}m {seconds}s"
    else:
        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        return f"{hours}h {minutes}m"

"""Text formatting helpers shared by the report sections."""

from typing import TextIO

from rich.console import Console


def pct(numerator: float, denominator: float) -> str:
    """Return ``numerator / denominator`` as a percentage with one decimal, "0.0" when the denominator is 0."""
    if denominator == 0:
        return "0.0"
    return f"{numerator / denominator * 100:.1f}"


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string using binary units."""
    for unit in ["B", "KiB", "MiB", "GiB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size = size / 1024
    return f"{size:.1f} TiB"


def build_console(color: bool, file: TextIO | None = None) -> Console:
    """
    Build the console every report line is written through.

    With ``color`` the basic 8-color ANSI palette is forced even when the
    output is not a terminal. Without it no escape sequence is emitted at all.
    Highlighting, emoji and markup are off so rendered text is exactly the
    text that was passed in.
    """
    return Console(
        file=file,
        force_terminal=True if color else None,
        color_system="standard" if color else None,
        no_color=not color,
        highlight=False,
        emoji=False,
        markup=False,
        soft_wrap=True,
    )

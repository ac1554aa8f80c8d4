"""
Terminal presentation: Nord palette, consoles, banner and result tables.
"""

from typing import Optional, Sequence

import pyfiglet
from rich import box
from rich.align import Align
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text
from rich.theme import Theme


# ----------------------------------------------------------------
# Nord-Themed Colors
# ----------------------------------------------------------------
class NordColors:
    """Nord color palette used throughout the console output."""

    POLAR_NIGHT_1 = "#2E3440"
    POLAR_NIGHT_3 = "#434C5E"
    POLAR_NIGHT_4 = "#4C566A"
    SNOW_STORM_1 = "#D8DEE9"
    SNOW_STORM_2 = "#E5E9F0"
    FROST_1 = "#8FBCBB"
    FROST_2 = "#88C0D0"
    FROST_3 = "#81A1C1"
    FROST_4 = "#5E81AC"
    RED = "#BF616A"
    YELLOW = "#EBCB8B"
    GREEN = "#A3BE8C"


nord_theme = Theme(
    {
        "banner": f"bold {NordColors.FROST_2}",
        "header": f"bold {NordColors.FROST_2}",
        "info": NordColors.GREEN,
        "warning": NordColors.YELLOW,
        "error": NordColors.RED,
        "debug": NordColors.POLAR_NIGHT_3,
        "success": NordColors.GREEN,
        "logging.level.checkpoint": NordColors.FROST_2,
    }
)

console = Console(theme=nord_theme)
err_console = Console(theme=nord_theme, stderr=True)


# ----------------------------------------------------------------
# Banner
# ----------------------------------------------------------------
def create_header(title: str, subtitle: str = "Unattended Mode", version: str = "") -> Panel:
    """
    Build an ASCII art header with Pyfiglet, falling back through a few fonts
    until one renders. The art is assembled line by line into a Rich Text so
    no stray markup leaks into the banner.
    """
    fonts = ["slant", "small", "mini", "smslant"]
    ascii_art = ""
    for font in fonts:
        try:
            fig = pyfiglet.Figlet(font=font, width=80)
            ascii_art = fig.renderText(title)
            if ascii_art.strip():
                break
        except pyfiglet.FontNotFound:
            continue
    ascii_lines = [line for line in ascii_art.splitlines() if line.strip()]
    colors = [
        NordColors.FROST_1,
        NordColors.FROST_2,
        NordColors.FROST_3,
        NordColors.FROST_4,
    ]
    combined_text = Text()
    for i, line in enumerate(ascii_lines):
        combined_text.append(line, style=f"bold {colors[i % len(colors)]}")
        if i < len(ascii_lines) - 1:
            combined_text.append("\n")
    border = Text("━" * 60, style=NordColors.FROST_3)
    heading = f"{title} v{version}" if version else title
    return Panel(
        Align.center(Text.assemble(border, "\n", combined_text, "\n", border)),
        border_style=NordColors.FROST_1,
        padding=(1, 2),
        title=Text(heading, style=f"bold {NordColors.SNOW_STORM_2}"),
        title_align="right",
        subtitle=Text(subtitle, style=f"bold {NordColors.SNOW_STORM_1}"),
        subtitle_align="center",
    )


# ----------------------------------------------------------------
# Simple Message Printing Helpers
# ----------------------------------------------------------------
def print_message(
    text: str, style: str = NordColors.FROST_2, prefix: str = "•"
) -> None:
    console.print(f"[{style}]{prefix} {escape(text)}[/{style}]")


def print_warning(message: str) -> None:
    print_message(message, NordColors.YELLOW, "⚠")


def print_error(message: str) -> None:
    err_console.print(f"[{NordColors.RED}]✗ {escape(message)}[/{NordColors.RED}]")


def print_step(message: str) -> None:
    print_message(message, NordColors.FROST_2, "→")


def display_panel(
    message: str, style: str = NordColors.FROST_2, title: Optional[str] = None
) -> None:
    panel = Panel(
        Text.from_markup(f"[{style}]{message}[/{style}]"),
        border_style=style,
        padding=(1, 2),
        title=f"[bold {style}]{title}[/bold {style}]" if title else None,
    )
    console.print(panel)


def display_results_table(rows: Sequence[Sequence[str]]) -> None:
    """
    Print the per-step summary. Each row is (step, status, message) where
    status is one of: pending, success, tolerated, failed.
    """
    table = Table(
        title="Provisioning Results",
        box=box.ROUNDED,
        title_style=f"bold {NordColors.FROST_2}",
        border_style=NordColors.FROST_3,
        header_style=f"bold {NordColors.FROST_1}",
        expand=True,
    )
    table.add_column("Step", style=f"bold {NordColors.FROST_2}")
    table.add_column("Status", justify="center")
    table.add_column("Message", style=NordColors.SNOW_STORM_1, ratio=2)

    colors = {
        "pending": "debug",
        "success": "success",
        "tolerated": "warning",
        "failed": "error",
    }
    for name, status, message in rows:
        color = colors.get(status, "info")
        table.add_row(
            escape(name), f"[{color}]{status.upper()}[/{color}]", escape(message)
        )

    console.print(
        Panel(table, border_style=Style(color=NordColors.FROST_4), padding=(0, 1))
    )

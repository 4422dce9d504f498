"""Rich console setup and output helpers for reactorai."""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from reactorai.chat.responses import AssistantResponse
from reactorai.ui.theme import ReactorColors, Symbols, reactor_theme

# Main console instance with the reactorai theme
console = Console(theme=reactor_theme)


def print_error(message: str, title: str = "Error") -> None:
    """Print an error message in a styled panel."""
    console.print(
        Panel(
            f"[error]{Symbols.CROSS} {message}[/error]",
            title=f"[error]{title}[/error]",
            border_style=ReactorColors.ERROR,
            box=box.ROUNDED,
        )
    )


def print_success(message: str, title: str = "Success") -> None:
    """Print a success message in a styled panel."""
    console.print(
        Panel(
            f"[success]{Symbols.CHECK} {message}[/success]",
            title=f"[success]{title}[/success]",
            border_style=ReactorColors.SUCCESS,
            box=box.ROUNDED,
        )
    )


def print_welcome() -> None:
    """Print the chat banner."""
    console.print(
        Panel(
            "[react]REACTOR[/react] [muted]automation assistant[/muted]\n\n"
            "Set up stop orders and Aave liquidation protection by chatting.\n"
            "[muted]Type /clear to start over, /quit to exit.[/muted]",
            border_style=ReactorColors.REACT,
            box=box.ROUNDED,
        )
    )


def configuration_table(config: dict[str, Any]) -> Table:
    """Two-column table of a finished configuration."""
    table = Table(box=box.SIMPLE, show_header=True, header_style="table.header")
    table.add_column("Field", style="muted")
    table.add_column("Value")
    for key, value in config.items():
        if isinstance(value, dict):
            value = json.dumps(value) if value else "-"
        table.add_row(key, "-" if value is None else str(value))
    return table


def render_response(response: AssistantResponse) -> None:
    """Print an assistant response with its options and configuration."""
    console.print(
        Panel(
            Markdown(response.message),
            title="[primary]reactor[/primary]",
            title_align="left",
            border_style=ReactorColors.BORDER,
            box=box.ROUNDED,
        )
    )
    if response.options:
        line = "  ".join(f"[option]{Symbols.NEXT} {o.label}[/option] [muted]({o.value})[/muted]" for o in response.options)
        console.print(line)
    if response.configuration:
        console.print(
            Panel(
                configuration_table(response.configuration),
                title=f"[success]{Symbols.SHIELD} Ready to deploy[/success]",
                border_style=ReactorColors.SUCCESS,
                box=box.ROUNDED,
            )
        )

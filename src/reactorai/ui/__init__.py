"""UI components for reactorai - Rich console and theme."""

from reactorai.ui.console import (
    configuration_table,
    console,
    print_error,
    print_success,
    print_welcome,
    render_response,
)
from reactorai.ui.theme import ReactorColors, Symbols, reactor_theme

__all__ = [
    "console",
    "print_error",
    "print_success",
    "print_welcome",
    "render_response",
    "configuration_table",
    "ReactorColors",
    "reactor_theme",
    "Symbols",
]

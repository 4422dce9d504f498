"""Theme and color definitions for reactorai."""

from dataclasses import dataclass

from rich.theme import Theme


@dataclass(frozen=True)
class ReactorColors:
    """Color palette for the reactorai UI."""

    PRIMARY = "#61afef"
    SECONDARY = "#c678dd"

    SUCCESS = "#98c379"
    WARNING = "#e5c07b"
    ERROR = "#e06c75"
    INFO = "#56b6c2"

    # Automation accents
    REACT = "#ff8c42"
    TOKEN = "#00d4aa"

    MUTED = "#5c6370"
    BORDER = "#3e4451"
    HIGHLIGHT = "#e5c07b"


reactor_theme = Theme(
    {
        "primary": f"bold {ReactorColors.PRIMARY}",
        "secondary": f"{ReactorColors.SECONDARY}",
        "success": f"bold {ReactorColors.SUCCESS}",
        "warning": f"bold {ReactorColors.WARNING}",
        "error": f"bold {ReactorColors.ERROR}",
        "info": f"{ReactorColors.INFO}",
        "react": f"bold {ReactorColors.REACT}",
        "token": f"bold {ReactorColors.TOKEN}",
        "address": f"{ReactorColors.PRIMARY}",
        "muted": f"{ReactorColors.MUTED}",
        "highlight": f"bold {ReactorColors.HIGHLIGHT}",
        "prompt": f"bold {ReactorColors.PRIMARY}",
        "option": f"bold {ReactorColors.SUCCESS}",
        "table.header": f"bold {ReactorColors.PRIMARY}",
        "table.border": f"{ReactorColors.BORDER}",
    }
)


class Symbols:
    """Unicode symbols for UI elements."""

    CHECK = "✓"
    CROSS = "✗"
    ARROW = "→"
    BULLET = "•"
    WARN = "⚠"
    INFO = "ℹ"
    SHIELD = "🛡"
    NEXT = "➜"

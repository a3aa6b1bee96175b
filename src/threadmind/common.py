"""Terminal helpers shared by the API launcher and the CLI client."""

from enum import Enum
from typing import Any

ANSI_RESET = "\033[0m"


class AnsiColors(Enum):
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print *text* wrapped in *color*.

    Extra positional and keyword arguments are passed through to :func:`print`.
    """
    print(f"{color.value}{text}{ANSI_RESET}", *args, **kwargs)

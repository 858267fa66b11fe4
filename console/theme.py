"""Color & style helpers.

- Disabled automatically when stdout is not a TTY unless FORCE_COLOR=1.
- Honors NO_COLOR for complete disable.
"""
from __future__ import annotations

import os
import sys

_FORCE = os.environ.get("FORCE_COLOR", "").lower() in {"1", "true", "yes", "on"}
_NO_COLOR = os.environ.get("NO_COLOR") is not None
_ENABLE = (_FORCE or sys.stdout.isatty()) and not _NO_COLOR


def _code(part: str) -> str:
    return f"\033[{part}m" if _ENABLE else ""


RESET = _code("0")
BOLD = _code("1")
DIM = _code("2")

RED = _code("31")
GREEN = _code("32")
YELLOW = _code("33")
BLUE = _code("34")
MAGENTA = _code("35")
CYAN = _code("36")

STATUS_COLOR = {
    "todo": CYAN,
    "in-progress": YELLOW,
    "completed": GREEN,
}

PRIORITY_COLOR = {
    "low": DIM,
    "medium": BLUE,
    "high": RED + BOLD,
}

NOTIFICATION_COLOR = {
    "success": GREEN,
    "error": RED,
}


def color(text: str, *styles: str) -> str:
    """Apply ANSI styles to a given text."""
    if not _ENABLE or not any(styles):
        return text
    return "".join(styles) + text + RESET

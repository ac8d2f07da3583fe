"""Clipboard text <-> grid conversion for spreadsheet-style copy/paste.

Clipboard text is tab-separated columns and newline-separated rows with no
escaping, so cells cannot contain literal tabs or newlines.
"""

import json
import re
from typing import Any

from dataview.fields import NUMERIC_TYPES, Field


LINE_SPLIT_RE = re.compile(r"\r?\n")

CHECKBOX_TRUE_WORDS = {"true", "1", "yes"}


def parse_clipboard_text(text: str | None) -> list[list[str]]:
    """Parse pasted text into a grid of strings, grid[row][col].

    Interior blank lines are kept as rows; trailing blank lines are dropped.
    Leading and trailing tabs are cells, so only line breaks are trimmed.
    """
    if not text or not text.strip():
        return []

    lines = LINE_SPLIT_RE.split(text.rstrip("\r\n"))
    while lines and lines[-1] == "":
        lines.pop()

    return [line.split("\t") for line in lines]


def format_clipboard_text(grid: list[list[str]]) -> str:
    """Serialize a grid back into clipboard text."""
    if not grid:
        return ""
    return "\n".join("\t".join(row) for row in grid)


def format_cell_value(value: Any, field: Field | None = None) -> str:
    """Render a stored cell value as clipboard text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(format_cell_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def parse_cell_value(value: Any, field: Field) -> Any:
    """Turn pasted text into a typed candidate value for a field.

    Non-string values pass through untouched. Text that cannot be parsed for
    the field type is returned as-is so validation can report it.
    """
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return None

    if field.type in NUMERIC_TYPES:
        try:
            return float(text)
        except ValueError:
            return text
    elif field.type == "checkbox":
        return text.lower() in CHECKBOX_TRUE_WORDS
    elif field.type in ("json", "attachment"):
        try:
            return json.loads(text)
        except ValueError:
            return text
    elif field.type == "multi_select":
        return [part.strip() for part in text.split(",") if part.strip()]
    elif field.is_computed:
        return None

    # Dates are normalized by validation
    return text

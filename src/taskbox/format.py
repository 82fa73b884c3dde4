# format.py
"""Small text helpers shared by diagnostics."""

from __future__ import annotations

from typing import Sequence


def code_str(value: object) -> str:
    """Render a name or path the way messages quote identifiers."""
    return f"`{value}`"


def series(items: Sequence[str]) -> str:
    """
    Join items as an English list.

      ["a"]            -> "a"
      ["a", "b"]       -> "a and b"
      ["a", "b", "c"]  -> "a, b, and c"
    """
    items = list(items)
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return ", ".join(items[:-1]) + f", and {items[-1]}"

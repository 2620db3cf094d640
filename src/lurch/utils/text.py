"""Small helpers for phrasing chat replies."""

from __future__ import annotations

from typing import Sequence


def desentence(text: str) -> str:
    """Trim whitespace, lower-case the first character and drop a trailing period."""
    text = text.strip()
    if text.endswith("."):
        text = text[:-1]
    if not text:
        return text
    return text[0].lower() + text[1:]


def sentence(text: str, suffix: str = "") -> str:
    """Trim whitespace, capitalise the first character and append ``suffix``."""
    text = text.strip()
    if not text:
        return text
    return text[0].upper() + text[1:] + suffix


def bullets(items: Sequence[str], indent: str = "  ") -> str:
    return "".join(f"\n{indent}• {item}" for item in items)


def plural(count: int, word: str, suffix: str = "s") -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}{suffix}"

"""Column letter <-> zero-based offset conversion (A, B, ..., Z, AA, AB, ...)."""

from __future__ import annotations


class ColumnLabelError(ValueError):
    """Raised when a column label cannot be decoded."""


def encode(offset: int) -> str:
    """Convert zero-based index to column letter. Negative input gives ``""``."""
    if offset < 0:
        return ""
    result = ""
    current = offset + 1
    while current > 0:
        current, remainder = divmod(current - 1, 26)
        result = chr(65 + remainder) + result
    return result


def decode(label: str) -> int:
    """Convert a column letter (any case) to its zero-based index."""
    if not label:
        raise ColumnLabelError("column label is empty")
    total = 0
    for char in label:
        if "A" <= char <= "Z":
            digit = ord(char) - 64
        elif "a" <= char <= "z":
            digit = ord(char) - 96
        else:
            raise ColumnLabelError(f"column label {label!r} must contain only letters A-Z")
        total = total * 26 + digit
    return total - 1


def shift(label: str, delta: int) -> str:
    """Return the label ``delta`` columns to the right of ``label``."""
    return encode(decode(label) + delta)

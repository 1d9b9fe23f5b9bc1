from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_RANGE_RE = re.compile(
    r"^(?:(?P<sheet>'(?:[^']|'')*'|[^!]+)!)?"
    r"(?P<c1>[A-Za-z]*)(?P<r1>\d*)"
    r"(?::(?P<c2>[A-Za-z]*)(?P<r2>\d*))?$"
)


@dataclass(frozen=True)
class A1Range:
    sheet: Optional[str]
    start_column: Optional[str]
    start_row: Optional[int]
    end_column: Optional[str]
    end_row: Optional[int]


def quote_sheet(name: str) -> str:
    escaped = name.replace("'", "''")
    return f"'{escaped}'"


def cell(sheet: str, column: str, row: int) -> str:
    return f"{quote_sheet(sheet)}!{column.upper()}{row}"


def column_span(sheet: str, column: str, start_row: int, end_row: Optional[int] = None) -> str:
    """``'Sheet'!B5:B`` for an open column, ``'Sheet'!B5:B9`` when bounded."""
    column = column.upper()
    tail = f"{column}{end_row}" if end_row is not None else column
    return f"{quote_sheet(sheet)}!{column}{start_row}:{tail}"


def row_span(sheet: str, start_column: str, row: int) -> str:
    """``'Sheet'!D2:2``: the rest of a row starting at ``start_column``."""
    return f"{quote_sheet(sheet)}!{start_column.upper()}{row}:{row}"


def parse(a1_range: str) -> A1Range:
    match = _RANGE_RE.match(a1_range.strip())
    if not match:
        raise ValueError(f"Unsupported A1 range: {a1_range!r}")

    sheet = match.group("sheet")
    if sheet and sheet.startswith("'"):
        sheet = sheet[1:-1].replace("''", "'")

    c1, r1 = match.group("c1"), match.group("r1")
    if not c1 and not r1:
        raise ValueError(f"Unsupported A1 range: {a1_range!r}")
    start_column = c1.upper() or None
    start_row = int(r1) if r1 else None

    if match.group("c2") is None and match.group("r2") is None:
        # single cell
        return A1Range(sheet, start_column, start_row, start_column, start_row)

    c2, r2 = match.group("c2"), match.group("r2")
    return A1Range(
        sheet,
        start_column,
        start_row,
        c2.upper() or None,
        int(r2) if r2 else None,
    )

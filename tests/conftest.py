# tests/conftest.py

from typing import Any, Dict, List, Optional, Tuple

import pytest

from sheetgrid import a1, columns


class FakeGrid:
    """
    In-memory stand-in for SheetsGrid. Cells are keyed by (sheet, column offset, row);
    reads trim trailing blanks the same way the Sheets API does.
    """

    def __init__(self, sheet: str = "KPI"):
        self.default_sheet = sheet
        self.cells: Dict[Tuple[str, int, int], Any] = {}
        self.reads: List[Tuple[str, bool]] = []
        self.updates: List[Tuple[str, List[List[Any]], str]] = []
        # exceptions raised by the next update_range / get_range calls, in order
        self.update_failures: List[Exception] = []
        self.read_failures: List[Exception] = []

    # --- test helpers ---
    def set(self, ref: str, value: Any, sheet: Optional[str] = None) -> None:
        parsed = a1.parse(ref)
        self.cells[(sheet or self.default_sheet, columns.decode(parsed.start_column), parsed.start_row)] = value

    def set_row(self, row: int, values: List[Any], start_column: str = "A", sheet: Optional[str] = None) -> None:
        start = columns.decode(start_column)
        for offset, value in enumerate(values):
            if value != "":
                self.cells[(sheet or self.default_sheet, start + offset, row)] = value

    def set_column(self, column: str, start_row: int, values: List[Any], sheet: Optional[str] = None) -> None:
        col = columns.decode(column)
        for offset, value in enumerate(values):
            if value != "":
                self.cells[(sheet or self.default_sheet, col, start_row + offset)] = value

    def value(self, ref: str, sheet: Optional[str] = None) -> Any:
        parsed = a1.parse(ref)
        return self.cells.get((sheet or self.default_sheet, columns.decode(parsed.start_column), parsed.start_row), "")

    def column_values(self, column: str, start_row: int, end_row: int, sheet: Optional[str] = None) -> List[Any]:
        return [self.value(f"{column}{row}", sheet) for row in range(start_row, end_row + 1)]

    def reads_of(self, a1_range: str) -> int:
        return sum(1 for read, _ in self.reads if read == a1_range)

    # --- grid store interface ---
    def _bounds(self, ref: a1.A1Range):
        sheet = ref.sheet or self.default_sheet
        in_sheet = [(col, row) for (name, col, row) in self.cells if name == sheet]
        c1 = columns.decode(ref.start_column) if ref.start_column else 0
        r1 = ref.start_row or 1
        c2 = columns.decode(ref.end_column) if ref.end_column else max([c for c, _ in in_sheet], default=c1)
        r2 = ref.end_row if ref.end_row is not None else max([r for _, r in in_sheet], default=r1)
        return sheet, c1, r1, c2, r2

    def get_range(self, spreadsheet_id: str, a1_range: str, render_raw: bool = False) -> List[List[Any]]:
        if self.read_failures:
            raise self.read_failures.pop(0)
        self.reads.append((a1_range, render_raw))
        sheet, c1, r1, c2, r2 = self._bounds(a1.parse(a1_range))
        rows = []
        for row in range(r1, r2 + 1):
            cells = []
            for col in range(c1, c2 + 1):
                value = self.cells.get((sheet, col, row), "")
                if not render_raw and not isinstance(value, str):
                    value = str(value)
                cells.append(value)
            while cells and cells[-1] == "":
                cells.pop()
            rows.append(cells)
        while rows and not rows[-1]:
            rows.pop()
        return rows

    def update_range(self, spreadsheet_id: str, a1_range: str, rows: List[List[Any]], input_option: str = "RAW"):
        if self.update_failures:
            raise self.update_failures.pop(0)
        self.updates.append((a1_range, rows, input_option))
        ref = a1.parse(a1_range)
        sheet = ref.sheet or self.default_sheet
        c1 = columns.decode(ref.start_column)
        for row_offset, values in enumerate(rows):
            for col_offset, value in enumerate(values):
                key = (sheet, c1 + col_offset, ref.start_row + row_offset)
                if value == "" or value is None:
                    self.cells.pop(key, None)
                else:
                    self.cells[key] = value
        return {"updatedRange": a1_range}


@pytest.fixture
def grid():
    return FakeGrid()


@pytest.fixture
def no_sleep():
    """Collects backoff sleeps instead of waiting."""
    calls = []
    return calls, calls.append

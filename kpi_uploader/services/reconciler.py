from __future__ import annotations

import enum
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Set, Tuple

from sheetgrid import a1
from kpi_uploader import metrics
from kpi_uploader.schemas import DatapointEntry
from kpi_uploader.services.coordinates import CoordinateCache
from kpi_uploader.services.sources import Record

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    SYNCED = "synced"
    COLLISION = "collision"
    FAILED = "failed"
    NOOP = "no-op"
    UPDATED = "updated"
    APPENDED = "appended"
    SKIPPED = "skipped"


def canonical(value: Any) -> str:
    """String form used to compare sheet cells with freshly scraped values."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    # "42.0" scraped as text and 42 read back from the sheet are the same number
    if text.endswith(".0") and text[:-2].lstrip("+-").isdigit():
        return text[:-2]
    return text


class SyncTally:
    """Per-run outcome counts; every recorded outcome also feeds the Prometheus counter."""

    def __init__(self):
        self.counts: Counter = Counter()

    def record(self, outcome: Outcome, count: int = 1) -> Outcome:
        self.counts[outcome] += count
        metrics.DATA_UPLOADED_TO_SHEET.labels(status=outcome.value).inc(count)
        return outcome

    def __getitem__(self, outcome: Outcome) -> int:
        return self.counts[outcome]

    def as_dict(self) -> Dict[str, int]:
        return {outcome.value: count for outcome, count in self.counts.items() if count}

    def __repr__(self) -> str:
        return f"SyncTally({self.as_dict()})"


class ColumnBuffer:
    """
    In-memory copy of one column, from ``start_row`` downwards, as rows of cells
    the way the Sheets API returns them (``[]`` for an empty row).

    Only rows changed through ``set`` are ever written back; everything else in
    the column is left to the sheet.
    """

    def __init__(self, sheet_name: str, column: str, start_row: int, rows: Optional[List[List[Any]]] = None):
        self.sheet_name = sheet_name
        self.column = column.upper()
        self.start_row = start_row
        self.rows: List[List[Any]] = [list(row) for row in (rows or [])]
        self.changed: Set[int] = set()
        # (key, row) pairs appended this run, their key cells still need writing
        self.appended: List[Tuple[str, int]] = []

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def dirty(self) -> bool:
        return bool(self.changed or self.appended)

    def offset_of(self, row: int) -> int:
        return row - self.start_row

    def pad_to(self, offset: int) -> None:
        while len(self.rows) <= offset:
            self.rows.append([""])
        if not self.rows[offset]:
            self.rows[offset] = [""]

    def get(self, offset: int) -> Any:
        if offset < 0 or offset >= len(self.rows) or not self.rows[offset]:
            return ""
        return self.rows[offset][0]

    def set(self, offset: int, value: Any) -> None:
        self.pad_to(offset)
        self.rows[offset][0] = value
        self.changed.add(offset)

    def store(self, offset: int, value: Any) -> None:
        """Records a value that is already in the sheet; it is not written again."""
        self.pad_to(offset)
        self.rows[offset][0] = value
        self.changed.discard(offset)

    def values(self) -> List[List[Any]]:
        return [row[:1] if row else [""] for row in self.rows]

    def pending_writes(self) -> List[Tuple[str, List[List[Any]], List[int]]]:
        """``(a1_range, rows, offsets)`` for every contiguous run of changed rows."""
        runs: List[List[int]] = []
        for offset in sorted(self.changed):
            if runs and offset == runs[-1][-1] + 1:
                runs[-1].append(offset)
            else:
                runs.append([offset])

        writes = []
        for offsets in runs:
            first = self.start_row + offsets[0]
            last = self.start_row + offsets[-1]
            if first == last:
                a1_range = a1.cell(self.sheet_name, self.column, first)
            else:
                a1_range = a1.column_span(self.sheet_name, self.column, first, last)
            writes.append((a1_range, [self.rows[offset][:1] for offset in offsets], offsets))
        return writes

    def mark_written(self, offsets: List[int]) -> None:
        self.changed.difference_update(offsets)


class ValueReconciler:
    """Decides, per record, whether a cell is left alone, overwritten, appended, or skipped."""

    def __init__(self, cache: CoordinateCache, tally: SyncTally, spreadsheet_id: str = ""):
        self.cache = cache
        self.tally = tally
        self.spreadsheet_id = spreadsheet_id

    def _compare_and_set(self, buffer: ColumnBuffer, row: int, value: Any) -> bool:
        offset = buffer.offset_of(row)
        if offset < 0:
            raise ValueError(f"Row {row} is above the data start row {buffer.start_row}")
        if offset >= len(buffer):
            buffer.pad_to(offset)
        self.cache.observe_row(row)
        existing = buffer.get(offset)
        if canonical(existing) == canonical(value):
            return False
        logger.info(
            "Updating %s (spreadsheet=%s old=%r new=%r)",
            a1.cell(buffer.sheet_name, buffer.column, row),
            self.spreadsheet_id,
            existing,
            value,
        )
        buffer.set(offset, value)
        return True

    def reconcile(self, datapoint: DatapointEntry, record: Record, buffer: ColumnBuffer) -> Outcome:
        row = self.cache.resolve_row(record.key, match_all=datapoint.match_all, cache_all=True)

        if row is not None:
            rows = self.cache.rows_for(record.key) if datapoint.match_all else [row]
            changed = False
            for target in rows:
                changed = self._compare_and_set(buffer, target, record.val) or changed
            return self.tally.record(Outcome.UPDATED if changed else Outcome.NOOP)

        if not datapoint.add_rows:
            logger.warning(
                "Key '%s' not found in column %s of '%s' and add-rows is off; skipping (datapoint=%s)",
                record.key,
                self.cache.key_column,
                self.cache.sheet_name,
                datapoint.title,
            )
            return self.tally.record(Outcome.SKIPPED)

        # rows past the end of the buffer may still hold keys; append below all of them
        last_offset = buffer.offset_of(self.cache.max_row)
        if last_offset >= 0:
            buffer.pad_to(last_offset)
        new_row = buffer.start_row + len(buffer)
        buffer.set(buffer.offset_of(new_row), record.val)
        buffer.appended.append((record.key, new_row))
        self.cache.remember(record.key, new_row, match_all=datapoint.match_all)
        logger.info(
            "Appended key '%s' at %s (spreadsheet=%s new=%r)",
            record.key,
            a1.cell(buffer.sheet_name, buffer.column, new_row),
            self.spreadsheet_id,
            record.val,
        )
        return self.tally.record(Outcome.APPENDED)

    def reconcile_cell(self, existing: Any, value: Any) -> Outcome:
        """Explicit single-cell datapoints: write only when the content differs."""
        if canonical(existing) == canonical(value):
            return Outcome.NOOP
        return Outcome.UPDATED

    def check_title(self, existing: Any, title: str) -> Outcome:
        """
        Legacy title cells: an occupied cell holding a different title means the
        configured sheet-row now belongs to another KPI.
        """
        current = canonical(existing)
        if current and current != canonical(title):
            return Outcome.COLLISION
        return Outcome.SYNCED

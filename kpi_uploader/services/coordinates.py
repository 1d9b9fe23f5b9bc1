from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sheetgrid import a1, columns
from kpi_uploader.services.errors import SyncConfigurationError

logger = logging.getLogger(__name__)


def _cell_text(row: List[Any], idx: int = 0) -> str:
    if idx >= len(row):
        return ""
    value = row[idx]
    return "" if value is None else str(value).strip()


class CoordinateCache:
    """
    Resolves topic -> column letter and key -> row number for one run on one sheet.

    The header row and the key column are each read from the grid at most once;
    the raw contents are kept so later lookups never go back to the API.
    """

    def __init__(
        self,
        grid,
        spreadsheet_id: str,
        sheet_name: str,
        *,
        topic_row: int,
        key_column: str = "A",
        data_start_row: int = 2,
        topic_start_column: str = "A",
    ):
        self.grid = grid
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.topic_row = topic_row
        self.key_column = key_column.upper()
        self.data_start_row = data_start_row
        self.topic_start_column = topic_start_column.upper()

        self.topics: Dict[str, str] = {}
        self.keys: Dict[str, int] = {}
        self.key_rows: Dict[str, List[int]] = {}
        self.max_row = data_start_row - 1

        self._ranges: Dict[str, List[List[Any]]] = {}
        self._topics_indexed = False
        self._keys_indexed = False
        self._multi_indexed = False

    # --- remote reads ---
    def _read(self, a1_range: str) -> List[List[Any]]:
        if a1_range not in self._ranges:
            logger.info("Reading %s (spreadsheet=%s)", a1_range, self.spreadsheet_id)
            self._ranges[a1_range] = self.grid.get_range(self.spreadsheet_id, a1_range) or []
        return self._ranges[a1_range]

    def _header(self) -> List[Any]:
        rows = self._read(a1.row_span(self.sheet_name, self.topic_start_column, self.topic_row))
        return rows[0] if rows else []

    def _key_column(self) -> List[List[Any]]:
        rows = self._read(a1.column_span(self.sheet_name, self.key_column, self.data_start_row))
        last = self.data_start_row + len(rows) - 1
        if last > self.max_row:
            self.max_row = last
        return rows

    # --- topics ---
    def _column_for(self, offset: int) -> str:
        return columns.shift(self.topic_start_column, offset)

    def resolve_column(self, topic: str, cache_all: bool = True) -> Optional[str]:
        topic = (topic or "").strip()
        if topic in self.topics:
            return self.topics[topic]

        header = self._header()
        if cache_all and not self._topics_indexed:
            for offset, raw in enumerate(header):
                label = _cell_text([raw])
                if label and label not in self.topics:
                    self.topics[label] = self._column_for(offset)
            self._topics_indexed = True
            return self.topics.get(topic)

        if not self._topics_indexed:
            for offset, raw in enumerate(header):
                if _cell_text([raw]) == topic:
                    self.topics[topic] = self._column_for(offset)
                    return self.topics[topic]

        if cache_all:
            return None
        raise SyncConfigurationError(
            f"Could not find topic '{topic}' in row {self.topic_row} of sheet '{self.sheet_name}'; "
            "add a column for it"
        )

    # --- keys ---
    def _index_keys(self, match_all: bool) -> None:
        rows = self._key_column()
        index_keys = not self._keys_indexed
        index_multi = match_all and not self._multi_indexed
        if not index_keys and not index_multi:
            return
        for offset, row in enumerate(rows):
            key = _cell_text(row)
            if not key:
                continue
            row_number = self.data_start_row + offset
            if index_keys:
                self.keys.setdefault(key, row_number)
            if index_multi:
                self.key_rows.setdefault(key, []).append(row_number)
        self._keys_indexed = True
        if match_all:
            self._multi_indexed = True

    def resolve_row(self, key: str, match_all: bool = False, cache_all: bool = True) -> Optional[int]:
        key = (key or "").strip()
        if cache_all:
            self._index_keys(match_all)
            return self.keys.get(key)

        if key in self.keys and not (match_all and not self._multi_indexed):
            return self.keys[key]

        rows = self._key_column()
        found = None
        for offset, row in enumerate(rows):
            if _cell_text(row) != key:
                continue
            row_number = self.data_start_row + offset
            if found is None:
                found = row_number
                self.keys.setdefault(key, row_number)
                if not match_all:
                    break
            if match_all and row_number not in self.key_rows.setdefault(key, []):
                self.key_rows[key].append(row_number)

        if found is None:
            raise SyncConfigurationError(
                f"Could not find key '{key}' in column {self.key_column} of sheet '{self.sheet_name}'; "
                "add a new row for it"
            )
        return found

    def warm_keys(self, match_all: bool = False) -> None:
        self._index_keys(match_all)

    def rows_for(self, key: str) -> List[int]:
        key = (key or "").strip()
        if self.key_rows.get(key):
            return list(self.key_rows[key])
        row = self.keys.get(key)
        return [row] if row is not None else []

    def observe_row(self, row: int) -> None:
        if row > self.max_row:
            self.max_row = row

    def remember(self, key: str, row: int, match_all: bool = False) -> None:
        """Records a row appended during this run."""
        key = (key or "").strip()
        self.keys.setdefault(key, row)
        if match_all or key in self.key_rows:
            rows = self.key_rows.setdefault(key, [])
            if row not in rows:
                rows.append(row)
        self.observe_row(row)

"""
Sequences one sync run.

Legacy KPI run: every configured KPI has a fixed sheet row; its title, this
week's value and the last-update date are written side by side. Any failure
aborts the run.

Datapoint run: every datapoint produces ``key``/``val`` records that are
matched against the key column and written into the column headed by the
datapoint's topic. Failures are recorded and the run moves on.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple, Union

from sheetgrid import a1
from sheetgrid.client import RAW, USER_ENTERED
from kpi_uploader import metrics
from kpi_uploader.schemas import DatapointEntry, KpiEntry, UploaderConfig
from kpi_uploader.services import sources
from kpi_uploader.services.coordinates import CoordinateCache
from kpi_uploader.services.errors import (
    ReadError,
    SourceError,
    SyncAbortedError,
    SyncConfigurationError,
    WriteError,
)
from kpi_uploader.services.reconciler import ColumnBuffer, Outcome, SyncTally, ValueReconciler
from kpi_uploader.services.retrier import WriteRetrier

logger = logging.getLogger(__name__)


def year_week(now: datetime) -> str:
    """ISO year-week (Monday starts the week) in UTC, e.g. ``2020-08``."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    year, week, _ = now.isocalendar()
    return f"{year}-{week:02d}"


class _Run:
    def __init__(
        self,
        cfg: UploaderConfig,
        grid,
        retrier: Optional[WriteRetrier] = None,
        now: Optional[datetime] = None,
    ):
        self.cfg = cfg
        self.grid = grid
        self.retrier = retrier or WriteRetrier(grid, cfg.spreadsheet_id)
        self.now = now or datetime.now(timezone.utc)
        self.tally = SyncTally()

    def execute(self) -> SyncTally:
        raise NotImplementedError


class LegacyKpiRun(_Run):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        cfg = self.cfg
        self.cache = CoordinateCache(
            self.retrier,
            cfg.spreadsheet_id,
            cfg.sheet_name,
            topic_row=cfg.sheet_data_date_row,
            topic_start_column=cfg.sheet_data_start_col,
            key_column=cfg.sheet_kpi_name_col,
            data_start_row=1,
        )
        self.week = year_week(self.now)
        self.last_update = self.now.strftime("%Y-%m-%d")
        self._week_column: Optional[str] = None
        self._titles: Optional[ColumnBuffer] = None
        self.reconciler = ValueReconciler(self.cache, self.tally, cfg.spreadsheet_id)

    def _resolve_week_column(self) -> str:
        if self._week_column is None:
            try:
                self._week_column = self.cache.resolve_column(self.week, cache_all=False)
            except SyncConfigurationError:
                logger.error("Could not find week %s; add a new week column", self.week)
                raise
            logger.info("Writing week %s to column %s", self.week, self._week_column)
        return self._week_column

    def _title_column(self) -> ColumnBuffer:
        if self._titles is None:
            column = self.cfg.sheet_kpi_name_col
            rows = self.retrier.get_range(
                self.cfg.spreadsheet_id,
                a1.column_span(self.cfg.sheet_name, column, 1),
                render_raw=True,
            )
            self._titles = ColumnBuffer(self.cfg.sheet_name, column, 1, rows)
        return self._titles

    def _write(self, kpi_no: int, column: str, kpi: KpiEntry, value, input_option: str, what: str) -> None:
        cell = a1.cell(self.cfg.sheet_name, column, kpi.sheet_row)
        logger.info("KPI %d: setting cell %s to %r (%s)", kpi_no, cell, value, what)
        self.retrier.persist(cell, [[value]], input_option)

    def _sync_kpi(self, kpi_no: int, kpi: KpiEntry) -> Outcome:
        value = sources.read_kpi_value(kpi.source)
        week_column = self._resolve_week_column()

        titles = self._title_column()
        offset = titles.offset_of(kpi.sheet_row)
        existing = titles.get(offset)
        if self.reconciler.check_title(existing, kpi.title) is Outcome.COLLISION:
            logger.warning(
                "KPI %d: collision at %s (spreadsheet=%s old=%r new=%r); row left untouched",
                kpi_no,
                a1.cell(self.cfg.sheet_name, titles.column, kpi.sheet_row),
                self.cfg.spreadsheet_id,
                existing,
                kpi.title,
            )
            return self.tally.record(Outcome.COLLISION)

        self._write(kpi_no, self.cfg.sheet_kpi_name_col, kpi, kpi.title, RAW, "KPI title")
        titles.store(offset, kpi.title)
        self._write(kpi_no, week_column, kpi, value, USER_ENTERED, f"KPI value for week {self.week}")
        self._write(kpi_no, self.cfg.sheet_kpi_last_update_col, kpi, self.last_update, USER_ENTERED, "last update")
        return self.tally.record(Outcome.SYNCED)

    def execute(self) -> SyncTally:
        if self.cfg.datapoints:
            logger.warning("KPI entries configured; ignoring %d datapoint(s)", len(self.cfg.datapoints))
        for kpi_no, kpi in enumerate(self.cfg.kpi, start=1):
            try:
                self._sync_kpi(kpi_no, kpi)
            except (SourceError, ReadError, WriteError) as exc:
                self.tally.record(Outcome.FAILED)
                raise SyncAbortedError(f"KPI {kpi_no} ('{kpi.title}'): {exc}") from exc
        logger.info("KPI run finished (week=%s): %s", self.week, self.tally.as_dict())
        return self.tally


class DatapointRun(_Run):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._caches: Dict[str, CoordinateCache] = {}
        self._buffers: Dict[Tuple[str, str], ColumnBuffer] = {}

    def _cache_for(self, sheet_name: str) -> CoordinateCache:
        if sheet_name not in self._caches:
            self._caches[sheet_name] = CoordinateCache(
                self.retrier,
                self.cfg.spreadsheet_id,
                sheet_name,
                topic_row=self.cfg.sheet_topic_row,
                topic_start_column=self.cfg.sheet_data_start_col,
                key_column=self.cfg.sheet_key_col,
                data_start_row=self.cfg.sheet_data_start_row,
            )
        return self._caches[sheet_name]

    def _buffer_for(self, sheet_name: str, column: str) -> ColumnBuffer:
        # raw values, formatted ones would be written back as text
        buffer_key = (sheet_name, column)
        if buffer_key not in self._buffers:
            start_row = self.cfg.sheet_data_start_row
            rows = self.retrier.get_range(
                self.cfg.spreadsheet_id,
                a1.column_span(sheet_name, column, start_row),
                render_raw=True,
            )
            self._buffers[buffer_key] = ColumnBuffer(sheet_name, column, start_row, rows)
        return self._buffers[buffer_key]

    def _persist(self, buffer: ColumnBuffer) -> None:
        # unchanged rows are never re-sent, USER_ENTERED would re-parse them
        for a1_range, rows, offsets in buffer.pending_writes():
            self.retrier.persist(a1_range, rows, USER_ENTERED)
            buffer.mark_written(offsets)
        while buffer.appended:
            key, row = buffer.appended[0]
            self.retrier.persist(a1.cell(buffer.sheet_name, self.cfg.sheet_key_col, row), [[key]], RAW)
            buffer.appended.pop(0)

    def _sync_cell(self, datapoint: DatapointEntry, sheet_name: str) -> None:
        value = sources.read_cell_value(datapoint.source)

        ref = a1.parse(datapoint.cell)
        cell = a1.cell(sheet_name, ref.start_column, ref.start_row)
        rows = self.retrier.get_range(self.cfg.spreadsheet_id, cell, render_raw=True)
        existing = rows[0][0] if rows and rows[0] else ""

        cache = self._cache_for(sheet_name)
        outcome = ValueReconciler(cache, self.tally, self.cfg.spreadsheet_id).reconcile_cell(existing, value)
        if outcome is Outcome.UPDATED:
            logger.info(
                "Updating %s (spreadsheet=%s old=%r new=%r)", cell, self.cfg.spreadsheet_id, existing, value
            )
            self.retrier.persist(cell, [[value]], USER_ENTERED)

        # a column buffer already read this run must see the cell as it is now
        buffer = self._buffers.get((sheet_name, ref.start_column))
        if buffer is not None and 0 <= buffer.offset_of(ref.start_row) < len(buffer):
            buffer.store(buffer.offset_of(ref.start_row), value)
        self.tally.record(outcome)

    def _sync_datapoint(self, datapoint: DatapointEntry) -> None:
        sheet_name = datapoint.sheet_name or self.cfg.sheet_name
        if datapoint.cell:
            self._sync_cell(datapoint, sheet_name)
            return

        cache = self._cache_for(sheet_name)
        column = cache.resolve_column(datapoint.topic_label, cache_all=True)
        if column is None:
            raise SyncConfigurationError(
                f"Could not find topic '{datapoint.topic_label}' in row {cache.topic_row} "
                f"of sheet '{sheet_name}'; add a column for it"
            )
        cache.warm_keys(match_all=datapoint.match_all)

        records = sources.read_records(datapoint.source, key=datapoint.key)
        logger.info("Datapoint '%s': %d record(s) for column %s", datapoint.title, len(records), column)

        buffer = self._buffer_for(sheet_name, column)
        reconciler = ValueReconciler(cache, self.tally, self.cfg.spreadsheet_id)
        for record in records:
            reconciler.reconcile(datapoint, record, buffer)

        if buffer.dirty:
            self._persist(buffer)

    def execute(self) -> SyncTally:
        for datapoint in self.cfg.datapoints:
            try:
                self._sync_datapoint(datapoint)
            except (SourceError, ReadError, WriteError) as exc:
                # unwritten rows stay pending, a later datapoint on the same column re-sends them
                logger.error("Datapoint '%s' failed: %s", datapoint.title, exc)
                self.tally.record(Outcome.FAILED)
        logger.info("Datapoint run finished: %s", self.tally.as_dict())
        return self.tally


SyncRun = Union[LegacyKpiRun, DatapointRun]


def select_run(
    cfg: UploaderConfig,
    grid,
    retrier: Optional[WriteRetrier] = None,
    now: Optional[datetime] = None,
) -> SyncRun:
    if cfg.kpi:
        return LegacyKpiRun(cfg, grid, retrier=retrier, now=now)
    return DatapointRun(cfg, grid, retrier=retrier, now=now)


def run_once(
    cfg: UploaderConfig,
    grid,
    retrier: Optional[WriteRetrier] = None,
    now: Optional[datetime] = None,
) -> SyncTally:
    run = select_run(cfg, grid, retrier=retrier, now=now)
    logger.info("Starting %s (spreadsheet=%s)", type(run).__name__, cfg.spreadsheet_id)
    with metrics.SYNC_RUN_DURATION_SECONDS.time():
        return run.execute()

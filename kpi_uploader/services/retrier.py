from __future__ import annotations

import logging
import re
import socket
import time
from typing import Any, Callable, List, Type

from googleapiclient.errors import HttpError

from sheetgrid.client import USER_ENTERED
from kpi_uploader import config
from kpi_uploader.services.errors import ReadError, WriteError, GridRangeError

logger = logging.getLogger(__name__)

TRANSIENT_PATTERN = re.compile(r"(Error 429|HttpError 429|time ?out|timed out)", re.IGNORECASE)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, socket.timeout)):
        return True
    if isinstance(exc, HttpError) and getattr(exc.resp, "status", None) == 429:
        return True
    return bool(TRANSIENT_PATTERN.search(str(exc)))


class WriteRetrier:
    """
    Persists one range update, retrying rate-limit and timeout failures with a
    fixed backoff. Anything else, or running out of attempts, raises ``WriteError``.

    Reads get the same policy through ``get_range``, which has the grid's own
    signature so the retrier can be handed to ``CoordinateCache`` as its grid.
    """

    def __init__(
        self,
        grid,
        spreadsheet_id: str,
        attempts: int | None = None,
        backoff: float | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.grid = grid
        self.spreadsheet_id = spreadsheet_id
        self.attempts = max(1, attempts if attempts is not None else config.WRITE_RETRY_ATTEMPTS)
        self.backoff = backoff if backoff is not None else config.WRITE_RETRY_BACKOFF_SECONDS
        self.sleep = sleep

    def _call(self, what: str, a1_range: str, error_cls: Type[GridRangeError], call: Callable[[], Any]) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                result = call()
            except Exception as exc:
                if not is_transient(exc):
                    logger.error("%s %s failed (spreadsheet=%s): %s", what, a1_range, self.spreadsheet_id, exc)
                    raise error_cls(a1_range, exc, attempt) from exc
                if attempt >= self.attempts:
                    logger.error(
                        "%s %s still failing after %d attempts (spreadsheet=%s): %s",
                        what,
                        a1_range,
                        attempt,
                        self.spreadsheet_id,
                        exc,
                    )
                    raise error_cls(a1_range, exc, attempt) from exc
                logger.warning(
                    "Transient error on %s %s, retrying in %.0fs (attempt %d/%d): %s",
                    what.lower(),
                    a1_range,
                    self.backoff,
                    attempt,
                    self.attempts,
                    exc,
                )
                self.sleep(self.backoff)
                continue

            if attempt > 1:
                logger.info("%s %s succeeded on attempt %d", what, a1_range, attempt)
            return result

    def persist(self, a1_range: str, rows: List[List[Any]], input_option: str = USER_ENTERED) -> None:
        self._call(
            "Write to",
            a1_range,
            WriteError,
            lambda: self.grid.update_range(self.spreadsheet_id, a1_range, rows, input_option),
        )

    def get_range(self, spreadsheet_id: str, a1_range: str, render_raw: bool = False) -> List[List[Any]]:
        return self._call(
            "Read of",
            a1_range,
            ReadError,
            lambda: self.grid.get_range(spreadsheet_id, a1_range, render_raw=render_raw),
        )

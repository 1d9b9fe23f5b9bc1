from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from google.auth.exceptions import RefreshError

from sheetgrid.client import SheetsGrid
from kpi_uploader import config
from kpi_uploader.schemas import UploaderConfig
from kpi_uploader.services import kpi_config
from kpi_uploader.services.errors import SyncAbortedError, SyncConfigurationError
from kpi_uploader.services.orchestrator import run_once
from kpi_uploader.services.reconciler import SyncTally

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    # the CLI starts without any logging setup, so INFO would not be visible
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level or config.LOG_LEVEL,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def _format_refresh_error(exc: RefreshError) -> str:
    """Human readable message for token refresh / JWT failures."""
    # usually ('invalid_grant: Invalid JWT Signature.', {...})
    message = ""
    for arg in exc.args:
        if isinstance(arg, str):
            message = arg
            break
        if isinstance(arg, dict):
            descr = arg.get("error_description") or arg.get("error")
            if descr:
                message = descr
                break
    if not message:
        message = str(exc)
    return f"Google authorization failed (JWT): {message}. Check the service account credentials."


def handle_sync_run(cfg: UploaderConfig, grid) -> SyncTally:
    """One run; fatal problems are logged and re-raised for the caller to exit on."""
    try:
        return run_once(cfg, grid)
    except SyncConfigurationError as exc:
        logger.error("Sync configuration error: %s", exc)
        raise
    except SyncAbortedError as exc:
        logger.error("Sync aborted: %s", exc)
        raise
    except RefreshError as exc:
        logger.error(_format_refresh_error(exc))
        raise
    except Exception:
        logger.exception("Unexpected error during sync run")
        raise


# errors that end the periodic loop
LOOP_FATAL_ERRORS = (SyncConfigurationError, RefreshError)


def run_forever(
    cfg: UploaderConfig,
    grid,
    interval: float,
    stop: Optional[threading.Event] = None,
) -> None:
    """
    Runs a sync every ``interval`` seconds until ``stop`` is set. A failed run is
    logged by ``handle_sync_run`` and the loop waits for the next one, unless the
    failure is a configuration or credentials problem.
    """
    stop = stop or threading.Event()
    while not stop.is_set():
        started = time.monotonic()
        try:
            handle_sync_run(cfg, grid)
        except LOOP_FATAL_ERRORS:
            raise
        except Exception as exc:
            logger.warning("Sync run failed (%s), will try again at the next interval", type(exc).__name__)
        remaining = max(0.0, interval - (time.monotonic() - started))
        logger.info("Next sync in %.0fs", remaining)
        stop.wait(remaining)


def build_grid(credentials: Optional[str] = None) -> SheetsGrid:
    return SheetsGrid.from_credentials(credentials or kpi_config.get_credentials_file())

import argparse
import logging
import sys

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from kpi_uploader import config
from kpi_uploader.services import kpi_config, sync_worker
from kpi_uploader.services.errors import SyncAbortedError, SyncConfigurationError

logger = logging.getLogger(__name__)

FATAL_ERRORS = (SyncConfigurationError, SyncAbortedError, HttpError, RefreshError, FileNotFoundError)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kpi-uploader", description="Upload KPI values to a Google spreadsheet")
    parser.add_argument("--config", help=f"Path to the YAML config (default: {config.KPI_CONFIG_PATH})")
    parser.add_argument("--creds-json", help=f"Service account credentials (default: {config.GOOGLE_CREDENTIALS})")
    parser.add_argument("--log-level", help=f"Logging level (default: {config.LOG_LEVEL})")

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="Run one sync and exit")
    serve = commands.add_parser("serve", help="Serve health/metrics and sync periodically")
    serve.add_argument(
        "--interval",
        type=int,
        default=config.SYNC_INTERVAL_SECONDS,
        help="Seconds between runs; 0 runs once (default: %(default)s)",
    )
    serve.add_argument("--host", default=config.HTTP_HOST)
    serve.add_argument("--port", type=int, default=config.HTTP_PORT)
    return parser


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    sync_worker.configure_logging(args.log_level)

    try:
        cfg = kpi_config.load_config(args.config)
        grid = sync_worker.build_grid(args.creds_json)

        if args.command == "serve":
            from kpi_uploader.main import serve_in_background

            serve_in_background(args.host, args.port)
            if args.interval > 0:
                sync_worker.run_forever(cfg, grid, args.interval)
                return 0

        tally = sync_worker.handle_sync_run(cfg, grid)
    except FATAL_ERRORS as exc:
        logger.error("Fatal: %s", exc)
        return 1
    except KeyboardInterrupt:
        return 130

    logger.info("Done: %s", tally.as_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())

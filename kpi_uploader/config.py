import os
from dotenv import load_dotenv
from pathlib import Path

load_dotenv()


def _read_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _read_int(name: str, default: int) -> int:
    value = _read_env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {value!r}") from exc


def _read_float(name: str, default: float) -> float:
    value = _read_env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {value!r}") from exc


PROJECT_ROOT = Path(__file__).resolve().parents[1]

KPI_CONFIG_PATH = _read_env("KPI_CONFIG_PATH") or "config.yaml"
GOOGLE_CREDENTIALS = _read_env("GOOGLE_CREDENTIALS") or "secret.json"

LOG_LEVEL = (_read_env("LOG_LEVEL") or "INFO").upper()

HTTP_HOST = _read_env("HTTP_HOST") or "0.0.0.0"
HTTP_PORT = _read_int("HTTP_PORT", 8080)
METRICS_PATH = _read_env("METRICS_PATH") or "/metrics"
READY_PATH = _read_env("READY_PATH") or "/ready"
ALIVE_PATH = _read_env("ALIVE_PATH") or "/alive"

# 0 means "run once and exit"
SYNC_INTERVAL_SECONDS = _read_int("SYNC_INTERVAL_SECONDS", 0)

WRITE_RETRY_ATTEMPTS = _read_int("WRITE_RETRY_ATTEMPTS", 12)
WRITE_RETRY_BACKOFF_SECONDS = _read_float("WRITE_RETRY_BACKOFF_SECONDS", 10.0)

SOURCE_TIMEOUT_SECONDS = _read_float("SOURCE_TIMEOUT_SECONDS", 60.0)

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from kpi_uploader import config
from kpi_uploader.schemas import UploaderConfig
from kpi_uploader.services.errors import SyncConfigurationError

logger = logging.getLogger(__name__)


def _resolve_path(path_value: Union[str, Path]) -> Path:
    path = Path(path_value)
    if not path.is_absolute() and not path.exists():
        candidate = config.PROJECT_ROOT / path
        if candidate.exists():
            return candidate
    return path


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise SyncConfigurationError(f"Unable to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SyncConfigurationError(f"Unable to parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SyncConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def parse_config(data: Dict[str, Any]) -> UploaderConfig:
    try:
        return UploaderConfig.model_validate(data)
    except ValidationError as exc:
        raise SyncConfigurationError(f"Invalid KPI configuration: {exc}") from exc


def load_config(path_value: Union[str, Path, None] = None) -> UploaderConfig:
    path = _resolve_path(path_value or config.KPI_CONFIG_PATH)
    cfg = parse_config(_read_config(path))
    logger.info(
        "Loaded %s: spreadsheet=%s sheet=%s kpis=%d datapoints=%d",
        path,
        cfg.spreadsheet_id,
        cfg.sheet_name,
        len(cfg.kpi),
        len(cfg.datapoints),
    )
    return cfg


def get_credentials_file() -> str:
    return str(_resolve_path(config.GOOGLE_CREDENTIALS))

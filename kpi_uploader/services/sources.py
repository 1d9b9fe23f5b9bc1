"""
Value sources for KPIs and datapoints.

A source is either an external command (its stdout holds a number for legacy
KPIs, or newline-delimited ``{"key": ..., "val": ...}`` objects for datapoints)
or an HTTP endpoint returning JSON, from which one field is picked with a
dotted path such as ``data.items.0.count``.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Union

import requests

from kpi_uploader import config, metrics
from kpi_uploader.schemas import SourceSpec
from kpi_uploader.services.errors import SourceError

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"[-+]?\d+")


@dataclass(frozen=True)
class Record:
    key: str
    val: Any


def _split_args(args: Union[str, Sequence[str], None]) -> List[str]:
    if args is None:
        return []
    if isinstance(args, str):
        return shlex.split(args)
    return [str(arg) for arg in args]


def run_command(path: str, args: Union[str, Sequence[str], None] = None, timeout: Optional[float] = None) -> str:
    argv = [path, *_split_args(args)]
    timeout = config.SOURCE_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        completed = subprocess.run(
            argv, capture_output=True, text=True, encoding="utf-8", timeout=timeout, check=False
        )
    except FileNotFoundError as exc:
        raise SourceError(f"Command not found: {path}") from exc
    except subprocess.TimeoutExpired as exc:
        raise SourceError(f"Command {shlex.join(argv)} timed out after {timeout}s") from exc
    except OSError as exc:
        raise SourceError(f"Command {shlex.join(argv)} could not be started: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise SourceError(f"Command {shlex.join(argv)} printed output that is not UTF-8: {exc}") from exc

    if completed.returncode != 0:
        stderr = (completed.stderr or "").strip()
        raise SourceError(f"Command {shlex.join(argv)} exited with {completed.returncode}: {stderr}")
    if completed.stderr:
        logger.debug("Command %s stderr: %s", shlex.join(argv), completed.stderr.strip())
    metrics.READ_ENDPOINT_DATA.inc()
    return completed.stdout


def fetch_json(url: str, timeout: Optional[float] = None) -> Any:
    timeout = config.SOURCE_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": "application/json"})
        response.raise_for_status()
        body = response.json()
    except requests.RequestException as exc:
        raise SourceError(f"Unable to fetch {url}: {exc}") from exc
    except ValueError as exc:
        raise SourceError(f"Response from {url} is not valid JSON: {exc}") from exc
    metrics.READ_ENDPOINT_DATA.inc()
    return body


def pick(document: Any, path: str) -> Any:
    """
    Walks ``document`` along a dotted path. Numeric segments index lists and
    ``#`` returns the length of the current list.
    """
    current = document
    walked = []
    for segment in path.split("."):
        if segment == "":
            continue
        walked.append(segment)
        if segment == "#" and isinstance(current, list):
            current = len(current)
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError) as exc:
                raise SourceError(f"Path '{'.'.join(walked)}' not found") from exc
        elif isinstance(current, dict) and segment in current:
            current = current[segment]
        else:
            raise SourceError(f"Path '{'.'.join(walked)}' not found")
    return current


def parse_kpi_value(output: str) -> int:
    match = _INT_RE.search(output or "")
    if not match:
        raise SourceError(f"No integer found in command output: {output!r}")
    return int(match.group(0))


def parse_records(output: str) -> List[Record]:
    records = []
    for line_no, line in enumerate((output or "").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Skipping line %d, not JSON: %s", line_no, exc)
            continue
        if not isinstance(data, dict) or "key" not in data or "val" not in data:
            logger.warning("Skipping line %d, expected an object with 'key' and 'val': %s", line_no, line)
            continue
        key = str(data["key"]).strip()
        if not key:
            logger.warning("Skipping line %d, empty key", line_no)
            continue
        records.append(Record(key=key, val=data["val"]))
    return records


def read_kpi_value(source: SourceSpec) -> Any:
    if source.command:
        return parse_kpi_value(run_command(source.command, source.args))
    return pick(fetch_json(source.url), source.json_path)


def read_records(source: SourceSpec, key: Optional[str] = None) -> List[Record]:
    if source.command:
        return parse_records(run_command(source.command, source.args))
    value = pick(fetch_json(source.url), source.json_path)
    return [Record(key=key or "", val=value)]


def parse_cell_value(output: str) -> Any:
    """
    Output of a command feeding one explicit cell: either a bare value such as
    ``42`` or ``"ok"``, or ``{"key": ..., "val": ...}`` records of which the
    first one wins.
    """
    lines = [line.strip() for line in (output or "").splitlines() if line.strip()]
    if not lines:
        raise SourceError("Command printed no value")
    if len(lines) == 1:
        try:
            data = json.loads(lines[0])
        except json.JSONDecodeError:
            return lines[0]
        if not isinstance(data, (dict, list)):
            return data

    records = parse_records(output)
    if not records:
        raise SourceError(f"No value found in command output: {output!r}")
    if len(records) > 1:
        logger.warning("Command printed %d records for a single cell, using the first", len(records))
    return records[0].val


def read_cell_value(source: SourceSpec) -> Any:
    if source.command:
        return parse_cell_value(run_command(source.command, source.args))
    return pick(fetch_json(source.url), source.json_path)

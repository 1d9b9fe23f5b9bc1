import sys

import pytest
import requests

from kpi_uploader.schemas import SourceSpec
from kpi_uploader.services import sources
from kpi_uploader.services.errors import SourceError
from kpi_uploader.services.sources import Record


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def test_parse_kpi_value_takes_first_integer():
    assert sources.parse_kpi_value("42\n") == 42
    assert sources.parse_kpi_value("  -7 open issues") == -7
    with pytest.raises(SourceError):
        sources.parse_kpi_value("nothing here")


def test_parse_records_skips_blank_and_malformed_lines():
    output = '{"key": "a", "val": 1}\n\nnot json\n{"key": "b"}\n{"key": 3, "val": "x"}\n'

    assert sources.parse_records(output) == [Record("a", 1), Record("3", "x")]


def test_pick_dotted_and_indexed_paths():
    document = {"data": {"items": [{"count": 3}, {"count": 5}]}}

    assert sources.pick(document, "data.items.1.count") == 5
    assert sources.pick(document, "data.items.#") == 2
    with pytest.raises(SourceError):
        sources.pick(document, "data.items.9.count")
    with pytest.raises(SourceError):
        sources.pick(document, "data.missing")


def test_run_command_returns_stdout():
    output = sources.run_command(sys.executable, ["-c", "print(42)"])

    assert output.strip() == "42"


def test_run_command_splits_string_args():
    output = sources.run_command(sys.executable, "-c 'print(\"a b\")'")

    assert output.strip() == "a b"


def test_run_command_failure_raises():
    with pytest.raises(SourceError) as exc_info:
        sources.run_command(sys.executable, ["-c", "import sys; sys.exit(3)"])
    assert "exited with 3" in str(exc_info.value)


def test_run_command_missing_binary():
    with pytest.raises(SourceError):
        sources.run_command("/nonexistent/kpi-command")


def test_run_command_undecodable_output_raises_source_error():
    with pytest.raises(SourceError) as exc_info:
        sources.run_command(sys.executable, ["-c", "import sys; sys.stdout.buffer.write(bytes([255, 254]))"])
    assert "not UTF-8" in str(exc_info.value)


def test_parse_cell_value_accepts_bare_values_and_records():
    assert sources.parse_cell_value("42\n") == 42
    assert sources.parse_cell_value("3.5") == 3.5
    assert sources.parse_cell_value("all good\n") == "all good"
    assert sources.parse_cell_value('{"key": "total", "val": 7}\n') == 7
    assert sources.parse_cell_value('{"key": "a", "val": 1}\n{"key": "b", "val": 2}\n') == 1
    with pytest.raises(SourceError):
        sources.parse_cell_value("\n\n")
    with pytest.raises(SourceError):
        sources.parse_cell_value('{"unexpected": true}')


def test_fetch_json_and_read_records(monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        return _FakeResponse({"stats": {"open": 12}})

    monkeypatch.setattr(sources.requests, "get", fake_get)
    source = SourceSpec(url="https://example.test/stats", json_path="stats.open")

    assert sources.read_records(source, key="open-bugs") == [Record("open-bugs", 12)]
    assert sources.read_kpi_value(source) == 12
    assert calls == ["https://example.test/stats", "https://example.test/stats"]


def test_fetch_json_http_error(monkeypatch):
    monkeypatch.setattr(sources.requests, "get", lambda url, **kwargs: _FakeResponse({}, status_code=503))

    with pytest.raises(SourceError):
        sources.fetch_json("https://example.test/down")


def test_fetch_json_invalid_body(monkeypatch):
    monkeypatch.setattr(sources.requests, "get", lambda url, **kwargs: _FakeResponse(ValueError("no json")))

    with pytest.raises(SourceError):
        sources.fetch_json("https://example.test/html")

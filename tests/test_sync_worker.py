import threading

import pytest
from google.auth.exceptions import RefreshError

from kpi_uploader import cli
from kpi_uploader.services import kpi_config, sources, sync_worker
from kpi_uploader.services.errors import SyncAbortedError, SyncConfigurationError

CONFIG_YAML = """
spreadsheet-id: 1AbC
sheet-name: KPI
datapoints:
  - title: Deploys
    command: /usr/local/bin/deploys
"""


@pytest.fixture
def setup(tmp_path, monkeypatch, grid):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    grid.set_row(1, ["service", "Deploys"])
    grid.set_column("A", 2, ["svc-a"])
    monkeypatch.setattr(sync_worker, "build_grid", lambda credentials=None: grid)
    monkeypatch.setattr(sources, "run_command", lambda path, args=None, timeout=None: '{"key": "svc-a", "val": 9}\n')
    return path


def test_cli_run_once(setup, grid):
    assert cli.main(["--config", str(setup), "run"]) == 0
    assert grid.value("B2") == 9


def test_cli_exits_non_zero_on_configuration_error(setup, grid):
    grid.set_row(1, ["service", "Other"])

    assert cli.main(["--config", str(setup), "run"]) == 1
    assert grid.updates == []


def test_cli_missing_config(tmp_path):
    assert cli.main(["--config", str(tmp_path / "nope.yaml"), "run"]) == 1


def test_run_forever_until_stopped(setup, grid, monkeypatch):
    stop = threading.Event()
    runs = []

    def fake_run_command(path, args=None, timeout=None):
        runs.append(path)
        if len(runs) == 2:
            stop.set()
        return '{"key": "svc-a", "val": %d}\n' % len(runs)

    monkeypatch.setattr(sources, "run_command", fake_run_command)
    cfg = kpi_config.load_config(setup)

    sync_worker.run_forever(cfg, grid, interval=0, stop=stop)

    assert len(runs) == 2
    assert grid.value("B2") == 2


def test_run_forever_survives_failed_run(setup, grid, monkeypatch):
    stop = threading.Event()
    runs = []

    def flaky_run_once(cfg, grid):
        runs.append(cfg)
        if len(runs) == 1:
            raise SyncAbortedError("KPI 1 ('Open bugs'): exited with 1")
        stop.set()

    monkeypatch.setattr(sync_worker, "run_once", flaky_run_once)
    cfg = kpi_config.load_config(setup)

    sync_worker.run_forever(cfg, grid, interval=0, stop=stop)

    assert len(runs) == 2


def test_run_forever_stops_on_configuration_error(setup, grid):
    grid.set_row(1, ["service", "Other"])
    cfg = kpi_config.load_config(setup)

    with pytest.raises(SyncConfigurationError):
        sync_worker.run_forever(cfg, grid, interval=0, stop=threading.Event())

def test_handle_sync_run_reraises_configuration_errors(setup, grid):
    grid.set_row(1, ["service", "Other"])
    cfg = kpi_config.load_config(setup)

    with pytest.raises(SyncConfigurationError):
        sync_worker.handle_sync_run(cfg, grid)


def test_format_refresh_error():
    exc = RefreshError("invalid_grant: Invalid JWT Signature.", {"error": "invalid_grant"})

    message = sync_worker._format_refresh_error(exc)

    assert "Invalid JWT Signature" in message

import textwrap

import pytest

from kpi_uploader.services import kpi_config
from kpi_uploader.services.errors import SyncConfigurationError

LEGACY_YAML = """
spreadsheet-id: 1AbC
sheet-name: KPI
sheet-kpi-last-update-col: c
sheet-kpi-name-col: B
sheet-data-start-col: D
sheet-data-date-row: "2"
KPI:
  - title: Open bugs
    sheet-row: "5"
    kpi-command: /usr/local/bin/count-bugs
    kpi-command-args: --open
  - title: Uptime
    sheet-row: 6
    kpi-url: https://status.example.test/api
    kpi-json-path: data.uptime
"""

DATAPOINT_YAML = """
spreadsheet-id: 1AbC
sheet-name: Services
sheet-key-col: A
sheet-topic-row: 1
sheet-data-start-row: 3
datapoints:
  - title: Deploys
    command: /usr/local/bin/deploys
    args: ["--since", "7d"]
    add-rows: true
  - title: Error budget
    topic: Budget
    url: https://slo.example.test/api
    json-path: budget.remaining
    key: checkout
    match-all: true
  - title: Total
    command: /usr/local/bin/total
    cell: g2
"""


def _write(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


def test_load_legacy_config(tmp_path):
    cfg = kpi_config.load_config(_write(tmp_path, LEGACY_YAML))

    assert cfg.spreadsheet_id == "1AbC"
    assert cfg.sheet_kpi_last_update_col == "C"
    assert cfg.sheet_data_date_row == 2
    assert [kpi.sheet_row for kpi in cfg.kpi] == [5, 6]
    assert cfg.kpi[0].source.command == "/usr/local/bin/count-bugs"
    assert cfg.kpi[0].source.args == "--open"
    assert cfg.kpi[1].source.url == "https://status.example.test/api"
    assert cfg.datapoints == []


def test_load_datapoint_config(tmp_path):
    cfg = kpi_config.load_config(_write(tmp_path, DATAPOINT_YAML))

    deploys, budget, total = cfg.datapoints
    assert cfg.kpi == []
    assert cfg.sheet_data_start_row == 3
    assert deploys.add_rows and not deploys.match_all
    assert deploys.topic_label == "Deploys"
    assert deploys.source.args == ["--since", "7d"]
    assert budget.topic_label == "Budget"
    assert budget.match_all
    assert total.cell == "G2"


def test_missing_file_is_configuration_error(tmp_path):
    with pytest.raises(SyncConfigurationError):
        kpi_config.load_config(tmp_path / "missing.yaml")


def test_invalid_yaml_is_configuration_error(tmp_path):
    with pytest.raises(SyncConfigurationError):
        kpi_config.load_config(_write(tmp_path, "spreadsheet-id: [unclosed"))


@pytest.mark.parametrize(
    "data",
    [
        {"sheet-name": "KPI"},
        {"spreadsheet-id": "x", "sheet-name": "KPI", "KPI": [{"title": "A", "sheet-row": 2, "kpi-command": "/bin/a"}]},
        {
            "spreadsheet-id": "x",
            "sheet-name": "KPI",
            "datapoints": [{"title": "A", "command": "/bin/a", "url": "https://x.test", "json-path": "a"}],
        },
        {"spreadsheet-id": "x", "sheet-name": "KPI", "datapoints": [{"title": "A", "url": "https://x.test"}]},
        {"spreadsheet-id": "x", "sheet-name": "KPI", "sheet-key-col": "A1"},
        {"spreadsheet-id": "x", "sheet-name": "KPI", "unknown-option": True},
    ],
)
def test_invalid_documents(data):
    with pytest.raises(SyncConfigurationError):
        kpi_config.parse_config(data)

from pydantic import BaseModel, Field, constr, field_validator, model_validator
from typing import Optional, List, Union
from pydantic.config import ConfigDict

ColumnStr = constr(strip_whitespace=True, to_upper=True, pattern=r"^[A-Za-z]+$")
CellStr = constr(strip_whitespace=True, to_upper=True, pattern=r"^[A-Za-z]+[0-9]+$")


class _HyphenModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


def _check_source_fields(command, url, json_path, title=""):
    prefix = f"'{title}': " if title else ""
    if bool(command) == bool(url):
        raise ValueError(f"{prefix}exactly one of a command or an url must be set")
    if url and not json_path:
        raise ValueError(f"{prefix}a json path is required together with an url")


# --- Sources ---
class SourceSpec(_HyphenModel):
    """Where a value comes from: a command, or an HTTP endpoint plus JSON path."""

    command: Optional[str] = None
    args: Union[str, List[str], None] = None
    url: Optional[str] = None
    json_path: Optional[str] = Field(default=None, alias="json-path")

    @model_validator(mode="after")
    def _check_one_source(self):
        _check_source_fields(self.command, self.url, self.json_path)
        return self


# --- Legacy KPI ---
class KpiEntry(_HyphenModel):
    title: str
    sheet_row: int = Field(alias="sheet-row", gt=0)
    kpi_command: Optional[str] = Field(default=None, alias="kpi-command")
    kpi_command_args: Union[str, List[str], None] = Field(default=None, alias="kpi-command-args")
    kpi_url: Optional[str] = Field(default=None, alias="kpi-url")
    kpi_json_path: Optional[str] = Field(default=None, alias="kpi-json-path")

    @property
    def source(self) -> SourceSpec:
        return SourceSpec(
            command=self.kpi_command,
            args=self.kpi_command_args,
            url=self.kpi_url,
            json_path=self.kpi_json_path,
        )

    @model_validator(mode="after")
    def _check_source(self):
        _check_source_fields(self.kpi_command, self.kpi_url, self.kpi_json_path, self.title)
        return self


# --- Generic datapoints ---
class DatapointEntry(_HyphenModel):
    title: str
    topic: Optional[str] = None
    sheet_name: Optional[str] = Field(default=None, alias="sheet-name")
    command: Optional[str] = None
    args: Union[str, List[str], None] = None
    url: Optional[str] = None
    json_path: Optional[str] = Field(default=None, alias="json-path")
    # key used for the single value an url source produces
    key: Optional[str] = None
    add_rows: bool = Field(default=False, alias="add-rows")
    match_all: bool = Field(default=False, alias="match-all")
    cell: Optional[CellStr] = None

    @property
    def topic_label(self) -> str:
        return self.topic or self.title

    @property
    def source(self) -> SourceSpec:
        return SourceSpec(command=self.command, args=self.args, url=self.url, json_path=self.json_path)

    @model_validator(mode="after")
    def _check_source(self):
        _check_source_fields(self.command, self.url, self.json_path, self.title)
        if self.url and not self.key and not self.cell:
            raise ValueError(f"datapoint '{self.title}': 'key' or 'cell' is required for url sources")
        return self


# --- Whole document ---
class UploaderConfig(_HyphenModel):
    spreadsheet_id: str = Field(alias="spreadsheet-id", min_length=1)
    sheet_name: str = Field(alias="sheet-name", min_length=1)

    # legacy week layout
    sheet_kpi_last_update_col: Optional[ColumnStr] = Field(default=None, alias="sheet-kpi-last-update-col")
    sheet_kpi_name_col: Optional[ColumnStr] = Field(default=None, alias="sheet-kpi-name-col")
    sheet_data_start_col: ColumnStr = Field(default="A", alias="sheet-data-start-col")
    sheet_data_date_row: Optional[int] = Field(default=None, alias="sheet-data-date-row", gt=0)

    # keyed datapoint layout
    sheet_key_col: ColumnStr = Field(default="A", alias="sheet-key-col")
    sheet_topic_row: int = Field(default=1, alias="sheet-topic-row", gt=0)
    sheet_data_start_row: int = Field(default=2, alias="sheet-data-start-row", gt=0)

    kpi: List[KpiEntry] = Field(default_factory=list, alias="KPI")
    datapoints: List[DatapointEntry] = Field(default_factory=list)

    @field_validator("kpi", "datapoints", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @model_validator(mode="after")
    def _check_legacy_layout(self):
        if self.kpi:
            missing = [
                alias
                for alias, value in (
                    ("sheet-kpi-last-update-col", self.sheet_kpi_last_update_col),
                    ("sheet-kpi-name-col", self.sheet_kpi_name_col),
                    ("sheet-data-date-row", self.sheet_data_date_row),
                )
                if value is None
            ]
            if missing:
                raise ValueError(f"KPI entries need: {', '.join(missing)}")
        return self

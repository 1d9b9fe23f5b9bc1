import json
import logging
import os
from typing import Any, Dict, List, Union

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

RAW = "RAW"
USER_ENTERED = "USER_ENTERED"


def _load_credentials(creds_source: Union[str, Dict[str, Any], Credentials]) -> Credentials:
    if isinstance(creds_source, Credentials):
        return creds_source

    if isinstance(creds_source, dict):
        return Credentials.from_service_account_info(creds_source, scopes=SCOPES)

    if isinstance(creds_source, str):
        if os.path.isfile(creds_source):
            return Credentials.from_service_account_file(creds_source, scopes=SCOPES)
        try:
            data = json.loads(creds_source)
        except json.JSONDecodeError as exc:
            raise FileNotFoundError(f"Credentials file '{creds_source}' not found") from exc
        return Credentials.from_service_account_info(data, scopes=SCOPES)

    raise TypeError("Unsupported credentials source type")


def build_sheets_service(creds_source: Union[str, Dict[str, Any], Credentials]):
    creds = _load_credentials(creds_source)
    return build("sheets", "v4", credentials=creds, cache_discovery=False)


class SheetsGrid:
    """
    Thin wrapper around ``spreadsheets().values()`` reading and writing A1 ranges.
    Errors from the API client (``HttpError``, socket timeouts) propagate unchanged.
    """

    def __init__(self, service):
        self.service = service

    @classmethod
    def from_credentials(cls, creds_source: Union[str, Dict[str, Any], Credentials]) -> "SheetsGrid":
        return cls(build_sheets_service(creds_source))

    def get_range(self, spreadsheet_id: str, a1_range: str, render_raw: bool = False) -> List[List[Any]]:
        render = "UNFORMATTED_VALUE" if render_raw else "FORMATTED_VALUE"
        logger.debug("GET %s (spreadsheet=%s render=%s)", a1_range, spreadsheet_id, render)
        response = (
            self.service.spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=a1_range, valueRenderOption=render)
            .execute()
        )
        return response.get("values") or []

    def update_range(
        self,
        spreadsheet_id: str,
        a1_range: str,
        rows: List[List[Any]],
        input_option: str = RAW,
    ) -> Dict[str, Any]:
        logger.debug("UPDATE %s (spreadsheet=%s input=%s)", a1_range, spreadsheet_id, input_option)
        return (
            self.service.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=a1_range,
                valueInputOption=input_option,
                body={"values": rows},
            )
            .execute()
        )

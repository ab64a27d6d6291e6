"""SMUVES — Google Sheets Client.

Wraps the Sheets v4 discovery client. The access token is an opaque bearer
value refreshed upstream; this client never refreshes it. Google's client
is blocking, so every call is pushed onto a worker thread.
"""

import asyncio
from typing import Any, Callable, List, Optional, Tuple

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from smuves.config import settings
from smuves.connectors.sheets.base import SpreadsheetMirror
from smuves.core.logging import get_logger

logger = get_logger("sheets.client")

SPREADSHEET_URL = "https://docs.google.com/spreadsheets/d/{}/edit"


class SheetsAPIError(Exception):
    """Raised when the Sheets API rejects a call or cannot be reached."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class GoogleSheetsClient(SpreadsheetMirror):
    """Spreadsheet mirror backed by the Google Sheets API."""

    def __init__(self, access_token: str, http: Optional[httplib2.Http] = None):
        credentials = Credentials(token=access_token)
        authorized = AuthorizedHttp(
            credentials,
            http=http or httplib2.Http(timeout=settings.http_timeout_seconds),
        )
        self.service = build("sheets", "v4", http=authorized, cache_discovery=False)

    async def _execute(self, description: str, call: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(call)
        except HttpError as e:
            status = getattr(e.resp, "status", 0)
            reason = getattr(e, "reason", "") or str(e)
            raise SheetsAPIError(f"{description} failed: {reason}", int(status)) from e
        except GoogleAuthError as e:
            # token-only credentials cannot refresh, so an expired token lands here
            raise SheetsAPIError(f"{description} failed: {e}", 401) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            raise SheetsAPIError(f"{description} failed: {e}") from e

    async def get_values(self, spreadsheet_id: str, range_: str) -> List[List[str]]:
        result = await self._execute(
            f"Reading {range_}",
            self.service.spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=range_)
            .execute,
        )
        rows = result.get("values", [])
        logger.info(f"Read {len(rows)} rows from {range_}")
        return rows

    async def update_values(
        self,
        spreadsheet_id: str,
        range_: str,
        values: List[List[str]],
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        await self._execute(
            f"Writing {range_}",
            self.service.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=range_,
                valueInputOption=value_input_option,
                body={"values": values},
            )
            .execute,
        )
        logger.info(f"Wrote {len(values)} rows to {range_}")

    async def clear_values(self, spreadsheet_id: str, range_: str) -> None:
        await self._execute(
            f"Clearing {range_}",
            self.service.spreadsheets()
            .values()
            .clear(spreadsheetId=spreadsheet_id, range=range_, body={})
            .execute,
        )

    async def add_sheet(self, spreadsheet_id: str, title: str) -> Optional[int]:
        try:
            result = await self._execute(
                f"Adding tab {title}",
                self.service.spreadsheets()
                .batchUpdate(
                    spreadsheetId=spreadsheet_id,
                    body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
                )
                .execute,
            )
        except SheetsAPIError as e:
            if e.status_code != 400:
                raise
            # 400 here means the tab name is taken
            logger.info(f"Tab {title} already exists, continuing")
            return None
        replies = result.get("replies") or [{}]
        return replies[0].get("addSheet", {}).get("properties", {}).get("sheetId")

    async def format_header(self, spreadsheet_id: str, sheet_id: int) -> None:
        request = {
            "repeatCell": {
                "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
                "cell": {
                    "userEnteredFormat": {
                        "backgroundColor": {"red": 0.9, "green": 0.9, "blue": 0.9},
                        "textFormat": {"bold": True},
                    }
                },
                "fields": "userEnteredFormat(backgroundColor,textFormat)",
            }
        }
        await self._execute(
            "Formatting header",
            self.service.spreadsheets()
            .batchUpdate(spreadsheetId=spreadsheet_id, body={"requests": [request]})
            .execute,
        )

    async def create_spreadsheet(self, title: str, tab_title: str) -> Tuple[str, str]:
        result = await self._execute(
            f"Creating spreadsheet {title}",
            self.service.spreadsheets()
            .create(
                body={
                    "properties": {"title": title},
                    "sheets": [{"properties": {"title": tab_title}}],
                },
                fields="spreadsheetId,spreadsheetUrl",
            )
            .execute,
        )
        spreadsheet_id = result.get("spreadsheetId")
        if not spreadsheet_id:
            raise SheetsAPIError("Failed to create new spreadsheet file.")
        url = result.get("spreadsheetUrl") or SPREADSHEET_URL.format(spreadsheet_id)
        logger.info(f"📄 Created spreadsheet {title}")
        return spreadsheet_id, url

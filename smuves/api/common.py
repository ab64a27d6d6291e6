"""SMUVES — Shared route plumbing.

Connector factories are dependencies so tests can swap in fakes, and
credentials are resolved here into an explicit ``Credentials`` object
before any core operation runs.
"""

from typing import Callable, Optional

from fastapi.responses import JSONResponse
from sqlmodel import Session

from smuves.connectors.hubspot.client import HubSpotClient
from smuves.connectors.sheets.base import SpreadsheetMirror
from smuves.connectors.sheets.client import GoogleSheetsClient
from smuves.core.errors import ConfigurationError
from smuves.models.change_models import Credentials
from smuves.models.snapshot_models import UserSettings

HubSpotFactory = Callable[[str], HubSpotClient]
SheetsFactory = Callable[[str], SpreadsheetMirror]


def get_hubspot_factory() -> HubSpotFactory:
    return HubSpotClient


def get_sheets_factory() -> SheetsFactory:
    return GoogleSheetsClient


def resolve_credentials(
    session: Session,
    user_id: str,
    hubspot_token: str = "",
    google_token: Optional[str] = None,
    require_google: bool = True,
) -> Credentials:
    """Request tokens first, stored user settings second."""
    stored = session.get(UserSettings, user_id)
    if not google_token and stored:
        google_token = stored.google_access_token
    if require_google and not google_token:
        raise ConfigurationError(
            "Google Sheets not connected. Please reconnect your Google account."
        )
    return Credentials(
        user_id=user_id, hubspot_token=hubspot_token, google_token=google_token or ""
    )


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "error": error, **extra}
    )

"""SMUVES — Change Review & Sync Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from smuves.api.common import (
    HubSpotFactory,
    SheetsFactory,
    error_response,
    get_hubspot_factory,
    get_sheets_factory,
    resolve_credentials,
)
from smuves.core.errors import SmuvesError
from smuves.core.locks import user_lock
from smuves.core.logging import get_logger
from smuves.database import get_session
from smuves.models.change_models import PageChange
from smuves.sync.applier import apply_changes
from smuves.sync.detector import preview_changes

logger = get_logger("api.sync")

router = APIRouter(prefix="/sync", tags=["Sync"])


# ── Request Models ──


class PreviewChangesRequest(BaseModel):
    """Request body for POST /sync/preview-changes."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    sheet_id: str = Field(alias="sheetId", min_length=1)
    sheet_name: str = Field(alias="sheetName", min_length=1)
    google_token: Optional[str] = Field(default=None, alias="googleToken")


class SyncRequest(BaseModel):
    """Request body for POST /sync/to-hubspot: the reviewed change-set."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    hubspot_token: str = Field(alias="hubspotToken", min_length=1)
    changes: List[PageChange] = Field(min_length=1)


# ── Endpoints ──


@router.post("/preview-changes")
async def preview(
    request: PreviewChangesRequest,
    session: Session = Depends(get_session),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    """Compare the spreadsheet mirror against the latest backup.

    No changes is a success with an empty list.
    """
    try:
        async with user_lock(request.user_id, "preview"):
            credentials = resolve_credentials(
                session, request.user_id, google_token=request.google_token
            )
            result = await preview_changes(
                session,
                sheets_factory(credentials.google_token),
                request.user_id,
                request.sheet_id,
                request.sheet_name,
            )
    except SmuvesError as e:
        return error_response(e.status_code, str(e))
    except Exception as e:
        logger.error(f"Preview changes error: {e}", extra={"user_id": request.user_id})
        return error_response(500, f"Failed to preview changes: {e}")

    body = {
        "success": True,
        "changes": [c.model_dump(by_alias=True) for c in result.changes],
    }
    if result.message:
        body["message"] = result.message
    return body


@router.post("/to-hubspot")
async def to_hubspot(
    request: SyncRequest,
    session: Session = Depends(get_session),
    hubspot_factory: HubSpotFactory = Depends(get_hubspot_factory),
):
    """Apply an accepted change-set to HubSpot, page by page."""
    try:
        async with user_lock(request.user_id, "sync"):
            async with hubspot_factory(request.hubspot_token) as hubspot:
                result = await apply_changes(
                    session, hubspot, request.user_id, request.changes
                )
    except SmuvesError as e:
        return error_response(e.status_code, str(e))
    except Exception as e:
        logger.error(f"Sync to HubSpot error: {e}", extra={"user_id": request.user_id})
        return error_response(500, f"Failed to sync changes: {e}")

    return {
        "success": True,
        "message": "Sync process completed.",
        "succeeded": [s.model_dump(by_alias=True) for s in result.succeeded],
        "failed": [f.model_dump(by_alias=True) for f in result.failed],
        "backupId": result.backup_id,
    }

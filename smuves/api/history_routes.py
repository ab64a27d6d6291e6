"""SMUVES — Version History & Revert Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
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
from smuves.sync.history import list_versions
from smuves.sync.revert import revert_to_version

logger = get_logger("api.history")

router = APIRouter(prefix="/history", tags=["History"])


class RevertRequest(BaseModel):
    """Request body for POST /history/revert."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    hubspot_token: str = Field(alias="hubspotToken", min_length=1)
    version_id: str = Field(alias="versionId", min_length=1)
    google_token: Optional[str] = Field(default=None, alias="googleToken")
    """Used for the audit sheet only; without one the revert still runs."""


@router.post("/revert")
async def revert(
    request: RevertRequest,
    session: Session = Depends(get_session),
    hubspot_factory: HubSpotFactory = Depends(get_hubspot_factory),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    """Restore every page of a backup lineage to HubSpot."""
    try:
        async with user_lock(request.user_id, "revert"):
            credentials = resolve_credentials(
                session,
                request.user_id,
                request.hubspot_token,
                request.google_token,
                require_google=False,
            )
            sheets = (
                sheets_factory(credentials.google_token)
                if credentials.google_token
                else None
            )
            async with hubspot_factory(credentials.hubspot_token) as hubspot:
                result = await revert_to_version(
                    session, hubspot, sheets, request.user_id, request.version_id
                )
    except SmuvesError as e:
        return error_response(e.status_code, f"Failed to revert to version: {e}")
    except Exception as e:
        logger.error(f"Revert to version error: {e}", extra={"user_id": request.user_id})
        return error_response(500, f"Failed to revert to version: {e}")

    return {
        "success": True,
        "message": "Revert process completed.",
        "succeeded": [s.model_dump(by_alias=True) for s in result.succeeded],
        "failed": [f.model_dump(by_alias=True) for f in result.failed],
        "revertSheetUrl": result.revert_sheet_url,
        "backupId": result.backup_id,
    }


@router.get("/versions")
async def versions(
    user_id: str = Query(..., alias="userId", min_length=1),
    session: Session = Depends(get_session),
):
    """Backup lineages available to revert to, newest first."""
    return {"success": True, "versions": list_versions(session, user_id)}

"""SMUVES — Backup Routes."""

from datetime import datetime, timezone
from typing import Literal, Optional

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
from smuves.models.snapshot_models import UserSettings
from smuves.scheduler.jobs import calculate_next_run
from smuves.sync.backup import run_full_backup
from smuves.sync.history import backup_status, list_change_history
from smuves.sync.tracker import run_auto_backup

logger = get_logger("api.backup")

router = APIRouter(prefix="/backup", tags=["Backup"])


# ── Request Models ──


class AutoBackupRequest(BaseModel):
    """Request body for POST /backup/auto-backup."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    hubspot_token: str = Field(alias="hubspotToken", min_length=1)
    sheet_id: str = Field(alias="sheetId", min_length=1)
    google_token: Optional[str] = Field(default=None, alias="googleToken")


class FullBackupRequest(AutoBackupRequest):
    """Request body for POST /backup/sync-to-sheets."""

    sheet_name: str = Field(alias="sheetName", min_length=1)


class ToggleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    enabled: bool


class Schedule(BaseModel):
    enabled: bool
    frequency: Literal["daily", "weekly", "monthly"] = "daily"
    time: str = Field(default="02:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class ScheduleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    schedule: Schedule


def _user_settings(session: Session, user_id: str) -> UserSettings:
    return session.get(UserSettings, user_id) or UserSettings(user_id=user_id)


# ── Endpoints ──


@router.post("/auto-backup")
async def auto_backup(
    request: AutoBackupRequest,
    session: Session = Depends(get_session),
    hubspot_factory: HubSpotFactory = Depends(get_hubspot_factory),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    """Back up only the pages that changed since their last snapshot."""
    try:
        async with user_lock(request.user_id, "auto-backup"):
            credentials = resolve_credentials(
                session, request.user_id, request.hubspot_token, request.google_token
            )
            async with hubspot_factory(credentials.hubspot_token) as hubspot:
                result = await run_auto_backup(
                    session,
                    hubspot,
                    sheets_factory(credentials.google_token),
                    request.user_id,
                    request.sheet_id,
                )
    except SmuvesError as e:
        return error_response(e.status_code, str(e))
    except Exception as e:
        logger.error(f"Auto backup error: {e}", extra={"user_id": request.user_id})
        return error_response(500, "Auto backup failed", details=str(e))

    return {
        "success": True,
        "backupSessionId": result.backup_session_id,
        "pagesBackedUp": result.pages_backed_up,
        "changesDetected": result.changes_detected,
        "tabName": result.tab_name,
        "message": result.message,
    }


@router.post("/sync-to-sheets")
async def sync_to_sheets(
    request: FullBackupRequest,
    session: Session = Depends(get_session),
    hubspot_factory: HubSpotFactory = Depends(get_hubspot_factory),
    sheets_factory: SheetsFactory = Depends(get_sheets_factory),
):
    """Full backup: overwrite the mirror tab and snapshot every page."""
    try:
        async with user_lock(request.user_id, "full backup"):
            credentials = resolve_credentials(
                session, request.user_id, request.hubspot_token, request.google_token
            )
            async with hubspot_factory(credentials.hubspot_token) as hubspot:
                result = await run_full_backup(
                    session,
                    hubspot,
                    sheets_factory(credentials.google_token),
                    request.user_id,
                    request.sheet_id,
                    request.sheet_name,
                )
    except SmuvesError as e:
        return error_response(e.status_code, str(e))
    except Exception as e:
        logger.error(f"Backup failed: {e}", extra={"user_id": request.user_id})
        return error_response(500, str(e) or "Backup process failed.")

    return {
        "success": True,
        "pages_synced": result.pages_synced,
        "sheet_url": result.sheet_url,
        "backupId": result.backup_id,
    }


@router.get("/history")
async def history(
    user_id: str = Query(..., alias="userId", min_length=1),
    date: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    page_id: Optional[str] = Query(None, alias="pageId"),
    session: Session = Depends(get_session),
):
    """Change-history entries, newest first (max 100)."""
    changes = list_change_history(session, user_id, day=date, page_id=page_id)
    return {"success": True, "changes": [c.model_dump(mode="json") for c in changes]}


@router.get("/status")
async def status(
    user_id: str = Query(..., alias="userId", min_length=1),
    session: Session = Depends(get_session),
):
    return {"success": True, **backup_status(session, user_id)}


@router.post("/toggle")
async def toggle(request: ToggleRequest, session: Session = Depends(get_session)):
    """Enable or disable scheduled auto-backups for a user."""
    user_settings = _user_settings(session, request.user_id)
    user_settings.auto_backup_enabled = request.enabled
    user_settings.updated_at = datetime.now(timezone.utc)
    session.add(user_settings)
    session.commit()
    return {
        "success": True,
        "message": "Auto-backup enabled" if request.enabled else "Auto-backup disabled",
    }


@router.post("/schedule")
async def schedule(request: ScheduleRequest, session: Session = Depends(get_session)):
    """Store a user's backup schedule and report when it next fires."""
    plan = request.schedule
    user_settings = _user_settings(session, request.user_id)
    user_settings.auto_backup_enabled = plan.enabled
    user_settings.backup_frequency = plan.frequency
    user_settings.backup_time = plan.time
    user_settings.updated_at = datetime.now(timezone.utc)
    session.add(user_settings)
    session.commit()
    logger.info(
        f"Backup schedule set: {plan.frequency} at {plan.time} (enabled={plan.enabled})",
        extra={"user_id": request.user_id},
    )

    return {
        "success": True,
        "message": (
            f"Backup scheduled {plan.frequency} at {plan.time}"
            if plan.enabled
            else "Backup schedule disabled"
        ),
        "nextRun": (
            calculate_next_run(plan.frequency, plan.time).isoformat()
            if plan.enabled
            else None
        ),
    }

"""SMUVES — Backup history queries."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from smuves.models.change_models import SessionStatus
from smuves.models.snapshot_models import (
    BackupSession,
    ChangeHistory,
    PageBackup,
    UserSettings,
)

HISTORY_LIMIT = 100


def list_versions(session: Session, user_id: str) -> List[Dict[str, Any]]:
    """Distinct backup lineages, newest first."""
    created = func.max(PageBackup.created_at)
    rows = session.exec(
        select(PageBackup.backup_id, created, func.count(PageBackup.id))
        .where(PageBackup.user_id == user_id)
        .group_by(PageBackup.backup_id)
        .order_by(created.desc())
    ).all()
    return [
        {
            "backupId": backup_id,
            "createdAt": created_at.isoformat() if created_at else None,
            "pageCount": count,
        }
        for backup_id, created_at, count in rows
    ]


def list_change_history(
    session: Session,
    user_id: str,
    day: Optional[str] = None,
    page_id: Optional[str] = None,
    limit: int = HISTORY_LIMIT,
) -> List[ChangeHistory]:
    """Most recent change-history entries, optionally for one day / page."""
    query = select(ChangeHistory).where(ChangeHistory.user_id == user_id)
    if day:
        start = datetime.strptime(day, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        query = query.where(
            ChangeHistory.changed_at >= start,
            ChangeHistory.changed_at < start + timedelta(days=1),
        )
    if page_id:
        query = query.where(ChangeHistory.page_id == page_id)
    query = query.order_by(ChangeHistory.changed_at.desc(), ChangeHistory.id.desc()).limit(limit)  # type: ignore
    return list(session.exec(query).all())


def backup_status(session: Session, user_id: str) -> Dict[str, Any]:
    """Auto-backup flag and completion time of the last finished run."""
    last = session.exec(
        select(BackupSession)
        .where(
            BackupSession.user_id == user_id,
            BackupSession.status == SessionStatus.COMPLETED.value,
        )
        .order_by(BackupSession.created_at.desc(), BackupSession.id.desc())  # type: ignore
        .limit(1)
    ).first()
    user_settings = session.get(UserSettings, user_id)
    return {
        "autoBackupEnabled": user_settings.auto_backup_enabled if user_settings else True,
        "lastBackup": last.completed_at.isoformat() if last and last.completed_at else None,
    }

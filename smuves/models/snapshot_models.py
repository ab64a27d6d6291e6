"""SMUVES — Persistent Snapshot Models.

Snapshot rows are immutable: reverts and syncs write a new generation under
a fresh ``backup_id`` and never touch an existing row.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PageBackup(SQLModel, table=True):
    """One page's field set inside a backup lineage."""

    __tablename__ = "hubspot_page_backups"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    backup_id: str = Field(index=True, description="Lineage shared by one backup run")
    hubspot_page_id: str = Field(index=True)
    page_type: str = Field(default="Unknown", description="Site Page | Landing Page | Blog Post")
    name: str = ""
    url: str = ""
    html_title: str = ""
    meta_description: str = ""
    slug: str = ""
    state: str = ""
    body_content: str = ""
    page_created_at: str = Field(default="", description="HubSpot created/published at")
    page_updated_at: str = Field(default="", description="HubSpot updated at")
    backup_date: str = ""
    created_at: datetime = Field(default_factory=_utcnow, index=True)


class PageSnapshot(SQLModel, table=True):
    """Latest known state of a single page, used by the auto-backup tracker.

    Unique on (user_id, page_id, snapshot_date): a second run on the same
    day overwrites that day's row instead of adding one.
    """

    __tablename__ = "page_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "page_id", "snapshot_date", name="uq_page_snapshot_day"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    page_id: str = Field(index=True)
    page_name: str = ""
    page_slug: str = ""
    page_url: str = ""
    page_content_json: str = Field(description="Normalized live page as JSON")
    snapshot_date: str = Field(index=True, description="YYYY-MM-DD")


class ChangeHistory(SQLModel, table=True):
    """Append-only field-level change record."""

    __tablename__ = "change_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    page_id: str = Field(index=True)
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    change_type: str = Field(description="create | update")
    changed_by: str = ""
    backup_session_id: Optional[int] = Field(default=None, foreign_key="backup_sessions.id")
    changed_at: datetime = Field(default_factory=_utcnow, index=True)


class BackupSession(SQLModel, table=True):
    """One auto-backup run: pending → in_progress → completed | failed."""

    __tablename__ = "backup_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    sheet_id: str
    tab_name: str
    backup_date: str
    status: str = Field(default="pending")
    pages_backed_up: int = 0
    changes_detected: int = 0
    created_at: datetime = Field(default_factory=_utcnow, index=True)
    completed_at: Optional[datetime] = None


class UserSettings(SQLModel, table=True):
    """Stored connection state per user.

    Tokens are maintained by the OAuth collaborators; this service only
    reads them (for scheduled runs and requests that omit a Google token).
    """

    __tablename__ = "user_settings"

    user_id: str = Field(primary_key=True)
    hubspot_token: Optional[str] = None
    google_access_token: Optional[str] = None
    backup_sheet_id: Optional[str] = None
    auto_backup_enabled: bool = True
    backup_frequency: str = Field(default="daily", description="daily | weekly | monthly")
    backup_time: str = Field(default="02:00", description="HH:MM, UTC")
    updated_at: datetime = Field(default_factory=_utcnow)

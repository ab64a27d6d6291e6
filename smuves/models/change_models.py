"""SMUVES — Transient change-set and result schemas.

None of these are persisted. A change-set lives for a single
preview → review → sync round trip.
"""

from enum import Enum
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    """Backup session lifecycle."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ChangeType(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class Credentials(BaseModel):
    """Opaque bearer tokens for one user, resolved before the core runs."""

    user_id: str
    hubspot_token: str = ""
    google_token: str = ""


# ─────────────────────────────────────────────
# CHANGE-SET
# ─────────────────────────────────────────────


class CellLocation(BaseModel):
    """1-based spreadsheet coordinates of a changed cell."""

    model_config = ConfigDict(frozen=True)

    row: int
    column: int


class FieldChange(BaseModel):
    """Old snapshot value vs new spreadsheet value for one field."""

    model_config = ConfigDict(frozen=True)

    old: Optional[str] = None
    new: Optional[str] = None
    location: Optional[CellLocation] = None


class PageChange(BaseModel):
    """All changed fields of one page.

    ``fields["body_content_diff"]`` holds rendered diff markup for display;
    every other entry is a ``FieldChange``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page_id: str = Field(alias="pageId")
    name: str = ""
    type: str = "modified"
    fields: Dict[str, Union[FieldChange, str]] = {}


class DetectionResult(BaseModel):
    changes: List[PageChange] = []
    message: Optional[str] = None


# ─────────────────────────────────────────────
# SYNC / REVERT OUTCOMES
# ─────────────────────────────────────────────


class PageSucceeded(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(alias="pageId")
    name: str = ""
    url: Optional[str] = None
    published: bool = False
    skipped: bool = False


class PageFailed(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(alias="pageId")
    name: str = ""
    error: str


class SyncResult(BaseModel):
    succeeded: List[PageSucceeded] = []
    failed: List[PageFailed] = []
    backup_id: Optional[str] = None
    """Lineage written after the batch, if any."""


class RevertResult(BaseModel):
    succeeded: List[PageSucceeded] = []
    failed: List[PageFailed] = []
    revert_sheet_url: str = ""
    backup_id: Optional[str] = None


class BackupRunResult(BaseModel):
    """Outcome of one auto-backup run."""

    backup_session_id: int
    pages_backed_up: int
    changes_detected: int
    tab_name: str
    status: SessionStatus = SessionStatus.COMPLETED

    @property
    def message(self) -> str:
        if self.changes_detected > 0:
            return (
                f"Backup completed: {self.changes_detected} changes detected "
                f"and synced to {self.tab_name}"
            )
        return "Backup completed: No changes detected since last backup"


class FullBackupResult(BaseModel):
    pages_synced: int
    sheet_url: str
    backup_id: str

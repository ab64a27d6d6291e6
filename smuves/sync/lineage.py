"""SMUVES — Snapshot lineage writes.

Every backup, sync and revert writes a whole new generation of snapshot
rows under a fresh ``backup_id``. A generation is committed in one
transaction so it is never half-written.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from sqlmodel import Session

from smuves.core.logging import get_logger
from smuves.models.snapshot_models import PageBackup

logger = get_logger("sync.lineage")

# Columns never carried from an old row into a new generation
_ROW_IDENTITY = {"id", "backup_id", "created_at"}


def new_backup_id(prefix: str = "backup") -> str:
    """Opaque lineage id, e.g. ``revert_1760871234567_3fa2c1``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def clone_row(
    row: PageBackup, backup_id: str, overrides: Dict[str, str] | None = None
) -> PageBackup:
    """Copy a snapshot row into another lineage with a fresh primary key."""
    data = row.model_dump(exclude=_ROW_IDENTITY)
    data.update(overrides or {})
    return PageBackup(**data, backup_id=backup_id, created_at=datetime.now(timezone.utc))


def write_generation(session: Session, rows: Iterable[PageBackup]) -> List[PageBackup]:
    """Insert one generation atomically. Rolls back and re-raises on failure."""
    rows = list(rows)
    try:
        session.add_all(rows)
        session.commit()
    except Exception:
        session.rollback()
        logger.error(f"Snapshot generation of {len(rows)} rows rolled back")
        raise
    if rows:
        logger.info(
            f"💾 Saved {len(rows)} snapshot rows",
            extra={"backup_id": rows[0].backup_id},
        )
    return rows

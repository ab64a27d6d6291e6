"""SMUVES — Full Backup.

Pulls every HubSpot page, overwrites the user's mirror tab with them, and
stores the same rows as a new snapshot lineage. This is what creates the
baselines that change detection and revert read.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session

from smuves.connectors.hubspot.client import HubSpotClient
from smuves.connectors.hubspot.transformer import (
    backup_sheet_row,
    to_backup_row,
    transform_pages,
)
from smuves.connectors.sheets.base import SpreadsheetMirror, quote_tab
from smuves.connectors.sheets.client import SPREADSHEET_URL
from smuves.core.errors import ConfigurationError
from smuves.core.fields import BACKUP_HEADERS
from smuves.core.logging import get_logger
from smuves.models.change_models import FullBackupResult
from smuves.sync.lineage import new_backup_id, write_generation

logger = get_logger("sync.backup")

LAST_COLUMN = "L"


async def run_full_backup(
    session: Session,
    hubspot: HubSpotClient,
    sheets: SpreadsheetMirror,
    user_id: str,
    sheet_id: str,
    sheet_name: str,
    now: Optional[datetime] = None,
) -> FullBackupResult:
    now = now or datetime.now(timezone.utc)
    backup_date = now.isoformat()

    logger.info("Step 1: Fetching all HubSpot content...", extra={"user_id": user_id})
    pages = transform_pages(await hubspot.fetch_all_pages())
    if not pages:
        raise ConfigurationError("No content found in HubSpot to backup.")

    backup_id = new_backup_id("backup")
    rows = [to_backup_row(page, user_id, backup_id, backup_date) for page in pages]
    values = [backup_sheet_row(row) for row in rows]

    tab = quote_tab(sheet_name)
    logger.info(f"Step 2: Overwriting {len(values)} rows in {sheet_name}")
    await sheets.update_values(sheet_id, f"{tab}!A1", [BACKUP_HEADERS])
    await sheets.clear_values(sheet_id, f"{tab}!A2:{LAST_COLUMN}")
    await sheets.update_values(sheet_id, f"{tab}!A2", values)

    logger.info("Step 3: Saving snapshot lineage", extra={"backup_id": backup_id})
    write_generation(session, rows)

    return FullBackupResult(
        pages_synced=len(rows),
        sheet_url=SPREADSHEET_URL.format(sheet_id),
        backup_id=backup_id,
    )

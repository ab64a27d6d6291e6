"""SMUVES — Revert Engine.

Restores an entire backup lineage onto HubSpot. Unlike a sync this is a full
overwrite, not a delta. Steps run strictly in order:

  load → audit sheet (best-effort) → apply per page → re-snapshot

Only a missing lineage fails the whole operation; everything after the load
reports partial success.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from smuves.config import settings
from smuves.connectors.hubspot.client import HubSpotAPIError, HubSpotClient
from smuves.connectors.hubspot.transformer import backup_sheet_row
from smuves.connectors.sheets.base import SpreadsheetMirror, quote_tab
from smuves.connectors.sheets.client import SheetsAPIError
from smuves.core.errors import VersionNotFoundError
from smuves.core.fields import BACKUP_HEADERS, HUBSPOT_FIELD_MAPPING, WRITABLE_PAGE_TYPES
from smuves.core.logging import get_logger
from smuves.models.change_models import PageFailed, PageSucceeded, RevertResult
from smuves.models.snapshot_models import PageBackup
from smuves.sync.detector import latest_backup_id, load_lineage
from smuves.sync.lineage import clone_row, new_backup_id, write_generation

logger = get_logger("sync.revert")

AUDIT_TITLE_PREFIX = "HubSpot_Reverted_Data"
AUDIT_TAB = "Reverted Data"


def load_version(session: Session, user_id: str, version_id: str) -> List[PageBackup]:
    rows = list(
        session.exec(
            select(PageBackup)
            .where(PageBackup.user_id == user_id, PageBackup.backup_id == version_id)
            .order_by(PageBackup.id)  # type: ignore
        ).all()
    )
    if not rows:
        raise VersionNotFoundError(version_id)
    return rows


def audit_title(now: datetime) -> str:
    """e.g. ``HubSpot_Reverted_Data - Oct 19, 02:30 PM``."""
    return f"{AUDIT_TITLE_PREFIX} - {now:%b} {now.day}, {now:%I:%M %p}"


async def write_audit_sheet(
    sheets: Optional[SpreadsheetMirror], rows: List[PageBackup], now: datetime
) -> str:
    """Log the pre-revert field sets to a brand-new spreadsheet.

    Returns its URL, or "" if the sheet could not be written.
    """
    if sheets is None:
        logger.warning("No Google connection, skipping revert audit sheet")
        return ""
    try:
        spreadsheet_id, url = await sheets.create_spreadsheet(audit_title(now), AUDIT_TAB)
        values = [BACKUP_HEADERS] + [backup_sheet_row(r) for r in rows]
        await sheets.update_values(spreadsheet_id, f"{quote_tab(AUDIT_TAB)}!A1", values)
    except SheetsAPIError as e:
        logger.error(f"Failed to create or write to revert log sheet: {e}")
        return ""
    except Exception as e:
        logger.exception(f"Unexpected error writing revert log sheet: {e}")
        return ""
    return url


def content_payload(row: PageBackup) -> Dict[str, Any]:
    """Every recorded field HubSpot accepts, under HubSpot's names."""
    return {
        hubspot_key: getattr(row, field_name)
        for field_name, hubspot_key in HUBSPOT_FIELD_MAPPING.items()
        if getattr(row, field_name, None) is not None
    }


async def _revert_one(
    hubspot: HubSpotClient, row: PageBackup, semaphore: asyncio.Semaphore
) -> Union[PageSucceeded, PageFailed, None]:
    page_id, name = row.hubspot_page_id, row.name
    payload = content_payload(row)
    needs_publishing = row.state == settings.published_state

    if not payload and not needs_publishing:
        logger.info("Nothing to revert, skipping", extra={"page_id": page_id})
        return None
    if row.page_type not in WRITABLE_PAGE_TYPES:
        return PageFailed(
            pageId=page_id,
            name=name,
            error=f"Reverting page type '{row.page_type}' is not supported yet.",
        )

    async with semaphore:
        if payload:
            try:
                await hubspot.update_page(row.page_type, page_id, payload)
            except HubSpotAPIError as e:
                return PageFailed(
                    pageId=page_id, name=name, error=f"Content update failed: {e}"
                )
            except Exception as e:
                logger.exception("Unexpected revert error", extra={"page_id": page_id})
                return PageFailed(
                    pageId=page_id, name=name, error=f"Content update failed: {e}"
                )
        if needs_publishing:
            try:
                await hubspot.publish_page(row.page_type, page_id)
            except HubSpotAPIError as e:
                return PageFailed(pageId=page_id, name=name, error=f"Publish failed: {e}")
            except Exception as e:
                logger.exception("Unexpected publish error", extra={"page_id": page_id})
                return PageFailed(pageId=page_id, name=name, error=f"Publish failed: {e}")

    return PageSucceeded(pageId=page_id, name=name, published=needs_publishing)


def resnapshot(
    session: Session,
    user_id: str,
    target: List[PageBackup],
    failed_ids: set,
    previous_backup_id: Optional[str],
) -> Optional[str]:
    """Record the post-revert state as a new lineage.

    Pages that were reverted (or had nothing to write) take the target
    values. Pages whose revert failed keep the row from the lineage that was
    current before the revert, since HubSpot still holds that state; a failed
    page with no earlier row is left out.
    """
    previous: Dict[str, PageBackup] = {}
    if failed_ids and previous_backup_id:
        previous = {
            r.hubspot_page_id: r
            for r in load_lineage(session, user_id, previous_backup_id)
        }

    backup_id = new_backup_id("revert")
    rows = []
    for row in target:
        source = row
        if row.hubspot_page_id in failed_ids:
            source = previous.get(row.hubspot_page_id)
            if source is None:
                continue
        rows.append(clone_row(source, backup_id))

    try:
        write_generation(session, rows)
    except SQLAlchemyError as e:
        logger.error(f"Revert re-snapshot failed: {e}", extra={"user_id": user_id})
        return None
    return backup_id


async def revert_to_version(
    session: Session,
    hubspot: HubSpotClient,
    sheets: Optional[SpreadsheetMirror],
    user_id: str,
    version_id: str,
    now: Optional[datetime] = None,
) -> RevertResult:
    """Re-apply lineage ``version_id`` to HubSpot and back the result up."""
    started = time.monotonic()
    target = load_version(session, user_id, version_id)
    previous_backup_id = latest_backup_id(session, user_id)
    logger.info(
        f"Reverting {len(target)} pages",
        extra={"user_id": user_id, "backup_id": version_id},
    )

    revert_sheet_url = await write_audit_sheet(
        sheets, target, now or datetime.now(timezone.utc)
    )

    semaphore = asyncio.Semaphore(settings.sync_concurrency)
    outcomes = await asyncio.gather(*(_revert_one(hubspot, r, semaphore) for r in target))
    succeeded = [o for o in outcomes if isinstance(o, PageSucceeded)]
    failed = [o for o in outcomes if isinstance(o, PageFailed)]
    logger.info(
        f"Revert finished: {len(succeeded)} succeeded, {len(failed)} failed",
        extra={
            "user_id": user_id,
            "backup_id": version_id,
            "duration_ms": int((time.monotonic() - started) * 1000),
        },
    )

    backup_id = None
    if succeeded:
        backup_id = resnapshot(
            session,
            user_id,
            target,
            {f.page_id for f in failed},
            previous_backup_id,
        )

    return RevertResult(
        succeeded=succeeded,
        failed=failed,
        revert_sheet_url=revert_sheet_url,
        backup_id=backup_id,
    )

"""SMUVES — Sync Applier.

Replays an accepted change-set onto live HubSpot pages. Each page is one
PATCH and succeeds or fails on its own; a failure never stops the batch.
Afterwards the applied values are written as a new snapshot generation so
the next detection does not flag them again.
"""

import asyncio
import time
from typing import Any, Dict, List, Union

from sqlmodel import Session, select

from smuves.config import settings
from smuves.connectors.hubspot.client import HubSpotAPIError, HubSpotClient
from smuves.core.fields import HUBSPOT_FIELD_MAPPING, WRITABLE_PAGE_TYPES
from smuves.core.logging import get_logger
from smuves.models.change_models import (
    FieldChange,
    PageChange,
    PageFailed,
    PageSucceeded,
    SyncResult,
)
from smuves.models.snapshot_models import PageBackup
from smuves.sync.detector import latest_backup_id, load_lineage
from smuves.sync.lineage import clone_row, new_backup_id, write_generation

logger = get_logger("sync.applier")


def build_payload(change: PageChange) -> Dict[str, Any]:
    """HubSpot properties for the changed fields only.

    Diff markup and fields HubSpot does not accept (e.g. url) are dropped.
    """
    payload: Dict[str, Any] = {}
    for field_name, value in change.fields.items():
        hubspot_key = HUBSPOT_FIELD_MAPPING.get(field_name)
        if hubspot_key and isinstance(value, FieldChange):
            payload[hubspot_key] = value.new
    return payload


def page_types(session: Session, user_id: str, page_ids: List[str]) -> Dict[str, str]:
    """Page id → page type as last recorded in the snapshot store."""
    rows = session.exec(
        select(PageBackup)
        .where(PageBackup.user_id == user_id, PageBackup.hubspot_page_id.in_(page_ids))  # type: ignore
        .order_by(PageBackup.created_at, PageBackup.id)  # type: ignore
    ).all()
    return {row.hubspot_page_id: row.page_type for row in rows}


async def _apply_one(
    hubspot: HubSpotClient,
    change: PageChange,
    page_type: str | None,
    semaphore: asyncio.Semaphore,
) -> Union[PageSucceeded, PageFailed]:
    page_id = change.page_id
    if not page_type:
        return PageFailed(
            pageId=page_id, name=change.name, error="Page type not found in database backup."
        )
    if page_type not in WRITABLE_PAGE_TYPES:
        return PageFailed(
            pageId=page_id,
            name=change.name,
            error=f"Syncing for page type '{page_type}' is not supported yet.",
        )

    payload = build_payload(change)
    if not payload:
        return PageSucceeded(pageId=page_id, name=change.name, skipped=True)

    async with semaphore:
        try:
            result = await hubspot.update_page(page_type, page_id, payload)
        except HubSpotAPIError as e:
            logger.warning(
                f"Sync failed: {e}",
                extra={"page_id": page_id, "status_code": e.status_code},
            )
            return PageFailed(pageId=page_id, name=change.name, error=str(e))
        except Exception as e:
            logger.exception("Unexpected sync error", extra={"page_id": page_id})
            return PageFailed(pageId=page_id, name=change.name, error=str(e) or "Network error")

    logger.info("✅ Page synced", extra={"page_id": page_id})
    return PageSucceeded(pageId=page_id, name=change.name, url=result.get("url"))


def record_synced_state(
    session: Session,
    user_id: str,
    changes: List[PageChange],
    succeeded: List[PageSucceeded],
) -> str | None:
    """Write the latest lineage, with applied values overlaid, as a new generation."""
    applied = {s.page_id for s in succeeded if not s.skipped}
    if not applied:
        return None
    current = latest_backup_id(session, user_id)
    if current is None:
        return None

    overrides = {
        c.page_id: {
            name: value.new
            for name, value in c.fields.items()
            if name in HUBSPOT_FIELD_MAPPING
            and isinstance(value, FieldChange)
            and value.new is not None
        }
        for c in changes
        if c.page_id in applied
    }
    backup_id = new_backup_id("sync")
    rows = [
        clone_row(row, backup_id, overrides.get(row.hubspot_page_id))
        for row in load_lineage(session, user_id, current)
    ]
    write_generation(session, rows)
    return backup_id


async def apply_changes(
    session: Session,
    hubspot: HubSpotClient,
    user_id: str,
    changes: List[PageChange],
) -> SyncResult:
    """Push every page of the change-set to HubSpot, independently."""
    started = time.monotonic()
    types = page_types(session, user_id, [c.page_id for c in changes])
    semaphore = asyncio.Semaphore(settings.sync_concurrency)

    outcomes = await asyncio.gather(
        *(_apply_one(hubspot, c, types.get(c.page_id), semaphore) for c in changes)
    )
    succeeded = [o for o in outcomes if isinstance(o, PageSucceeded)]
    failed = [o for o in outcomes if isinstance(o, PageFailed)]
    logger.info(
        f"Sync finished: {len(succeeded)} succeeded, {len(failed)} failed",
        extra={"user_id": user_id, "duration_ms": int((time.monotonic() - started) * 1000)},
    )

    backup_id = record_synced_state(session, user_id, changes, succeeded)
    return SyncResult(succeeded=succeeded, failed=failed, backup_id=backup_id)

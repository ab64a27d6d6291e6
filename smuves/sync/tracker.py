"""SMUVES — Auto-Backup Change Tracker.

On each backup run, compares every live page with its own most recent
snapshot (not a shared lineage) and only backs up the pages that changed:
they get change-history rows, a line in today's spreadsheet tab, and a
fresh snapshot. Unchanged pages are skipped entirely.
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlmodel import Session, select

from smuves.connectors.hubspot.client import HubSpotClient
from smuves.connectors.hubspot.transformer import LivePage, transform_pages
from smuves.connectors.sheets.base import SpreadsheetMirror, quote_tab
from smuves.core.fields import CHANGE_LOG_HEADERS, TRACKED_FIELDS
from smuves.core.logging import get_logger
from smuves.models.change_models import BackupRunResult, ChangeType, SessionStatus
from smuves.models.snapshot_models import BackupSession, ChangeHistory, PageSnapshot

logger = get_logger("sync.tracker")

PAGE_CREATED = "page_created"


class TrackedChange(BaseModel):
    """One detected delta for a live page, before it is persisted."""

    field_name: str
    old_value: Any = None
    new_value: Any = None
    change_type: ChangeType


def tab_name_for(day: date) -> str:
    return f"hubspot-backup-{day.isoformat()}"


def latest_snapshot(session: Session, user_id: str, page_id: str) -> Optional[PageSnapshot]:
    return session.exec(
        select(PageSnapshot)
        .where(PageSnapshot.user_id == user_id, PageSnapshot.page_id == page_id)
        .order_by(PageSnapshot.snapshot_date.desc(), PageSnapshot.id.desc())  # type: ignore
        .limit(1)
    ).first()


def diff_page(page: LivePage, last_content: Optional[Dict[str, Any]]) -> List[TrackedChange]:
    """Deltas between a live page and its last snapshot content."""
    if last_content is None:
        return [
            TrackedChange(
                field_name=PAGE_CREATED,
                old_value=None,
                new_value="Page created",
                change_type=ChangeType.CREATE,
            )
        ]
    current = page.content()
    return [
        TrackedChange(
            field_name=field,
            old_value=last_content.get(field),
            new_value=current.get(field),
            change_type=ChangeType.UPDATE,
        )
        for field in TRACKED_FIELDS
        if last_content.get(field) != current.get(field)
    ]


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _display_date(value: str) -> str:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def change_log_row(page: LivePage, changes: List[TrackedChange]) -> List[str]:
    summary = "; ".join(f"{c.field_name}: {c.old_value} → {c.new_value}" for c in changes)
    first = changes[0]
    return [
        page.id,
        page.name,
        page.slug,
        page.url,
        page.status,
        _display_date(page.updated_at),
        summary,
        first.change_type.value,
        _text(first.old_value) or "",
    ]


def _upsert_snapshot(session: Session, user_id: str, page: LivePage, day: str) -> None:
    snapshot = session.exec(
        select(PageSnapshot).where(
            PageSnapshot.user_id == user_id,
            PageSnapshot.page_id == page.id,
            PageSnapshot.snapshot_date == day,
        )
    ).first()
    if snapshot is None:
        snapshot = PageSnapshot(user_id=user_id, page_id=page.id, snapshot_date=day)
    snapshot.page_name = page.name
    snapshot.page_slug = page.slug
    snapshot.page_url = page.url
    snapshot.page_content_json = json.dumps(page.content())
    session.add(snapshot)


async def _write_change_log(
    sheets: SpreadsheetMirror, sheet_id: str, tab_name: str, rows: List[List[str]]
) -> None:
    sheet_tab_id = await sheets.add_sheet(sheet_id, tab_name)
    await sheets.update_values(
        sheet_id,
        f"{quote_tab(tab_name)}!A1",
        [CHANGE_LOG_HEADERS] + rows,
        value_input_option="RAW",
    )
    if sheet_tab_id is not None:
        await sheets.format_header(sheet_id, sheet_tab_id)


async def track_changes(
    session: Session,
    pages: List[LivePage],
    user_id: str,
    backup_session: BackupSession,
    sheets: SpreadsheetMirror,
    day: date,
) -> int:
    """Stage history + snapshots for changed pages and log them to the sheet.

    Returns the number of changed pages. Nothing is committed here.
    """
    day_str = day.isoformat()
    log_rows: List[List[str]] = []

    for page in pages:
        last = latest_snapshot(session, user_id, page.id)
        last_content = json.loads(last.page_content_json) if last else None
        changes = diff_page(page, last_content)
        if not changes:
            continue

        for change in changes:
            session.add(
                ChangeHistory(
                    user_id=user_id,
                    page_id=page.id,
                    field_name=change.field_name,
                    old_value=_text(change.old_value),
                    new_value=_text(change.new_value),
                    change_type=change.change_type.value,
                    changed_by=user_id,
                    backup_session_id=backup_session.id,
                )
            )
        _upsert_snapshot(session, user_id, page, day_str)
        log_rows.append(change_log_row(page, changes))

    if log_rows:
        await _write_change_log(sheets, backup_session.sheet_id, backup_session.tab_name, log_rows)
    return len(log_rows)


async def run_auto_backup(
    session: Session,
    hubspot: HubSpotClient,
    sheets: SpreadsheetMirror,
    user_id: str,
    sheet_id: str,
    day: Optional[date] = None,
) -> BackupRunResult:
    """One backup run: fetch live pages, keep only what changed."""
    day = day or datetime.now(timezone.utc).date()
    tab_name = tab_name_for(day)

    backup_session = BackupSession(
        user_id=user_id,
        sheet_id=sheet_id,
        tab_name=tab_name,
        backup_date=day.isoformat(),
        status=SessionStatus.PENDING.value,
    )
    session.add(backup_session)
    session.commit()
    session.refresh(backup_session)
    logger.info(f"🗂️  Backup session {backup_session.id} created", extra={"user_id": user_id})

    try:
        backup_session.status = SessionStatus.IN_PROGRESS.value
        session.add(backup_session)
        session.commit()

        pages = transform_pages(await hubspot.fetch_all_pages())
        changes_detected = await track_changes(
            session, pages, user_id, backup_session, sheets, day
        )

        backup_session.pages_backed_up = len(pages)
        backup_session.changes_detected = changes_detected
        backup_session.status = SessionStatus.COMPLETED.value
        backup_session.completed_at = datetime.now(timezone.utc)
        session.add(backup_session)
        session.commit()
    except Exception:
        session.rollback()
        backup_session.status = SessionStatus.FAILED.value
        backup_session.completed_at = datetime.now(timezone.utc)
        session.add(backup_session)
        session.commit()
        logger.error(
            f"Backup session {backup_session.id} failed", extra={"user_id": user_id}
        )
        raise

    logger.info(
        f"✅ Backup complete: {changes_detected}/{len(pages)} pages changed",
        extra={"user_id": user_id},
    )
    return BackupRunResult(
        backup_session_id=backup_session.id,
        pages_backed_up=len(pages),
        changes_detected=changes_detected,
        tab_name=tab_name,
    )

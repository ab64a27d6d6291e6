"""SMUVES — Change Detector.

Compares the latest backup lineage in the snapshot store with the current
spreadsheet mirror (presumed human-edited) and produces a change-set:

  read tab → parse with header schema → load latest lineage → compare

The comparison itself (``detect_changes``) is a pure function of the two
inputs; ``preview_changes`` does the I/O around it and never writes.
"""

from typing import Dict, List, Mapping, Optional

from sqlmodel import Session, select

from smuves.connectors.sheets.base import SpreadsheetMirror, quote_tab
from smuves.connectors.sheets.schema import SheetRecord, SheetSchema
from smuves.core.fields import BODY_DIFF_FIELD, BODY_FIELD, COMPARED_FIELDS
from smuves.core.logging import get_logger
from smuves.models.change_models import (
    CellLocation,
    DetectionResult,
    FieldChange,
    PageChange,
)
from smuves.models.snapshot_models import PageBackup
from smuves.sync.diff import body_diff_html

logger = get_logger("sync.detector")

NO_SHEET_DATA = "No data in sheet to compare."
NO_BACKUP = "No database backup found to compare against."


# ── Snapshot store reads ──


def latest_backup_id(session: Session, user_id: str) -> Optional[str]:
    """Lineage of the most recently created snapshot row for the user."""
    row = session.exec(
        select(PageBackup)
        .where(PageBackup.user_id == user_id)
        .order_by(PageBackup.created_at.desc(), PageBackup.id.desc())  # type: ignore
        .limit(1)
    ).first()
    return row.backup_id if row else None


def load_lineage(session: Session, user_id: str, backup_id: str) -> List[PageBackup]:
    return list(
        session.exec(
            select(PageBackup)
            .where(PageBackup.user_id == user_id, PageBackup.backup_id == backup_id)
            .order_by(PageBackup.id)  # type: ignore
        ).all()
    )


# ── Pure comparison ──


def _snapshot_value(row: PageBackup, field_name: str) -> str:
    value = getattr(row, field_name, None)
    return "" if value is None else str(value)


def compare_page(
    record: SheetRecord, snapshot: PageBackup, schema: SheetSchema
) -> Dict[str, object]:
    """Field-level deltas between one sheet row and its snapshot row."""
    fields: Dict[str, object] = {}

    for field_name in COMPARED_FIELDS:
        if field_name not in record.values:
            continue
        old = _snapshot_value(snapshot, field_name)
        new = record.values[field_name]
        if new != old:
            fields[field_name] = FieldChange(
                old=old,
                new=new,
                location=CellLocation(
                    row=record.row, column=schema.column_number(field_name)
                ),
            )

    if BODY_FIELD in record.values:
        old = _snapshot_value(snapshot, BODY_FIELD)
        new = record.values[BODY_FIELD]
        if new != old:
            # Raw pair is what gets synced; the markup is display-only
            fields[BODY_FIELD] = FieldChange(
                old=old,
                new=new,
                location=CellLocation(
                    row=record.row, column=schema.column_number(BODY_FIELD)
                ),
            )
            fields[BODY_DIFF_FIELD] = body_diff_html(old, new)

    return fields


def detect_changes(
    records: Mapping[str, SheetRecord],
    snapshots: Mapping[str, PageBackup],
    schema: SheetSchema,
) -> List[PageChange]:
    """Modified pages, in spreadsheet order.

    Ids present only in the sheet are skipped: there is no baseline to
    compare them against.
    """
    changes = []
    for page_id, record in records.items():
        snapshot = snapshots.get(page_id)
        if snapshot is None:
            continue
        fields = compare_page(record, snapshot, schema)
        if fields:
            changes.append(
                PageChange(
                    pageId=page_id,
                    name=record.values.get("name", snapshot.name),
                    type="modified",
                    fields=fields,
                )
            )
    return changes


# ── Orchestration ──


async def preview_changes(
    session: Session,
    sheets: SpreadsheetMirror,
    user_id: str,
    sheet_id: str,
    sheet_name: str,
) -> DetectionResult:
    """Read the mirror and the latest lineage, return what changed."""
    logger.info(f"Fetching data from Google Sheet: {sheet_name}", extra={"user_id": user_id})
    rows = await sheets.get_values(sheet_id, quote_tab(sheet_name))
    if not rows:
        return DetectionResult(changes=[], message=NO_SHEET_DATA)

    schema = SheetSchema.from_headers(rows[0])
    data_rows = rows[1:]
    if not data_rows:
        return DetectionResult(changes=[], message=NO_SHEET_DATA)
    records = schema.parse_rows(data_rows)

    backup_id = latest_backup_id(session, user_id)
    if backup_id is None:
        return DetectionResult(changes=[], message=NO_BACKUP)

    snapshots = {
        row.hubspot_page_id: row for row in load_lineage(session, user_id, backup_id)
    }
    changes = detect_changes(records, snapshots, schema)
    logger.info(
        f"Found {len(changes)} modified pages against {len(snapshots)} snapshot rows",
        extra={"user_id": user_id, "backup_id": backup_id},
    )
    return DetectionResult(changes=changes)

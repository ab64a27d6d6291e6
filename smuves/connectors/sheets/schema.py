"""SMUVES — Spreadsheet Mirror Schema.

Turns a raw tab (list of rows, row 1 = headers) into typed records keyed by
page id. Headers are matched trimmed and case-insensitively against the
field registry; unmapped columns are ignored.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from smuves.core.errors import ConfigurationError
from smuves.core.fields import ID_FIELD, PAGE_FIELDS


def _normalize_header(header: object) -> str:
    return str(header).strip().lower()


class SheetRecord(BaseModel):
    """One spreadsheet row, parsed."""

    model_config = ConfigDict(frozen=True)

    page_id: str
    row: int
    """1-based sheet row number (header is row 1)."""
    values: Dict[str, str]
    """Snapshot field name -> cell text, for every mapped column."""


class SheetSchema(BaseModel):
    """Resolved column positions for one tab."""

    model_config = ConfigDict(frozen=True)

    columns: Dict[str, int]
    """Snapshot field name -> 0-based column index."""

    @classmethod
    def from_headers(cls, headers: List[object]) -> "SheetSchema":
        positions = {_normalize_header(h): i for i, h in reversed(list(enumerate(headers)))}
        columns = {}
        for name, definition in PAGE_FIELDS.items():
            index = positions.get(_normalize_header(definition.header))
            if index is not None:
                columns[name] = index
        if ID_FIELD not in columns:
            raise ConfigurationError(
                "Could not find required column 'ID' in the sheet."
            )
        return cls(columns=columns)

    def column_number(self, field_name: str) -> Optional[int]:
        """1-based column number of a field, if the tab has it."""
        index = self.columns.get(field_name)
        return None if index is None else index + 1

    def parse_rows(self, rows: List[List[object]]) -> Dict[str, SheetRecord]:
        """Data rows (header already removed) → records keyed by page id.

        Rows with a blank id are skipped. A repeated id replaces the earlier
        row.
        """
        records: Dict[str, SheetRecord] = {}
        id_index = self.columns[ID_FIELD]
        for offset, row in enumerate(rows):
            page_id = _cell(row, id_index)
            if not page_id:
                continue
            values = {
                name: _cell(row, index)
                for name, index in self.columns.items()
                if name != ID_FIELD
            }
            records[page_id] = SheetRecord(page_id=page_id, row=offset + 2, values=values)
        return records


def _cell(row: List[object], index: int) -> str:
    """Cell text; the Sheets API omits trailing empty cells."""
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index])

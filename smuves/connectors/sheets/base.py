"""SMUVES — Abstract Spreadsheet Mirror."""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple


class SpreadsheetMirror(ABC):
    """Tabular range access for the human-editable mirror.

    Column *names* are the contract; column order is irrelevant to
    callers, which parse rows through ``SheetSchema``.
    """

    @abstractmethod
    async def get_values(self, spreadsheet_id: str, range_: str) -> List[List[str]]:
        """Return every row of ``range_``. Trailing empty cells may be absent."""
        ...

    @abstractmethod
    async def update_values(
        self,
        spreadsheet_id: str,
        range_: str,
        values: List[List[str]],
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        ...

    @abstractmethod
    async def clear_values(self, spreadsheet_id: str, range_: str) -> None:
        ...

    @abstractmethod
    async def add_sheet(self, spreadsheet_id: str, title: str) -> Optional[int]:
        """Add a tab. Returns its numeric sheet id, or None if it already exists."""
        ...

    @abstractmethod
    async def format_header(self, spreadsheet_id: str, sheet_id: int) -> None:
        """Bold, grey-filled first row."""
        ...

    @abstractmethod
    async def create_spreadsheet(self, title: str, tab_title: str) -> Tuple[str, str]:
        """Create a new document with one tab. Returns (spreadsheet_id, url)."""
        ...


def quote_tab(tab_name: str) -> str:
    """A1-notation tab reference, safe for names with spaces or dashes."""
    return "'" + tab_name.replace("'", "''") + "'"

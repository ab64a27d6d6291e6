"""Shared fixtures: in-memory snapshot store, fake spreadsheet, fake HubSpot."""

import json
import os
import re
from typing import Dict, List, Optional, Tuple

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest
from sqlmodel import Session

from smuves.connectors.hubspot.client import HubSpotClient
from smuves.connectors.sheets.base import SpreadsheetMirror
from smuves.connectors.sheets.client import SheetsAPIError
from smuves.core.fields import PAGE_TYPE_PATHS, SITE_PAGE
from smuves.database import build_engine, create_tables
from smuves.models.snapshot_models import PageBackup

USER = "user-1"
SHEET_ID = "sheet-abc"
TAB = "Pages"
HUBSPOT_BASE = "https://api.hubapi.test"

SHEET_HEADERS = ["ID", "Name", "URL", "HTML Title", "Meta Description", "Slug", "Body Content"]


# ─────────────────────────────────────────────
# Snapshot store
# ─────────────────────────────────────────────


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


def backup_row(page_id: str, backup_id: str = "backup_1", user_id: str = USER, **fields) -> PageBackup:
    defaults = {
        "page_type": SITE_PAGE,
        "name": f"Page {page_id}",
        "url": f"https://example.com/{page_id.lower()}",
        "html_title": f"Title {page_id}",
        "meta_description": f"About {page_id}",
        "slug": page_id.lower(),
        "state": "DRAFT",
        "body_content": f"<p>Body of {page_id}</p>",
    }
    defaults.update(fields)
    return PageBackup(user_id=user_id, backup_id=backup_id, hubspot_page_id=page_id, **defaults)


def seed_lineage(session: Session, rows: List[PageBackup]) -> List[PageBackup]:
    session.add_all(rows)
    session.commit()
    for row in rows:
        session.refresh(row)
    return rows


def sheet_row_for(row: PageBackup, **overrides) -> List[str]:
    """A mirror row matching ``SHEET_HEADERS`` for a snapshot row."""
    values = {
        "hubspot_page_id": row.hubspot_page_id,
        "name": row.name,
        "url": row.url,
        "html_title": row.html_title,
        "meta_description": row.meta_description,
        "slug": row.slug,
        "body_content": row.body_content,
    }
    values.update(overrides)
    return [
        values["hubspot_page_id"],
        values["name"],
        values["url"],
        values["html_title"],
        values["meta_description"],
        values["slug"],
        values["body_content"],
    ]


# ─────────────────────────────────────────────
# Spreadsheet mirror
# ─────────────────────────────────────────────

_RANGE_RE = re.compile(r"^'(?P<tab>(?:[^']|'')*)'(?:!(?P<cell>[A-Z]+\d*)(?::[A-Z]+\d*)?)?$")


def _split_range(range_: str) -> Tuple[str, int]:
    match = _RANGE_RE.match(range_)
    assert match, f"unexpected range {range_}"
    tab = match.group("tab").replace("''", "'")
    cell = match.group("cell") or "A1"
    digits = re.sub(r"[A-Z]", "", cell) or "1"
    return tab, int(digits) - 1


class FakeSheets(SpreadsheetMirror):
    """In-memory spreadsheet documents keyed by (spreadsheet_id, tab)."""

    def __init__(self):
        self.tabs: Dict[Tuple[str, str], List[List[str]]] = {}
        self.sheet_ids: Dict[Tuple[str, str], int] = {}
        self.created: List[Tuple[str, str]] = []
        self.formatted: List[int] = []
        self.calls: List[str] = []
        self.fail_on: set = set()
        self.raise_on: Dict[str, Exception] = {}

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.raise_on:
            raise self.raise_on[name]
        if name in self.fail_on:
            raise SheetsAPIError(f"{name} failed: boom", 500)

    def set_tab(self, spreadsheet_id: str, tab: str, rows: List[List[str]]) -> None:
        self.tabs[(spreadsheet_id, tab)] = [list(r) for r in rows]

    async def get_values(self, spreadsheet_id, range_):
        self._check("get_values")
        tab, _ = _split_range(range_)
        return [list(r) for r in self.tabs.get((spreadsheet_id, tab), [])]

    async def update_values(self, spreadsheet_id, range_, values, value_input_option="USER_ENTERED"):
        self._check("update_values")
        tab, start = _split_range(range_)
        rows = self.tabs.setdefault((spreadsheet_id, tab), [])
        while len(rows) < start + len(values):
            rows.append([])
        for offset, value_row in enumerate(values):
            rows[start + offset] = list(value_row)

    async def clear_values(self, spreadsheet_id, range_):
        self._check("clear_values")
        tab, start = _split_range(range_)
        rows = self.tabs.get((spreadsheet_id, tab), [])
        del rows[start:]

    async def add_sheet(self, spreadsheet_id, title):
        self._check("add_sheet")
        key = (spreadsheet_id, title)
        if key in self.tabs:
            return None
        self.tabs[key] = []
        self.sheet_ids[key] = len(self.sheet_ids) + 100
        return self.sheet_ids[key]

    async def format_header(self, spreadsheet_id, sheet_id):
        self._check("format_header")
        self.formatted.append(sheet_id)

    async def create_spreadsheet(self, title, tab_title):
        self._check("create_spreadsheet")
        spreadsheet_id = f"new-{len(self.created) + 1}"
        self.created.append((spreadsheet_id, title))
        self.tabs[(spreadsheet_id, tab_title)] = []
        return spreadsheet_id, f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"


@pytest.fixture
def sheets():
    return FakeSheets()


# ─────────────────────────────────────────────
# HubSpot
# ─────────────────────────────────────────────


class FakeHubSpot:
    """Minimal CMS v3 page API held in memory."""

    def __init__(self):
        self.pages: Dict[str, dict] = {}
        self.page_size: Optional[int] = None
        self.fail_update: Dict[str, int] = {}
        self.fail_publish: set = set()
        self.fail_list: set = set()
        self.requests: List[httpx.Request] = []

    def add_page(self, page_id: str, page_type: str = SITE_PAGE, **fields) -> dict:
        page = {
            "id": page_id,
            "name": f"Page {page_id}",
            "slug": page_id.lower(),
            "url": f"https://example.com/{page_id.lower()}",
            "htmlTitle": f"Title {page_id}",
            "metaDescription": f"About {page_id}",
            "currentState": "PUBLISHED",
            "body": f"<p>Body of {page_id}</p>",
            "createdAt": "2026-01-01T00:00:00Z",
            "updatedAt": "2026-10-01T10:00:00Z",
            "_type": page_type,
        }
        page.update(fields)
        self.pages[page_id] = page
        return page

    def _public(self, page: dict) -> dict:
        return {k: v for k, v in page.items() if not k.startswith("_")}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for page_type, collection in PAGE_TYPE_PATHS.items():
            if path == collection and request.method == "GET":
                if page_type in self.fail_list:
                    return httpx.Response(403, json={"message": "missing scopes"})
                items = [self._public(p) for p in self.pages.values() if p["_type"] == page_type]
                start = int(request.url.params.get("after", 0))
                size = self.page_size or len(items) or 1
                body = {"results": items[start : start + size]}
                if start + size < len(items):
                    body["paging"] = {"next": {"after": str(start + size)}}
                return httpx.Response(200, json=body)

            if path.startswith(collection + "/"):
                rest = path[len(collection) + 1 :]
                page_id, _, action = rest.partition("/")
                if request.method == "PATCH" and not action:
                    if page_id in self.fail_update:
                        status = self.fail_update[page_id]
                        return httpx.Response(status, json={"message": f"Page {page_id} rejected"})
                    if page_id not in self.pages:
                        return httpx.Response(404, json={"message": "Page not found"})
                    self.pages[page_id].update(json.loads(request.content))
                    return httpx.Response(200, json=self._public(self.pages[page_id]))
                if request.method == "POST" and action == "publish-action":
                    if page_id in self.fail_publish:
                        return httpx.Response(400, json={"message": "Cannot publish"})
                    self.pages[page_id]["currentState"] = "PUBLISHED"
                    return httpx.Response(204)

        return httpx.Response(404, json={"message": f"No route {request.method} {path}"})

    def patches(self) -> List[Tuple[str, dict]]:
        return [
            (r.url.path, json.loads(r.content))
            for r in self.requests
            if r.method == "PATCH"
        ]


@pytest.fixture
def hubspot_api():
    return FakeHubSpot()


def make_client(fake: FakeHubSpot, token: str = "hs-token") -> HubSpotClient:
    return HubSpotClient(
        token,
        base_url=HUBSPOT_BASE,
        max_retries=1,
        transport=httpx.MockTransport(fake.handler),
    )


@pytest.fixture
async def hubspot(hubspot_api):
    client = make_client(hubspot_api)
    yield client
    await client.close()

"""
Tests for the HTTP surface: request validation, response shapes, errors.

Endpoints tested:
- POST /sync/preview-changes, POST /sync/to-hubspot
- POST /history/revert, GET /history/versions
- POST /backup/sync-to-sheets, POST /backup/auto-backup
- GET /backup/history, GET /backup/status, POST /backup/toggle, POST /backup/schedule
"""
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from smuves.api.common import get_hubspot_factory, get_sheets_factory
from smuves.database import get_session
from smuves.main import app
from smuves.models.snapshot_models import PageBackup, UserSettings

from conftest import SHEET_HEADERS, SHEET_ID, TAB, USER, backup_row, make_client, seed_lineage, sheet_row_for


@pytest.fixture
def api(engine, hubspot_api, sheets):
    def session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = session_override
    app.dependency_overrides[get_hubspot_factory] = lambda: (lambda token: make_client(hubspot_api, token))
    app.dependency_overrides[get_sheets_factory] = lambda: (lambda token: sheets)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestSystem:
    def test_health(self, api):
        res = api.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"

    def test_incomplete_body_is_rejected(self, api):
        res = api.post("/sync/preview-changes", json={"userId": USER})
        assert res.status_code == 400
        assert res.json() == {"success": False, "error": "Missing required fields."}


class TestPreviewEndpoint:
    def _body(self, **extra):
        return {"userId": USER, "sheetId": SHEET_ID, "sheetName": TAB, "googleToken": "g", **extra}

    def test_returns_change_set(self, api, session, sheets):
        (row,) = seed_lineage(session, [backup_row("P1", name="Home")])
        sheets.set_tab(SHEET_ID, TAB, [SHEET_HEADERS, sheet_row_for(row, name="Homepage")])

        res = api.post("/sync/preview-changes", json=self._body())

        assert res.status_code == 200
        data = res.json()
        assert data["success"] is True
        assert data["changes"] == [
            {
                "pageId": "P1",
                "name": "Homepage",
                "type": "modified",
                "fields": {
                    "name": {"old": "Home", "new": "Homepage", "location": {"row": 2, "column": 2}}
                },
            }
        ]

    def test_no_backup_is_success_with_message(self, api, sheets):
        sheets.set_tab(SHEET_ID, TAB, [SHEET_HEADERS, ["P1", "Home"]])

        res = api.post("/sync/preview-changes", json=self._body())

        assert res.status_code == 200
        assert res.json() == {
            "success": True,
            "changes": [],
            "message": "No database backup found to compare against.",
        }

    def test_missing_id_column(self, api, session, sheets):
        seed_lineage(session, [backup_row("P1")])
        sheets.set_tab(SHEET_ID, TAB, [["Name"], ["Home"]])

        res = api.post("/sync/preview-changes", json=self._body())

        assert res.status_code == 400
        assert res.json()["error"] == "Could not find required column 'ID' in the sheet."

    def test_requires_a_google_connection(self, api):
        body = self._body()
        del body["googleToken"]

        res = api.post("/sync/preview-changes", json=body)

        assert res.status_code == 400
        assert res.json()["error"] == "Google Sheets not connected. Please reconnect your Google account."

    def test_falls_back_to_stored_google_token(self, api, session, sheets):
        session.add(UserSettings(user_id=USER, google_access_token="stored"))
        session.commit()
        sheets.set_tab(SHEET_ID, TAB, [SHEET_HEADERS])
        body = self._body()
        del body["googleToken"]

        res = api.post("/sync/preview-changes", json=body)

        assert res.status_code == 200
        assert res.json()["message"] == "No data in sheet to compare."


class TestSyncEndpoint:
    def test_reports_per_page_outcomes(self, api, session, hubspot_api):
        seed_lineage(session, [backup_row("P1"), backup_row("P2")])
        hubspot_api.add_page("P1")
        hubspot_api.add_page("P2")
        hubspot_api.fail_update["P2"] = 400
        changes = [
            {"pageId": "P1", "name": "One", "fields": {"name": {"old": "Page P1", "new": "One"}}},
            {"pageId": "P2", "name": "Two", "fields": {"name": {"old": "Page P2", "new": "Two"}}},
        ]

        res = api.post("/sync/to-hubspot", json={"userId": USER, "hubspotToken": "hs", "changes": changes})

        assert res.status_code == 200
        data = res.json()
        assert data["success"] is True
        assert data["message"] == "Sync process completed."
        assert [s["pageId"] for s in data["succeeded"]] == ["P1"]
        assert data["failed"] == [{"pageId": "P2", "name": "Two", "error": "Page P2 rejected"}]
        assert data["backupId"].startswith("sync_")

    def test_empty_change_set_is_rejected(self, api):
        res = api.post("/sync/to-hubspot", json={"userId": USER, "hubspotToken": "hs", "changes": []})
        assert res.status_code == 400

    def test_accepts_diff_markup_in_fields(self, api, session, hubspot_api):
        seed_lineage(session, [backup_row("P1")])
        hubspot_api.add_page("P1")
        change = {
            "pageId": "P1",
            "fields": {
                "body_content": {"old": "a", "new": "b"},
                "body_content_diff": "<del>a</del><ins>b</ins>",
            },
        }

        res = api.post("/sync/to-hubspot", json={"userId": USER, "hubspotToken": "hs", "changes": [change]})

        assert res.status_code == 200
        assert hubspot_api.patches() == [("/cms/v3/pages/site-pages/P1", {"body": "b"})]


class TestRevertEndpoint:
    def test_unknown_version(self, api, session, sheets):
        seed_lineage(session, [backup_row("P1")])

        res = api.post(
            "/history/revert",
            json={"userId": USER, "hubspotToken": "hs", "versionId": "backup_999", "googleToken": "g"},
        )

        assert res.status_code == 404
        assert res.json() == {
            "success": False,
            "error": "Failed to revert to version: Could not find version with ID: backup_999",
        }
        assert sheets.created == []
        assert len(session.exec(select(PageBackup)).all()) == 1

    def test_revert_shape(self, api, session, hubspot_api):
        seed_lineage(session, [backup_row("P1", state="PUBLISHED")])
        hubspot_api.add_page("P1")

        res = api.post(
            "/history/revert",
            json={"userId": USER, "hubspotToken": "hs", "versionId": "backup_1", "googleToken": "g"},
        )

        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Revert process completed."
        assert data["succeeded"][0]["published"] is True
        assert data["failed"] == []
        assert data["revertSheetUrl"].startswith("https://docs.google.com/spreadsheets/d/")
        assert data["backupId"].startswith("revert_")

    def test_revert_without_google_has_no_audit_url(self, api, session, hubspot_api):
        seed_lineage(session, [backup_row("P1")])
        hubspot_api.add_page("P1")

        res = api.post("/history/revert", json={"userId": USER, "hubspotToken": "hs", "versionId": "backup_1"})

        assert res.status_code == 200
        assert res.json()["revertSheetUrl"] == ""

    def test_versions(self, api, session):
        seed_lineage(session, [backup_row("P1"), backup_row("P2")])

        res = api.get("/history/versions", params={"userId": USER})

        assert res.status_code == 200
        (version,) = res.json()["versions"]
        assert version["backupId"] == "backup_1"
        assert version["pageCount"] == 2


class TestBackupEndpoints:
    def test_full_backup(self, api, hubspot_api):
        hubspot_api.add_page("P1")

        res = api.post(
            "/backup/sync-to-sheets",
            json={"userId": USER, "hubspotToken": "hs", "sheetId": SHEET_ID, "sheetName": TAB, "googleToken": "g"},
        )

        assert res.status_code == 200
        data = res.json()
        assert data["success"] is True
        assert data["pages_synced"] == 1
        assert data["sheet_url"] == f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit"

    def test_full_backup_with_no_content(self, api):
        res = api.post(
            "/backup/sync-to-sheets",
            json={"userId": USER, "hubspotToken": "hs", "sheetId": SHEET_ID, "sheetName": TAB, "googleToken": "g"},
        )
        assert res.status_code == 400
        assert res.json()["error"] == "No content found in HubSpot to backup."

    def test_auto_backup(self, api, hubspot_api):
        hubspot_api.add_page("P1")
        hubspot_api.add_page("P2")

        res = api.post(
            "/backup/auto-backup",
            json={"userId": USER, "hubspotToken": "hs", "sheetId": SHEET_ID, "googleToken": "g"},
        )

        assert res.status_code == 200
        data = res.json()
        assert data["pagesBackedUp"] == 2
        assert data["changesDetected"] == 2
        assert data["tabName"].startswith("hubspot-backup-")
        assert data["message"].startswith("Backup completed: 2 changes detected")

    def test_auto_backup_failure(self, api, hubspot_api, sheets):
        hubspot_api.add_page("P1")
        sheets.fail_on.add("add_sheet")

        res = api.post(
            "/backup/auto-backup",
            json={"userId": USER, "hubspotToken": "hs", "sheetId": SHEET_ID, "googleToken": "g"},
        )

        assert res.status_code == 500
        data = res.json()
        assert data["success"] is False
        assert data["error"] == "Auto backup failed"
        assert "add_sheet failed" in data["details"]

    def test_history_and_status(self, api, hubspot_api):
        hubspot_api.add_page("P1")
        api.post(
            "/backup/auto-backup",
            json={"userId": USER, "hubspotToken": "hs", "sheetId": SHEET_ID, "googleToken": "g"},
        )

        history = api.get("/backup/history", params={"userId": USER, "pageId": "P1"}).json()
        status = api.get("/backup/status", params={"userId": USER}).json()

        assert [c["field_name"] for c in history["changes"]] == ["page_created"]
        assert status["success"] is True
        assert status["lastBackup"] is not None

    def test_toggle(self, api, session):
        res = api.post("/backup/toggle", json={"userId": USER, "enabled": False})

        assert res.json() == {"success": True, "message": "Auto-backup disabled"}
        assert session.get(UserSettings, USER).auto_backup_enabled is False

    def test_schedule(self, api, session):
        res = api.post(
            "/backup/schedule",
            json={"userId": USER, "schedule": {"enabled": True, "frequency": "weekly", "time": "06:30"}},
        )

        data = res.json()
        assert data["success"] is True
        assert data["nextRun"].endswith("06:30:00+00:00")
        stored = session.get(UserSettings, USER)
        assert (stored.backup_frequency, stored.backup_time) == ("weekly", "06:30")

    def test_schedule_rejects_bad_time(self, api):
        res = api.post(
            "/backup/schedule",
            json={"userId": USER, "schedule": {"enabled": True, "frequency": "daily", "time": "25:00"}},
        )
        assert res.status_code == 400

"""
Tests for applying a reviewed change-set to HubSpot.

Every page is independent: one page failing never blocks the others, and
only the pages that were written show up in the post-sync lineage.
"""
from smuves.core.fields import BLOG_POST, LANDING_PAGE
from smuves.models.change_models import FieldChange, PageChange
from smuves.sync.applier import apply_changes, build_payload
from smuves.sync.detector import latest_backup_id, load_lineage, preview_changes

from conftest import SHEET_HEADERS, SHEET_ID, TAB, USER, backup_row, seed_lineage, sheet_row_for


def _change(page_id, **fields):
    return PageChange(
        pageId=page_id,
        name=f"Page {page_id}",
        fields={k: FieldChange(old="", new=v) if isinstance(v, str) else v for k, v in fields.items()},
    )


class TestBuildPayload:
    def test_maps_fields_to_hubspot_properties(self):
        change = _change(
            "P1",
            name="Home",
            html_title="Welcome",
            meta_description="Hi",
            slug="home",
            body_content="<p>x</p>",
        )
        assert build_payload(change) == {
            "name": "Home",
            "htmlTitle": "Welcome",
            "metaDescription": "Hi",
            "slug": "home",
            "body": "<p>x</p>",
        }

    def test_url_and_diff_markup_are_never_sent(self):
        change = PageChange(
            pageId="P1",
            fields={
                "url": FieldChange(old="a", new="b"),
                "body_content": FieldChange(old="old", new="new"),
                "body_content_diff": "<del>old</del><ins>new</ins>",
            },
        )
        assert build_payload(change) == {"body": "new"}


class TestApplyChanges:
    async def test_one_failing_page_does_not_block_the_rest(self, session, hubspot, hubspot_api):
        """P2's HubSpot error is reported; P1 and P3 still go through"""
        seed_lineage(session, [backup_row("P1"), backup_row("P2"), backup_row("P3")])
        for page_id in ("P1", "P2", "P3"):
            hubspot_api.add_page(page_id)
        hubspot_api.fail_update["P2"] = 500

        result = await apply_changes(
            session,
            hubspot,
            USER,
            [_change("P1", name="One"), _change("P2", name="Two"), _change("P3", name="Three")],
        )

        assert [s.page_id for s in result.succeeded] == ["P1", "P3"]
        assert len(result.failed) == 1
        assert result.failed[0].page_id == "P2"
        assert result.failed[0].error == "Page P2 rejected"
        assert hubspot_api.pages["P1"]["name"] == "One"
        assert hubspot_api.pages["P3"]["name"] == "Three"

    async def test_sends_only_changed_fields(self, session, hubspot, hubspot_api):
        seed_lineage(session, [backup_row("P1", page_type=LANDING_PAGE)])
        hubspot_api.add_page("P1", page_type=LANDING_PAGE)

        result = await apply_changes(session, hubspot, USER, [_change("P1", slug="new-slug")])

        assert result.failed == []
        assert result.succeeded[0].url == "https://example.com/p1"
        assert hubspot_api.patches() == [
            ("/cms/v3/pages/landing-pages/P1", {"slug": "new-slug"})
        ]

    async def test_page_without_snapshot_fails(self, session, hubspot):
        result = await apply_changes(session, hubspot, USER, [_change("P404", name="Ghost")])
        assert result.failed[0].error == "Page type not found in database backup."
        assert result.succeeded == []

    async def test_blog_posts_are_not_writable(self, session, hubspot, hubspot_api):
        seed_lineage(session, [backup_row("B1", page_type=BLOG_POST)])
        result = await apply_changes(session, hubspot, USER, [_change("B1", name="Post")])
        assert result.failed[0].error == "Syncing for page type 'Blog Post' is not supported yet."
        assert hubspot_api.patches() == []

    async def test_nothing_writable_is_skipped_without_a_request(self, session, hubspot, hubspot_api):
        """A url-only edit has nothing HubSpot accepts"""
        seed_lineage(session, [backup_row("P1")])
        change = PageChange(pageId="P1", fields={"url": FieldChange(old="a", new="b")})

        result = await apply_changes(session, hubspot, USER, [change])

        assert result.succeeded[0].skipped is True
        assert hubspot_api.requests == []
        assert result.backup_id is None

    async def test_page_type_comes_from_the_latest_snapshot(self, session, hubspot, hubspot_api):
        seed_lineage(session, [backup_row("P1", backup_id="backup_a", page_type=BLOG_POST)])
        seed_lineage(session, [backup_row("P1", backup_id="backup_b", page_type=LANDING_PAGE)])
        hubspot_api.add_page("P1", page_type=LANDING_PAGE)

        result = await apply_changes(session, hubspot, USER, [_change("P1", name="Moved")])

        assert result.failed == []


class TestPostSyncLineage:
    async def test_synced_values_are_not_flagged_again(self, session, hubspot, hubspot_api, sheets):
        """After a sync the next preview only shows the page that failed"""
        rows = seed_lineage(session, [backup_row("P1"), backup_row("P2")])
        for page_id in ("P1", "P2"):
            hubspot_api.add_page(page_id)
        hubspot_api.fail_update["P2"] = 400
        sheets.set_tab(
            SHEET_ID,
            TAB,
            [
                SHEET_HEADERS,
                sheet_row_for(rows[0], name="Home v2", body_content="<p>New</p>"),
                sheet_row_for(rows[1], slug="about-us"),
            ],
        )
        preview = await preview_changes(session, sheets, USER, SHEET_ID, TAB)
        assert len(preview.changes) == 2

        result = await apply_changes(session, hubspot, USER, preview.changes)

        assert result.backup_id is not None
        assert result.backup_id.startswith("sync_")
        assert latest_backup_id(session, USER) == result.backup_id
        again = await preview_changes(session, sheets, USER, SHEET_ID, TAB)
        assert [c.page_id for c in again.changes] == ["P2"]

    async def test_new_lineage_copies_every_page(self, session, hubspot, hubspot_api):
        seed_lineage(session, [backup_row("P1"), backup_row("P2", state="PUBLISHED")])
        hubspot_api.add_page("P1")

        result = await apply_changes(session, hubspot, USER, [_change("P1", html_title="New title")])

        lineage = {r.hubspot_page_id: r for r in load_lineage(session, USER, result.backup_id)}
        assert set(lineage) == {"P1", "P2"}
        assert lineage["P1"].html_title == "New title"
        assert lineage["P1"].name == "Page P1"
        assert lineage["P2"].state == "PUBLISHED"

    async def test_all_failed_writes_no_lineage(self, session, hubspot, hubspot_api):
        seed_lineage(session, [backup_row("P1")])
        hubspot_api.fail_update["P1"] = 403

        result = await apply_changes(session, hubspot, USER, [_change("P1", name="x")])

        assert result.backup_id is None
        assert latest_backup_id(session, USER) == "backup_1"

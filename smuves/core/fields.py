"""SMUVES — Page Field Registry.

Single source of truth for how a page field is named in each of the three
places it lives: the snapshot table, the spreadsheet mirror header, and the
HubSpot CMS API. Renaming a spreadsheet header silently breaks change
detection for that field, so headers are only ever declared here.
"""

from typing import Dict, List, Optional


class FieldDefinition:
    """Describes a single page field across storage, sheet and HubSpot."""

    def __init__(
        self,
        name: str,
        header: str,
        hubspot_key: Optional[str] = None,
        description: str = "",
    ):
        self.name = name
        self.header = header
        self.hubspot_key = hubspot_key
        self.description = description

    @property
    def writable(self) -> bool:
        return self.hubspot_key is not None

    def __repr__(self) -> str:
        return f"<Field {self.name} ({self.header})>"


ID_FIELD = "hubspot_page_id"
BODY_FIELD = "body_content"
BODY_DIFF_FIELD = "body_content_diff"

# ─────────────────────────────────────────────
# SPREADSHEET MIRROR: column contract
# ─────────────────────────────────────────────

PAGE_FIELDS: Dict[str, FieldDefinition] = {
    ID_FIELD: FieldDefinition(ID_FIELD, "ID", None, "HubSpot page id"),
    "name": FieldDefinition("name", "Name", "name", "Internal page name"),
    "url": FieldDefinition("url", "URL", None, "Published URL (read-only in HubSpot)"),
    "html_title": FieldDefinition(
        "html_title", "HTML Title", "htmlTitle", "<title> of the page"
    ),
    "meta_description": FieldDefinition(
        "meta_description", "Meta Description", "metaDescription", "SEO description"
    ),
    "slug": FieldDefinition("slug", "Slug", "slug", "URL path segment"),
    BODY_FIELD: FieldDefinition(BODY_FIELD, "Body Content", "body", "Rich-text body"),
}

# Fields compared by flat strict inequality (body gets a rendered diff instead)
COMPARED_FIELDS: List[str] = [
    f for f in PAGE_FIELDS if f not in (ID_FIELD, BODY_FIELD)
]

# Snapshot field -> HubSpot property. ``state`` only drives the publish action.
HUBSPOT_FIELD_MAPPING: Dict[str, str] = {
    name: d.hubspot_key for name, d in PAGE_FIELDS.items() if d.writable
}

# ─────────────────────────────────────────────
# HUBSPOT PAGE TYPES
# ─────────────────────────────────────────────

SITE_PAGE = "Site Page"
LANDING_PAGE = "Landing Page"
BLOG_POST = "Blog Post"

# Page type -> CMS v3 collection path
PAGE_TYPE_PATHS: Dict[str, str] = {
    SITE_PAGE: "/cms/v3/pages/site-pages",
    LANDING_PAGE: "/cms/v3/pages/landing-pages",
    BLOG_POST: "/cms/v3/blogs/posts",
}

# Only page collections accept PATCH + publish-action
WRITABLE_PAGE_TYPES = (SITE_PAGE, LANDING_PAGE)

# ─────────────────────────────────────────────
# SHEET LAYOUTS
# ─────────────────────────────────────────────

# Full backup tab and revert audit sheet share this layout
BACKUP_HEADERS: List[str] = [
    "Backup Date",
    "ID",
    "Name",
    "URL",
    "HTML Title",
    "Meta Description",
    "Slug",
    "State",
    "Created/Published At",
    "Updated At",
    "Content Type",
    "Body Content",
]

# Auto-backup change log tab
CHANGE_LOG_HEADERS: List[str] = [
    "Page ID",
    "Name",
    "Slug",
    "URL",
    "Status",
    "Last Updated",
    "Changes",
    "Change Type",
    "Previous Value",
]

# Live-page keys the auto-backup tracker compares against its last snapshot
TRACKED_FIELDS: List[str] = ["name", "slug", "url", "status", "updatedAt"]

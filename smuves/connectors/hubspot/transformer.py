"""SMUVES — HubSpot Raw → Normalized Transformer.

Converts raw CMS v3 page objects into ``LivePage`` records, and live pages
into snapshot rows and spreadsheet rows.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

from smuves.models.snapshot_models import PageBackup
from smuves.core.logging import get_logger

logger = get_logger("hubspot.transformer")


class LivePage(BaseModel):
    """A HubSpot page as this service sees it. Never owned, only mirrored."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    slug: str = ""
    url: str = ""
    html_title: str = Field(default="", alias="htmlTitle")
    meta_description: str = Field(default="", alias="metaDescription")
    status: str = "UNKNOWN"
    body: str = ""
    created_at: str = Field(default="", alias="createdAt")
    updated_at: str = Field(default="", alias="updatedAt")
    page_type: str = Field(default="Unknown", alias="pageType")

    def content(self) -> Dict[str, Any]:
        """camelCase dict used for snapshot storage and tracked-field lookup."""
        return self.model_dump(by_alias=True)


def _first(raw: Dict[str, Any], *keys: str) -> str:
    """Return the first non-empty value among ``keys`` as a string."""
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


def transform_page(raw: Dict[str, Any]) -> LivePage:
    """Normalize one raw HubSpot page/post object."""
    return LivePage(
        id=_first(raw, "id", "page_id"),
        name=_first(raw, "name", "title", "htmlTitle", "html_title") or "Untitled",
        slug=_first(raw, "slug", "path"),
        url=_first(raw, "url", "absoluteUrl", "absolute_url", "published_url"),
        htmlTitle=_first(raw, "htmlTitle", "html_title", "name"),
        metaDescription=_first(raw, "metaDescription", "meta_description"),
        status=_first(raw, "currentState", "state") or "UNKNOWN",
        body=_first(raw, "body", "postBody"),
        createdAt=_first(raw, "publishDate", "createdAt", "created"),
        updatedAt=_first(raw, "updatedAt", "updated"),
        pageType=_first(raw, "pageType") or "Unknown",
    )


def transform_pages(raw_pages: List[Dict[str, Any]]) -> List[LivePage]:
    """Normalize a batch, dropping objects without an id."""
    pages = []
    for raw in raw_pages:
        page = transform_page(raw)
        if not page.id:
            logger.warning(f"Skipping HubSpot object without id: {raw.get('name', '')}")
            continue
        pages.append(page)
    logger.info(f"Normalized {len(pages)} of {len(raw_pages)} HubSpot pages")
    return pages


def to_backup_row(
    page: LivePage, user_id: str, backup_id: str, backup_date: str
) -> PageBackup:
    """Live page → snapshot row in lineage ``backup_id``."""
    return PageBackup(
        user_id=user_id,
        backup_id=backup_id,
        hubspot_page_id=page.id,
        page_type=page.page_type,
        name=page.name,
        url=page.url,
        html_title=page.html_title or page.name,
        meta_description=page.meta_description,
        slug=page.slug,
        state=page.status,
        body_content=page.body,
        page_created_at=page.created_at,
        page_updated_at=page.updated_at,
        backup_date=backup_date,
    )


def backup_sheet_row(row: PageBackup) -> List[str]:
    """Snapshot row → values in ``BACKUP_HEADERS`` order."""
    return [
        row.backup_date or (row.created_at.isoformat() if row.created_at else ""),
        row.hubspot_page_id,
        row.name,
        row.url,
        row.html_title,
        row.meta_description,
        row.slug,
        row.state,
        row.page_created_at,
        row.page_updated_at,
        row.page_type,
        row.body_content,
    ]

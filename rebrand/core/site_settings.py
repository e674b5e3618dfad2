"""Site identity rows: edits site_name and site_url only, each edit backed up first."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import BaseModel

from rebrand.core.backups import LATEST, PatchTarget, backup_then_write, revert_to_backup
from rebrand.core.errors import InvalidArgument, NotFound
from rebrand.core.records import BackupRecord
from rebrand.core.repository import BrandingRepository
from rebrand.core.settings import sanitize_http_url

logger = logging.getLogger(__name__)

SITE_COLUMNS = ("site_name", "site_url")
MAX_SITE_NAME = 100


class SiteIdentity(BaseModel):
    id: int
    site_name: str = ""
    site_url: Optional[str] = None


def sanitize_site_name(name: Optional[str]) -> str:
    n = (name or "").strip()
    if not n or len(n) > MAX_SITE_NAME:
        raise InvalidArgument(f"Site name is required and must be at most {MAX_SITE_NAME} characters.")
    return n


def _identity(row: dict[str, Any]) -> SiteIdentity:
    url = row.get("site_url")
    return SiteIdentity(
        id=int(row["id"]),
        site_name=str(row.get("site_name") or ""),
        site_url=None if url is None else str(url),
    )


class SiteSettings:
    """Multiple rows are allowed; other columns of a row are never written."""

    def __init__(self, repo: BrandingRepository, table: str = "settings") -> None:
        self.repo = repo
        self.table = table

    def target(self, site_id: int) -> PatchTarget:
        return PatchTarget.row(self.table, site_id, SITE_COLUMNS)

    def list_sites(self) -> list[SiteIdentity]:
        return sorted((_identity(r) for r in self.repo.iter_rows(self.table)), key=lambda s: s.id)

    def get_site(self, site_id: int) -> Optional[SiteIdentity]:
        row = self.repo.get_row(self.table, site_id)
        return _identity(row) if row is not None else None

    def update_site(
        self, site_id: int, site_name: str, site_url: Optional[str], *, actor_id: int
    ) -> Optional[BackupRecord]:
        name = sanitize_site_name(site_name)
        url = sanitize_http_url(site_url) or None
        if self.get_site(site_id) is None:
            raise NotFound(f"{self.table}.id {site_id} not found.")
        snapshot = SiteIdentity(id=site_id, site_name=name, site_url=url)
        record = backup_then_write(
            self.repo,
            self.target(site_id),
            snapshot.model_dump_json(include=set(SITE_COLUMNS)),
            actor_id=actor_id,
            note="site identity update",
        )
        logger.info("Updated site %s identity", site_id)
        return record

    def revert(self, site_id: int, backup_id: Union[int, str] = LATEST, *, actor_id: int) -> bool:
        return revert_to_backup(self.repo, self.target(site_id), backup_id, actor_id=actor_id)

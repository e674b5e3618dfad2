"""RebrandService: the admin-facing operations. Every entry point checks the actor first."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from rebrand.config.loader import Config
from rebrand.core.backups import (
    LATEST,
    BatchResult,
    PatchTarget,
    WriteOutcome,
    backup_then_write,
    revert_to_backup,
)
from rebrand.core.errors import InvalidArgument, NotFound, PermissionDenied
from rebrand.core.head_tags import HeadMeta, HeadTagsPatcher, render_head_snippet
from rebrand.core.icon_generator import GeneratedIcons, IconGenerator, detect_assets
from rebrand.core.imaging import resize_image
from rebrand.core.marker_patch import EncodingMode, MarkerPair
from rebrand.core.menu_patcher import MenuPatcher, MenuRule, RulesPreview, parse_menu_rules
from rebrand.core.records import BackupRecord
from rebrand.core.repository import BrandingRepository
from rebrand.core.settings import (
    BrandSettings,
    bump_asset_version,
    load_settings,
    parse_menu_ids,
    parse_social_links,
    update_settings,
)
from rebrand.core.site_settings import SITE_COLUMNS, SiteIdentity, SiteSettings
from rebrand.core.uploads import UploadedFile, validate_upload
from rebrand.security.audit import audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActorContext:
    """Who is calling. Passed explicitly into every operation."""

    actor_id: int
    login: str = ""


class RebrandService:
    def __init__(self, repo: BrandingRepository, config: Config) -> None:
        self.repo = repo
        self.config = config
        paths = config.paths
        patching = config.patching
        self.markers = MarkerPair(patching.marker_begin, patching.marker_end)
        self.icons_dir = paths.resolve(paths.icons_dir)
        self.logo_dir = paths.resolve(paths.logo_dir)
        self.head = HeadTagsPatcher(
            repo,
            paths.resolve(paths.head_file),
            asset_prefixes=(paths.icons_url, "/" + paths.logo_dir.strip("/") + "/", "/favicon"),
            markers=self.markers,
            anchor=patching.head_anchor,
        )
        self.menus = MenuPatcher(
            repo,
            patching.menu_table,
            patching.menu_column,
            patching.menu_name_column,
            markers=self.markers,
            encoding=EncodingMode(patching.menu_encoding),
        )
        self.sites = SiteSettings(repo, patching.site_table)
        self.icons = IconGenerator(paths.icons_url)

    def require_admin(self, actor: Optional[ActorContext]) -> ActorContext:
        if actor is None or actor.actor_id != self.config.security.admin_id:
            who = "anonymous" if actor is None else actor.actor_id
            logger.warning("Denied rebrand operation for actor %s", who)
            raise PermissionDenied("Only the site administrator can change branding.")
        return actor

    # ----- settings -----
    def get_settings(self, actor: ActorContext) -> BrandSettings:
        self.require_admin(actor)
        return load_settings(self.repo)

    def save_settings(
        self,
        actor: ActorContext,
        *,
        social_links_json: str = "",
        menu_ids: str = "",
        header_override_enabled: bool = True,
    ) -> BrandSettings:
        self.require_admin(actor)
        updated = update_settings(
            self.repo,
            social_links=parse_social_links(social_links_json),
            menu_target_ids=parse_menu_ids(menu_ids),
            header_override_enabled=header_override_enabled,
        )
        audit("settings.save", actor_id=actor.actor_id, menus=updated.menu_target_ids)
        return updated

    # ----- assets -----
    def _bump(self, actor: ActorContext, reason: str) -> int:
        version = bump_asset_version(self.repo)
        audit("asset_version.bump", actor_id=actor.actor_id, version=version, reason=reason)
        return version

    def upload_logo(self, actor: ActorContext, upload: UploadedFile, *, dark: bool = False) -> str:
        """Validate, resize to the configured bounds and store as PNG. Returns the web-relative path."""
        self.require_admin(actor)
        limits = self.config.uploads
        data = validate_upload(upload, limits.max_bytes, limits.logo_mimes)
        png = resize_image(data, limits.logo_max_width, limits.logo_max_height, "PNG")
        name = "logo-dark.png" if dark else "logo.png"
        rel = f"{self.config.paths.logo_dir.strip('/')}/{name}"
        record = backup_then_write(
            self.repo,
            PatchTarget.file(self.logo_dir / name, binary=True),
            png,
            actor_id=actor.actor_id,
            note="logo upload",
        )
        update_settings(self.repo, **({"logo_dark_path": rel} if dark else {"logo_path": rel}))
        self._bump(actor, "logo")
        audit("logo.upload", actor_id=actor.actor_id, path=rel, backup_id=record.id if record else None)
        return rel

    def detect_assets(self, actor: ActorContext) -> dict[str, bool]:
        """Web-relative path -> present on disk, for the icon set and the configured logos."""
        self.require_admin(actor)
        settings = load_settings(self.repo)
        icons_rel = self.config.paths.icons_dir.strip("/")
        found = {f"{icons_rel}/{name}": present for name, present in detect_assets(self.icons_dir).items()}
        for rel in (settings.logo_path, settings.logo_dark_path):
            if rel:
                found[rel.lstrip("/")] = self.config.paths.resolve(rel).is_file()
        return found

    def generate_favicons(
        self,
        actor: ActorContext,
        upload: UploadedFile,
        *,
        include_maskable: bool = False,
        theme_color: str = "",
    ) -> GeneratedIcons:
        """Build the icon set, store its head snippet and re-patch the head when enabled."""
        self.require_admin(actor)
        limits = self.config.uploads
        master = validate_upload(upload, limits.max_bytes, limits.icon_mimes)

        def write(name: str, data: bytes) -> None:
            backup_then_write(
                self.repo,
                PatchTarget.file(self.icons_dir / name, binary=True),
                data,
                actor_id=actor.actor_id,
                note=f"favicon {name}",
            )

        result = self.icons.generate(master, write, include_maskable=include_maskable, theme_color=theme_color)
        settings = update_settings(
            self.repo,
            favicon_html=result.snippet,
            favicon_root=self.config.paths.icons_dir,
        )
        version = self._bump(actor, "favicons")
        audit("favicons.generate", actor_id=actor.actor_id, files=result.files)
        if settings.header_override_enabled:
            self.head.apply(
                render_head_snippet(settings.head_meta, result.snippet), version, actor_id=actor.actor_id
            )
        return result

    # ----- head -----
    def patch_head(self, actor: ActorContext, meta: HeadMeta) -> WriteOutcome:
        self.require_admin(actor)
        settings = update_settings(self.repo, head_meta=meta)
        outcome = self.head.apply(
            render_head_snippet(meta, settings.favicon_html), settings.asset_version, actor_id=actor.actor_id
        )
        audit(
            "head.apply",
            actor_id=actor.actor_id,
            changed=outcome.changed,
            backup_id=outcome.backup.id if outcome.backup else None,
        )
        return outcome

    def preview_head(self, actor: ActorContext, meta: Optional[HeadMeta] = None) -> str:
        self.require_admin(actor)
        if meta is None:
            return self.head.diff()
        settings = load_settings(self.repo)
        return self.head.diff(render_head_snippet(meta, settings.favicon_html), settings.asset_version)

    def revert_head(self, actor: ActorContext, backup_id: Union[int, str] = LATEST) -> bool:
        self.require_admin(actor)
        ok = self.head.revert(backup_id, actor_id=actor.actor_id)
        audit("head.revert", actor_id=actor.actor_id, backup_id=backup_id, restored=ok)
        return ok

    # ----- menus -----
    def _menu_ids(self, ids: Optional[Iterable[Union[int, str]]]) -> list[int]:
        wanted = list(ids) if ids is not None else load_settings(self.repo).menu_target_ids
        if not wanted:
            raise InvalidArgument("No menu ids given and none saved in settings.")
        return [int(i) for i in wanted]

    def apply_menus(self, actor: ActorContext, ids: Optional[Iterable[Union[int, str]]] = None) -> BatchResult:
        self.require_admin(actor)
        result = self.menus.apply(self._menu_ids(ids), load_settings(self.repo), actor_id=actor.actor_id)
        audit(
            "menus.apply",
            actor_id=actor.actor_id,
            written=result.written,
            aborted=result.aborted,
            rows=[o.row_id for o in result.outcomes],
        )
        return result

    def preview_menus(self, actor: ActorContext, ids: Optional[Iterable[Union[int, str]]] = None) -> str:
        self.require_admin(actor)
        return self.menus.diff(self._menu_ids(ids), load_settings(self.repo))

    def discover_menus(self, actor: ActorContext, limit: int = 10) -> list[int]:
        self.require_admin(actor)
        return self.menus.discover_candidates(limit)

    def revert_menu(self, actor: ActorContext, row_id: int, backup_id: Union[int, str] = LATEST) -> bool:
        self.require_admin(actor)
        ok = self.menus.revert(row_id, backup_id, actor_id=actor.actor_id)
        audit("menus.revert", actor_id=actor.actor_id, row_id=row_id, backup_id=backup_id, restored=ok)
        return ok

    def preview_menu_rules(self, actor: ActorContext, rules_json: str) -> RulesPreview:
        self.require_admin(actor)
        return self.menus.preview_rules(self._rules(rules_json))

    def apply_menu_rules(self, actor: ActorContext, rules_json: str) -> BatchResult:
        self.require_admin(actor)
        result = self.menus.apply_rules(self._rules(rules_json), actor_id=actor.actor_id)
        audit(
            "menus.rules_apply",
            actor_id=actor.actor_id,
            written=result.written,
            aborted=result.aborted,
            rows=[o.row_id for o in result.outcomes],
        )
        return result

    def revert_menu_rules(self, actor: ActorContext, row_id: int, backup_id: Union[int, str] = LATEST) -> bool:
        self.require_admin(actor)
        ok = self.menus.revert_rules(row_id, backup_id, actor_id=actor.actor_id)
        audit("menus.rules_revert", actor_id=actor.actor_id, row_id=row_id, restored=ok)
        return ok

    @staticmethod
    def _rules(rules_json: str) -> list[MenuRule]:
        rules = parse_menu_rules(rules_json)
        if not rules:
            raise InvalidArgument("No menu rules given.")
        return rules

    # ----- site identity -----
    def list_sites(self, actor: ActorContext) -> list[SiteIdentity]:
        self.require_admin(actor)
        return self.sites.list_sites()

    def update_site(self, actor: ActorContext, site_id: int, site_name: str, site_url: Optional[str]) -> None:
        self.require_admin(actor)
        record = self.sites.update_site(site_id, site_name, site_url, actor_id=actor.actor_id)
        audit("site.update", actor_id=actor.actor_id, site_id=site_id, backup_id=record.id if record else None)

    def revert_site(self, actor: ActorContext, site_id: int, backup_id: Union[int, str] = LATEST) -> bool:
        self.require_admin(actor)
        ok = self.sites.revert(site_id, backup_id, actor_id=actor.actor_id)
        audit("site.revert", actor_id=actor.actor_id, site_id=site_id, restored=ok)
        return ok

    # ----- backups -----
    def list_backups(
        self, actor: ActorContext, target: Optional[str] = None, limit: int = 50
    ) -> list[BackupRecord]:
        self.require_admin(actor)
        return self.repo.list_backups(target, limit)

    def _target_for(self, record: BackupRecord) -> PatchTarget:
        kind, _, rest = record.target.partition(":")
        if kind == "file":
            return PatchTarget.file(Path(rest), markers=self.markers, binary=record.is_binary)
        if kind == "field":
            table, row_id, column = rest.rsplit(":", 2)
            return PatchTarget.field(table, int(row_id), column, markers=self.markers)
        if kind == "row":
            table, row_id = rest.rsplit(":", 1)
            columns = sorted(json.loads(record.content)) if not record.is_binary else SITE_COLUMNS
            return PatchTarget.row(table, int(row_id), columns)
        raise InvalidArgument(f"Unknown backup target {record.target!r}")

    def restore_backup(self, actor: ActorContext, backup_id: int) -> bool:
        """Put back one specific backup, whatever its target."""
        self.require_admin(actor)
        record = self.repo.get_backup(int(backup_id))
        if record is None:
            raise NotFound(f"Backup #{backup_id} not found.")
        ok = revert_to_backup(self.repo, self._target_for(record), record.id, actor_id=actor.actor_id)
        if ok and record.is_binary:
            self._bump(actor, "asset revert")
        audit("backup.restore", actor_id=actor.actor_id, backup_id=record.id, target=record.target, restored=ok)
        return ok

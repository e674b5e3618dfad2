"""Menu rows: the logo + social links block inside brand_html, and rule-based edits of menu fields."""

from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from rebrand.core.backups import (
    LATEST,
    BatchResult,
    PatchTarget,
    RowOutcome,
    RowStatus,
    backup_then_write_rows,
    resolve_backup,
    revert_to_backup,
)
from rebrand.core.errors import InvalidArgument
from rebrand.core.marker_patch import (
    DEFAULT_MARKERS,
    EncodingMode,
    MarkerPair,
    apply_patch,
    extract_patched_region,
    format_diff,
)
from rebrand.core.repository import BrandingRepository
from rebrand.core.settings import BrandSettings, with_cache_bust

logger = logging.getLogger(__name__)

PLATFORM_LABELS = {
    "x": "X (Twitter)",
    "facebook": "Facebook",
    "linkedin": "LinkedIn",
    "github": "GitHub",
    "youtube": "YouTube",
    "instagram": "Instagram",
}

# Placeholder glyphs; sites that ship Font Awesome can restyle via .rebrand-socials
PLATFORM_ICONS = {
    "x": "\U0001d54f",
    "facebook": "f",
    "linkedin": "in",
    "github": "\U0001f419",
    "youtube": "▶",
    "instagram": "◎",
}

DISCOVERY_HINTS = (
    "logo", "brand", "branding", "social",
    "twitter", "x.com", "facebook", "linkedin", "github", "youtube", "instagram",
    "navbar-brand", "site-logo",
    "fa-twitter", "fa-facebook", "fa-linkedin", "fa-github", "fa-youtube", "fa-instagram",
    "ReBrand START",
)


def label_for_platform(key: str) -> str:
    return PLATFORM_LABELS.get(key, key.capitalize())


def icon_for_platform(key: str) -> str:
    return PLATFORM_ICONS.get(key, "•")


def _unique_ids(ids: Iterable[Union[int, str]]) -> list[int]:
    out: list[int] = []
    for i in ids:
        n = int(i)
        if n not in out:
            out.append(n)
    return out


def build_injected_block(settings: BrandSettings) -> str:
    """HTML for the logo (with optional dark variant) and enabled social links, cache-busted."""
    e = lambda s: html.escape(s, quote=True)  # noqa: E731
    ver = settings.asset_version
    logo_url = "/" + with_cache_bust(settings.logo_path.lstrip("/"), ver)
    dark = (settings.logo_dark_path or "").strip()
    img = f'<img src="{e(logo_url)}" alt="Logo" class="img-fluid" style="max-height:48px">'

    lines = ['<div class="rebrand-header-block" style="display:flex;align-items:center;gap:1rem;">']
    lines.append('  <div class="rebrand-logo">')
    if dark:
        dark_url = "/" + with_cache_bust(dark.lstrip("/"), ver)
        lines.append("    <picture>")
        lines.append(f'      <source media="(prefers-color-scheme: dark)" srcset="{e(dark_url)}">')
        lines.append(f"      {img}")
        lines.append("    </picture>")
    else:
        lines.append(f"    {img}")
    lines.append("  </div>")
    lines.append('  <div class="rebrand-socials" style="display:flex; gap:.75rem; align-items:center;">')
    for key, link in settings.ordered_socials():
        lines.append(
            f'    <a href="{e(link.url)}" target="_blank" rel="noopener" '
            f'aria-label="{e(label_for_platform(key))}">{icon_for_platform(key)}</a>'
        )
    lines.append("  </div>")
    lines.append("</div>")
    return "\n".join(lines)


# Rule field -> menus column
RULE_COLUMNS = {
    "label": "menu",
    "link": "link",
    "enabled": "display",
    "parent": "parent",
    "sort": "sort",
}
KEY_COLUMN = "key"


class MenuRule(BaseModel):
    """One edit of an existing menu row, addressed by id or by its key slug."""

    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = Field(default=None, gt=0)
    key: Optional[str] = None
    label: Optional[str] = None
    link: Optional[str] = None
    enabled: Optional[bool] = None
    parent: Optional[int] = Field(default=None, ge=0)
    sort: Optional[int] = None

    @field_validator("link")
    @classmethod
    def _link(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.strip().lower().startswith(("javascript:", "data:", "vbscript:")):
            raise ValueError(f"link scheme not allowed: {v!r}")
        return v

    @model_validator(mode="after")
    def _addressed_and_not_empty(self) -> "MenuRule":
        if self.id is None and not (self.key or "").strip():
            raise ValueError("rule needs an id or a key")
        if not self.changes():
            raise ValueError("rule changes nothing")
        return self

    def changes(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name, column in RULE_COLUMNS.items():
            value = getattr(self, name)
            if value is not None:
                out[column] = int(value) if name == "enabled" else value
        return out


def parse_menu_rules(raw: str) -> list[MenuRule]:
    """Parse the rules JSON: a list of objects (a single object is accepted too)."""
    if not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidArgument(f"Menu rules JSON is invalid: {e}") from e
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise InvalidArgument("Menu rules must be a list of objects.")
    rules = []
    for n, item in enumerate(data, 1):
        if not isinstance(item, dict):
            raise InvalidArgument(f"Menu rule #{n} is malformed: not an object")
        try:
            rules.append(MenuRule.model_validate(item))
        except ValidationError as e:
            raise InvalidArgument(f"Menu rule #{n} is malformed: {e.errors()[0].get('msg')}") from e
    return rules


@dataclass
class RulesPreview:
    total_rules: int
    skipped: int = 0
    # row id -> column -> (current, wanted)
    diffs: dict[int, dict[str, tuple[Any, Any]]] = field(default_factory=dict)

    @property
    def will_change(self) -> int:
        return len(self.diffs)

    def format(self) -> str:
        lines = [f"Rules: {self.total_rules}, rows to change: {self.will_change}, skipped: {self.skipped}"]
        for row_id, changes in sorted(self.diffs.items()):
            lines.append(f"=== menus.id {row_id} ===")
            for column, (old, new) in changes.items():
                lines.append(f"  {column}: {old!r} -> {new!r}")
        return "\n".join(lines)


class MenuPatcher:
    """Row-collection patcher over the menus table. Only the marked region of brand_html is touched."""

    def __init__(
        self,
        repo: BrandingRepository,
        table: str = "menus",
        column: str = "brand_html",
        name_column: str = "menu_name",
        *,
        markers: MarkerPair = DEFAULT_MARKERS,
        encoding: EncodingMode = EncodingMode.PLAIN,
    ) -> None:
        self.repo = repo
        self.table = table
        self.column = column
        self.name_column = name_column
        self.markers = markers
        self.encoding = encoding

    def target(self, row_id: int) -> PatchTarget:
        return PatchTarget.field(
            self.table, row_id, self.column, encoding=self.encoding, markers=self.markers
        )

    def _fragment(self, settings: BrandSettings) -> str:
        return "\n" + build_injected_block(settings) + "\n"

    def apply(self, ids: Iterable[Union[int, str]], settings: BrandSettings, *, actor_id: int) -> BatchResult:
        """Patch every listed row; missing rows are skipped, the first failure stops the batch."""
        targets = [self.target(i) for i in _unique_ids(ids)]
        if not targets:
            return BatchResult()
        fragment = self._fragment(settings)
        result = backup_then_write_rows(
            self.repo,
            targets,
            lambda _target, current: apply_patch(current, fragment, self.markers, self.encoding).text,
            actor_id=actor_id,
            note="menu apply",
        )
        logger.info("Menu patch: %s", result.summary())
        return result

    def diff(self, ids: Iterable[Union[int, str]], settings: BrandSettings) -> str:
        """Per-row preview of the current block against the one apply() would write."""
        wanted = _unique_ids(ids)
        if not wanted:
            return "No targets provided."
        block = self._fragment(settings)
        out = []
        for row_id in wanted:
            row = self.repo.get_row(self.table, row_id)
            if row is None:
                out.append(f"=== {self.table}.id {row_id} (not found) ===")
                continue
            current = extract_patched_region(str(row.get(self.column) or ""), self.markers, self.encoding)
            out.append(f"=== {self.table}.id {row_id} ({row.get(self.name_column, '')}) ===")
            out.append(format_diff(current, block))
        return "\n".join(out)

    def discover_candidates(self, limit: int = 10) -> list[int]:
        """Ids of rows whose brand_html already looks like branding, in hint order."""
        rows = self.repo.iter_rows(self.table)
        found: list[int] = []
        for hint in DISCOVERY_HINTS:
            needle = hint.lower()
            for row in rows:
                rid = int(row.get("id", 0))
                if rid in found:
                    continue
                if needle in str(row.get(self.column) or "").lower():
                    found.append(rid)
                    if len(found) >= limit:
                        return found
        return found

    def revert(self, row_id: int, backup_id: Union[int, str] = LATEST, *, actor_id: int) -> bool:
        return revert_to_backup(self.repo, self.target(row_id), backup_id, actor_id=actor_id)

    def revert_many(self, ids: Iterable[Union[int, str]], *, actor_id: int) -> list[int]:
        """Revert each row to its latest backup; returns the ids that were restored."""
        return [i for i in _unique_ids(ids) if self.revert(i, actor_id=actor_id)]

    # ----- rule-based edits of menu rows -----
    def _plan(self, rules: list[MenuRule]) -> tuple[dict[int, dict[str, Any]], dict[int, int], list[MenuRule]]:
        """Merge rules per row id, in order. Returns (changes by id, rule count by id, unresolved rules)."""
        by_key: dict[str, int] = {}
        if any(r.id is None for r in rules):
            for row in self.repo.iter_rows(self.table):
                if row.get(KEY_COLUMN):
                    by_key.setdefault(str(row[KEY_COLUMN]), int(row["id"]))
        plan: dict[int, dict[str, Any]] = {}
        counts: dict[int, int] = {}
        unresolved: list[MenuRule] = []
        for rule in rules:
            row_id = rule.id if rule.id is not None else by_key.get((rule.key or "").strip())
            if row_id is None:
                unresolved.append(rule)
                continue
            plan.setdefault(row_id, {}).update(rule.changes())
            counts[row_id] = counts.get(row_id, 0) + 1
        return plan, counts, unresolved

    def preview_rules(self, rules: list[MenuRule]) -> RulesPreview:
        plan, counts, unresolved = self._plan(rules)
        preview = RulesPreview(total_rules=len(rules), skipped=len(unresolved))
        for row_id, wanted in plan.items():
            row = self.repo.get_row(self.table, row_id)
            if row is None:
                preview.skipped += counts[row_id]
                continue
            changes = {c: (row.get(c), v) for c, v in wanted.items() if row.get(c) != v}
            if changes:
                preview.diffs[row_id] = changes
        return preview

    def apply_rules(self, rules: list[MenuRule], *, actor_id: int) -> BatchResult:
        """Write rule changes row by row; each row's touched columns are backed up as one snapshot."""
        plan, _, unresolved = self._plan(rules)
        targets = [PatchTarget.row(self.table, row_id, sorted(wanted)) for row_id, wanted in plan.items()]

        def render(target: PatchTarget, current: str) -> str:
            values = json.loads(current)
            values.update(plan[target.row_id])
            return json.dumps(values, sort_keys=True)

        result = backup_then_write_rows(self.repo, targets, render, actor_id=actor_id, note="menu rules apply")
        for rule in unresolved:
            result.outcomes.append(
                RowOutcome(0, RowStatus.SKIPPED, f"no {self.table} row with key {rule.key!r}")
            )
        logger.info("Menu rules: %s", result.summary())
        return result

    def revert_rules(self, row_id: int, backup_id: Union[int, str] = LATEST, *, actor_id: int) -> bool:
        """Put back the columns a rules apply changed on one row."""
        key_target = PatchTarget.row(self.table, row_id, ())
        record = resolve_backup(self.repo, key_target, backup_id)
        if record is None or record.is_binary:
            return False
        columns = sorted(json.loads(record.content))
        return revert_to_backup(
            self.repo, PatchTarget.row(self.table, row_id, columns), record.id, actor_id=actor_id
        )

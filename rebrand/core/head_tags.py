"""Head include file: metadata snippet between ReBrand markers, cache-busted asset URLs."""

from __future__ import annotations

import html
import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from pydantic import BaseModel, field_validator

from rebrand.core.backups import (
    LATEST,
    PatchTarget,
    WriteOutcome,
    backup_then_write,
    read_target,
    revert_to_backup,
)
from rebrand.core.marker_patch import (
    DEFAULT_MARKERS,
    MarkerPair,
    apply_patch,
    extract_patched_region,
    format_diff,
)
from rebrand.core.repository import BrandingRepository

logger = logging.getLogger(__name__)

_SCRIPT_RE = re.compile(r"<\s*script\b[^>]*>.*?<\s*/\s*script\s*>", re.IGNORECASE | re.DOTALL)
_ASSET_EXT = r"(?:png|ico|svg|jpe?g|webmanifest)"
_VERSION_PARAM_RE = re.compile(r"[?&]v=", re.IGNORECASE)


def strip_scripts(markup: str) -> str:
    return _SCRIPT_RE.sub("", markup)


def _normalize_newlines(s: str) -> str:
    return s.replace("\r\n", "\n").replace("\r", "\n")


class HeadMeta(BaseModel):
    """Fields of the head form. extra_html is kept verbatim except for <script> blocks."""

    description: str = ""
    author: str = ""
    robots: str = ""
    theme_color: str = ""
    og_title: str = ""
    og_site_name: str = ""
    twitter_card: str = ""
    extra_html: str = ""

    @field_validator("author", "robots", "theme_color", "og_title", "og_site_name", "twitter_card")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("description")
    @classmethod
    def _description(cls, v: str) -> str:
        return _normalize_newlines(v or "").strip()

    @field_validator("extra_html")
    @classmethod
    def _extra(cls, v: str) -> str:
        return strip_scripts(_normalize_newlines(v or "")).strip()


def render_head_snippet(meta: HeadMeta, favicon_html: Optional[str] = None) -> str:
    """Build the managed head block: meta tags, favicon links, OpenGraph/Twitter, extra markup."""
    e = lambda s: html.escape(s, quote=True)  # noqa: E731
    lines = []
    if meta.description:
        lines.append(f'<meta name="description" content="{e(meta.description)}">')
    if meta.author:
        lines.append(f'<meta name="author" content="{e(meta.author)}">')
    if meta.robots:
        lines.append(f'<meta name="robots" content="{e(meta.robots)}">')
    if meta.theme_color:
        lines.append(f'<meta name="theme-color" content="{e(meta.theme_color)}">')
    if favicon_html:
        lines.append(_normalize_newlines(favicon_html).rstrip("\n"))
    if meta.og_title:
        lines.append(f'<meta property="og:title" content="{e(meta.og_title)}">')
    if meta.og_site_name:
        lines.append(f'<meta property="og:site_name" content="{e(meta.og_site_name)}">')
    if meta.description:
        lines.append(f'<meta property="og:description" content="{e(meta.description)}">')
    if meta.twitter_card:
        lines.append(f'<meta name="twitter:card" content="{e(meta.twitter_card)}">')
    if meta.extra_html:
        lines.append(meta.extra_html)
    return "\n".join(lines) + "\n" if lines else ""


def append_version_to_asset_urls(markup: str, version: int, prefixes: Iterable[str]) -> str:
    """Add ?v=<version> (or &v= after an existing query) to href/src/content URLs under the given prefixes.

    URLs whose query already carries a v= parameter are left alone.
    """
    v = int(version)
    for prefix in prefixes:
        rx = re.compile(
            r"((?:href|src|content)\s*=\s*[\"'])("
            + re.escape(prefix)
            + r"[^\"'?]*\."
            + _ASSET_EXT
            + r")(\?[^\"']*)?([\"'])",
            re.IGNORECASE,
        )

        def _sub(m: re.Match) -> str:
            query = m.group(3) or ""
            if _VERSION_PARAM_RE.search(query):
                return m.group(0)
            if not query:
                sep = "?"
            else:
                sep = "" if query.endswith(("?", "&")) else "&"
            return f"{m.group(1)}{m.group(2)}{query}{sep}v={v}{m.group(4)}"

        markup = rx.sub(_sub, markup)
    return markup


class HeadTagsPatcher:
    """Writes only between the markers of the head include file; everything else is preserved."""

    def __init__(
        self,
        repo: BrandingRepository,
        head_path: Union[str, Path],
        *,
        asset_prefixes: Sequence[str] = ("/favicon",),
        markers: MarkerPair = DEFAULT_MARKERS,
        anchor: Optional[str] = None,
    ) -> None:
        self.repo = repo
        self.target = PatchTarget.file(head_path, markers=markers)
        self.asset_prefixes = tuple(asset_prefixes)
        self.markers = markers
        self.anchor = anchor

    def scaffold(self) -> str:
        return (
            "<?php\n"
            "/**\n"
            " * head_tags.php: included in the <head> of every page.\n"
            " * Content between the ReBrand markers is managed from the rebrand admin.\n"
            " */\n"
            "?>\n"
            f"{self.markers.begin}\n{self.markers.end}\n"
        )

    def read_current(self) -> str:
        current = read_target(self.repo, self.target)
        return self.scaffold() if current is None else str(current)

    def prepare(self, snippet: str, asset_version: Optional[int] = None) -> str:
        """Region body for a snippet: own lines, trailing newline, cache-busted URLs."""
        body = _normalize_newlines(snippet).rstrip() + "\n"
        if asset_version is not None:
            body = append_version_to_asset_urls(body, asset_version, self.asset_prefixes)
        return "\n" + body

    def apply(self, snippet: str, asset_version: int, *, actor_id: int) -> WriteOutcome:
        current = self.read_current()
        result = apply_patch(current, self.prepare(snippet, asset_version), self.markers, anchor=self.anchor)
        if not result.changed and self.target.path.is_file():
            logger.info("Head tags unchanged, nothing written")
            return WriteOutcome(changed=False)
        record = backup_then_write(self.repo, self.target, result.text, actor_id=actor_id, note="head tags apply")
        return WriteOutcome(changed=True, backup=record)

    def current_block(self) -> str:
        return extract_patched_region(self.read_current(), self.markers)

    def diff(self, candidate: Optional[str] = None, asset_version: Optional[int] = None) -> str:
        """Current block against what apply() would write; current against itself when no candidate."""
        current = self.current_block()
        if candidate is None:
            return format_diff(current, current)
        return format_diff(current, self.prepare(candidate, asset_version))

    def revert(self, backup_id: Union[int, str] = LATEST, *, actor_id: int) -> bool:
        return revert_to_backup(self.repo, self.target, backup_id, actor_id=actor_id)

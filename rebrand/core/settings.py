"""Brand settings document: typed fields, stored as one JSON blob, replaced whole on save."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from rebrand.core.errors import InvalidArgument
from rebrand.core.head_tags import HeadMeta
from rebrand.core.repository import BrandingRepository

logger = logging.getLogger(__name__)

KNOWN_PLATFORMS = ("x", "facebook", "linkedin", "github", "youtube", "instagram")


def sanitize_http_url(url: Optional[str]) -> str:
    """Return the URL if it is http(s), "" if blank. Raises InvalidArgument otherwise."""
    u = (url or "").strip()
    if not u:
        return ""
    parts = urlparse(u)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise InvalidArgument(f"Only http/https URLs are allowed: {u!r}")
    return u


class SocialLink(BaseModel):
    enabled: bool = False
    url: str = ""
    order: int = 0

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        try:
            return sanitize_http_url(v)
        except InvalidArgument as e:
            raise ValueError(str(e)) from e


class BrandSettings(BaseModel):
    asset_version: int = Field(default=1, ge=1)
    logo_path: str = "users/images/rebrand/logo.png"
    logo_dark_path: Optional[str] = None
    favicon_root: str = "users/images/rebrand/icons"
    favicon_html: Optional[str] = None
    social_links: dict[str, SocialLink] = Field(default_factory=dict)
    menu_target_ids: list[int] = Field(default_factory=list)
    header_override_enabled: bool = True
    head_meta: HeadMeta = Field(default_factory=HeadMeta)

    def ordered_socials(self) -> list[tuple[str, SocialLink]]:
        """Enabled links with a URL, by order then key."""
        items = [(k, v) for k, v in self.social_links.items() if v.enabled and v.url]
        return sorted(items, key=lambda kv: (kv[1].order, kv[0]))


def parse_social_links(raw: str) -> dict[str, SocialLink]:
    """Parse the social links JSON object posted from the settings form."""
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidArgument(f"Social links JSON is invalid: {e}") from e
    if not isinstance(data, dict):
        raise InvalidArgument("Social links JSON must be an object keyed by platform.")
    try:
        return {str(k): SocialLink.model_validate(v) for k, v in data.items()}
    except ValidationError as e:
        raise InvalidArgument(f"Invalid social link: {e.errors()[0].get('msg')}") from e


def parse_menu_ids(raw: str) -> list[int]:
    """Accept a JSON list or a comma separated string of positive ids; duplicates dropped, order kept."""
    raw = raw.strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"Menu ids JSON is invalid: {e}") from e
        if not isinstance(values, list):
            raise InvalidArgument("Menu ids must be a list.")
    else:
        values = [x.strip() for x in raw.replace(";", ",").split(",") if x.strip()]
    out: list[int] = []
    for v in values:
        try:
            i = int(v)
        except (TypeError, ValueError) as e:
            raise InvalidArgument(f"Menu id is not a number: {v!r}") from e
        if i <= 0:
            raise InvalidArgument(f"Menu id must be positive: {i}")
        if i not in out:
            out.append(i)
    return out


def load_settings(repo: BrandingRepository) -> BrandSettings:
    """Stored settings, or defaults when nothing was saved yet."""
    raw = repo.get_settings()
    if not raw:
        return BrandSettings()
    try:
        return BrandSettings.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Stored brand settings are invalid, using defaults: %s", e)
        return BrandSettings()


def save_settings(repo: BrandingRepository, settings: BrandSettings) -> None:
    repo.save_settings(settings.model_dump_json())


def update_settings(repo: BrandingRepository, **patch: Any) -> BrandSettings:
    """Merge patch into the stored document and save it whole."""
    current = load_settings(repo)
    data = current.model_dump()
    data.update(patch)
    try:
        updated = BrandSettings.model_validate(data)
    except ValidationError as e:
        raise InvalidArgument(f"Invalid settings: {e.errors()[0].get('msg')}") from e
    save_settings(repo, updated)
    return updated


def bump_asset_version(repo: BrandingRepository) -> int:
    """Read-modify-write increment. Not atomic; overlapping bumps can collapse into one."""
    current = load_settings(repo)
    new = max(1, current.asset_version) + 1
    save_settings(repo, current.model_copy(update={"asset_version": new}))
    return new


def with_cache_bust(url: str, version: int) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}v={int(version)}"

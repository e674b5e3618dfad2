"""Tests for the brand settings document."""

import pytest

from rebrand.core.errors import InvalidArgument
from rebrand.core.settings import (
    BrandSettings,
    SocialLink,
    bump_asset_version,
    load_settings,
    parse_menu_ids,
    parse_social_links,
    sanitize_http_url,
    update_settings,
    with_cache_bust,
)


def test_defaults_when_nothing_stored(repo):
    s = load_settings(repo)
    assert s.asset_version == 1
    assert s.logo_path == "users/images/rebrand/logo.png"
    assert s.social_links == {}


def test_invalid_stored_document_falls_back(repo, caplog):
    repo.save_settings("{not json")
    assert load_settings(repo).asset_version == 1
    assert "invalid" in caplog.text.lower()


def test_bump_increments_by_one(repo):
    assert bump_asset_version(repo) == 2
    assert bump_asset_version(repo) == 3
    assert load_settings(repo).asset_version == 3


def test_update_replaces_whole_document(repo):
    update_settings(repo, menu_target_ids=[3, 4])
    s = update_settings(repo, logo_dark_path="users/images/rebrand/logo-dark.png")
    assert s.menu_target_ids == [3, 4]
    assert load_settings(repo).logo_dark_path == "users/images/rebrand/logo-dark.png"


def test_update_rejects_bad_values(repo):
    with pytest.raises(InvalidArgument):
        update_settings(repo, asset_version=0)


def test_sanitize_http_url():
    assert sanitize_http_url("  https://example.com/x ") == "https://example.com/x"
    assert sanitize_http_url("") == ""
    with pytest.raises(InvalidArgument):
        sanitize_http_url("javascript:alert(1)")
    with pytest.raises(InvalidArgument):
        sanitize_http_url("ftp://example.com")


def test_parse_social_links():
    links = parse_social_links('{"github": {"enabled": true, "url": "https://github.com/o", "order": 2}}')
    assert links["github"].enabled is True
    assert links["github"].order == 2


@pytest.mark.parametrize(
    "raw",
    ['[1, 2]', '{"x": {"url": "javascript:void(0)"}}', "{broken"],
)
def test_parse_social_links_rejects(raw):
    with pytest.raises(InvalidArgument):
        parse_social_links(raw)


def test_ordered_socials_skips_disabled_and_empty():
    s = BrandSettings(
        social_links={
            "x": SocialLink(enabled=True, url="https://x.com/a", order=2),
            "github": SocialLink(enabled=True, url="https://github.com/a", order=1),
            "youtube": SocialLink(enabled=False, url="https://youtube.com/a", order=0),
            "facebook": SocialLink(enabled=True, url="", order=0),
        }
    )
    assert [k for k, _ in s.ordered_socials()] == ["github", "x"]


def test_parse_menu_ids():
    assert parse_menu_ids("3, 4;3, 7") == [3, 4, 7]
    assert parse_menu_ids("[5, 6]") == [5, 6]
    assert parse_menu_ids("  ") == []
    with pytest.raises(InvalidArgument):
        parse_menu_ids("3, abc")
    with pytest.raises(InvalidArgument):
        parse_menu_ids("0")


def test_with_cache_bust():
    assert with_cache_bust("/logo.png", 3) == "/logo.png?v=3"
    assert with_cache_bust("/logo.png?x=1", 3) == "/logo.png?x=1&v=3"

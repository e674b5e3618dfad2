"""Tests for site identity edits."""

import pytest

from rebrand.core.errors import InvalidArgument, NotFound
from rebrand.core.site_settings import SiteSettings


@pytest.fixture
def sites(repo):
    repo.insert_row("settings", 1, {"site_name": "Old", "site_url": "https://old.example", "theme": "dark"})
    repo.insert_row("settings", 2, {"site_name": "Two", "site_url": None})
    return SiteSettings(repo)


def test_list_and_get(sites):
    assert [s.id for s in sites.list_sites()] == [1, 2]
    assert sites.get_site(2).site_url is None
    assert sites.get_site(9) is None


def test_update_touches_only_identity(sites, repo):
    rec = sites.update_site(1, "  New Name ", "https://new.example", actor_id=1)
    row = repo.get_row("settings", 1)
    assert row["site_name"] == "New Name"
    assert row["site_url"] == "https://new.example"
    assert row["theme"] == "dark"
    assert rec.target == "row:settings:1"
    assert '"Old"' in rec.content


def test_empty_url_stored_as_null(sites, repo):
    sites.update_site(1, "X", "", actor_id=1)
    assert repo.get_row("settings", 1)["site_url"] is None


@pytest.mark.parametrize("name", ["", "   ", "x" * 101])
def test_bad_name(sites, name):
    with pytest.raises(InvalidArgument):
        sites.update_site(1, name, None, actor_id=1)


def test_bad_url(sites, repo):
    with pytest.raises(InvalidArgument):
        sites.update_site(1, "ok", "javascript:alert(1)", actor_id=1)
    assert repo.backups == []


def test_unknown_site(sites):
    with pytest.raises(NotFound):
        sites.update_site(7, "ok", None, actor_id=1)


def test_revert(sites, repo):
    assert sites.revert(1, actor_id=1) is False
    sites.update_site(1, "New", None, actor_id=1)
    assert sites.revert(1, actor_id=1) is True
    row = repo.get_row("settings", 1)
    assert row["site_name"] == "Old" and row["site_url"] == "https://old.example"

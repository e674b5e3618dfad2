"""Tests for the dashboard routes."""

import io

import pytest

pytest.importorskip("flask")

from unittest.mock import MagicMock

from rebrand.core.service import RebrandService


@pytest.fixture
def client():
    from rebrand.dashboard.app import app

    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def service(repo, config):
    return RebrandService(repo, config)


@pytest.fixture
def auth_mock(monkeypatch, service):
    """Bypass auth and CSRF: setup done, current user is #1; the service runs on the in-memory repo."""
    monkeypatch.setattr("rebrand.dashboard.app.setup_done", lambda r: True)
    monkeypatch.setattr(
        "rebrand.dashboard.app.get_current_user",
        lambda r: {"id": 1, "login": "admin", "role": "owner", "display_name": "admin"},
    )
    monkeypatch.setattr("rebrand.dashboard.app.get_redis", lambda: MagicMock())
    monkeypatch.setattr("rebrand.dashboard.app.check_csrf", lambda token: True)
    monkeypatch.setattr("rebrand.dashboard.app.get_service", lambda: service)


def _flashes(client):
    with client.session_transaction() as sess:
        return [msg for _, msg in sess.get("_flashes", [])]


def test_health_no_auth(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json() == {"ok": True}


def test_redirects_to_setup(client, monkeypatch):
    monkeypatch.setattr("rebrand.dashboard.app.get_redis", lambda: MagicMock())
    monkeypatch.setattr("rebrand.dashboard.app.setup_done", lambda r: False)
    r = client.get("/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/setup")


def test_redirects_to_login(client, monkeypatch):
    monkeypatch.setattr("rebrand.dashboard.app.get_redis", lambda: MagicMock())
    monkeypatch.setattr("rebrand.dashboard.app.setup_done", lambda r: True)
    monkeypatch.setattr("rebrand.dashboard.app.get_current_user", lambda r: None)
    r = client.get("/menus")
    assert r.status_code == 302
    assert "/login" in r.headers["Location"]


def test_post_without_csrf_rejected(client, monkeypatch, repo):
    monkeypatch.setattr("rebrand.dashboard.app.get_redis", lambda: MagicMock())
    monkeypatch.setattr("rebrand.dashboard.app.setup_done", lambda r: True)
    r = client.post("/save-settings", data={"menu_ids": "1"})
    assert r.status_code == 400
    assert repo.settings_raw is None


def test_post_with_session_csrf_token(client, auth_mock, monkeypatch):
    from rebrand.dashboard.auth import check_csrf

    monkeypatch.setattr("rebrand.dashboard.app.check_csrf", check_csrf)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "tok"
    assert client.post("/save-settings", data={"menu_ids": "1", "csrf_token": "bad"}).status_code == 400
    assert client.post("/save-settings", data={"menu_ids": "1", "csrf_token": "tok"}).status_code == 302


def test_pages_render(client, auth_mock):
    for path in ("/", "/assets", "/head", "/menus", "/site", "/backups"):
        r = client.get(path)
        assert r.status_code == 200, path
        assert b"ReBrand admin" in r.data


def test_non_admin_gets_403(client, auth_mock, monkeypatch):
    monkeypatch.setattr(
        "rebrand.dashboard.app.get_current_user",
        lambda r: {"id": 2, "login": "bob", "role": "viewer", "display_name": "bob"},
    )
    r = client.get("/")
    assert r.status_code == 403


def test_save_settings_flashes(client, auth_mock, repo):
    r = client.post("/save-settings", data={"menu_ids": "3, 4", "social_links": ""})
    assert r.status_code == 302
    assert "Settings saved." in _flashes(client)
    assert '"menu_target_ids":[3,4]' in repo.settings_raw


def test_save_settings_error_flashes(client, auth_mock, repo):
    r = client.post("/save-settings", data={"menu_ids": "x"})
    assert r.status_code == 302
    assert any("not a number" in m for m in _flashes(client))
    assert repo.settings_raw is None


def test_export_settings(client, auth_mock):
    r = client.get("/api/settings")
    assert r.status_code == 200
    assert r.headers["Content-Disposition"].startswith("attachment")
    assert r.get_json()["asset_version"] == 1


def test_upload_logo(client, auth_mock, png_factory, config):
    from pathlib import Path

    data = {"logo": (io.BytesIO(png_factory(20, 20)), "logo.png")}
    r = client.post("/upload-logo", data=data, content_type="multipart/form-data")
    assert r.status_code == 302
    assert (Path(config.paths.web_root) / "users/images/rebrand/logo.png").is_file()
    assert any("Logo saved" in m for m in _flashes(client))


def test_upload_rejected_type(client, auth_mock):
    data = {"logo": (io.BytesIO(b"GIF89a not really"), "logo.gif")}
    r = client.post("/upload-logo", data=data, content_type="multipart/form-data")
    assert r.status_code == 302
    assert any("allowed" in m for m in _flashes(client))


def test_head_preview_does_not_write(client, auth_mock, config):
    from pathlib import Path

    r = client.post("/patch-head", data={"description": "Hello", "action": "preview"})
    assert r.status_code == 200
    assert b"+ &lt;meta name=&#34;description&#34;" in r.data
    assert not (Path(config.paths.web_root) / config.paths.head_file).exists()


def test_head_apply(client, auth_mock, config):
    from pathlib import Path

    r = client.post("/patch-head", data={"description": "Hello", "action": "apply"})
    assert r.status_code == 302
    text = (Path(config.paths.web_root) / config.paths.head_file).read_text()
    assert '<meta name="description" content="Hello">' in text


def test_menus_apply_summary(client, auth_mock, repo):
    repo.insert_row("menus", 1, {"menu_name": "main", "brand_html": ""})
    r = client.post("/menus", data={"ids": "1, 2", "action": "apply"})
    assert r.status_code == 302
    msgs = _flashes(client)
    assert "Updated rows: 1 of 2" in msgs
    assert any("menu 2: skipped" in m for m in msgs)


def test_site_update_and_revert(client, auth_mock, repo):
    repo.insert_row("settings", 1, {"site_name": "Old", "site_url": None})
    client.post("/site", data={"site_id": "1", "site_name": "New", "site_url": "", "action": "save"})
    assert repo.get_row("settings", 1)["site_name"] == "New"
    client.post("/site", data={"site_id": "1", "action": "revert"})
    assert repo.get_row("settings", 1)["site_name"] == "Old"


def test_restore_unknown_backup(client, auth_mock):
    r = client.post("/backups/restore", data={"backup_id": "42"})
    assert r.status_code == 302
    assert any("not found" in m for m in _flashes(client))


def test_assets_page_lists_files(client, auth_mock):
    r = client.get("/assets")
    assert r.status_code == 200
    assert b"users/images/rebrand/icons/favicon.ico" in r.data
    assert b"missing" in r.data


def test_menu_rules_preview_and_apply(client, auth_mock, repo):
    repo.insert_row("menus", 1, {"menu": "Home", "link": "/", "display": 1, "parent": 0, "sort": 0, "key": "home"})
    rules = '[{"id": 1, "label": "Start"}]'
    r = client.post("/menus", data={"rules": rules, "action": "rules_preview"})
    assert r.status_code == 200
    assert b"rows to change: 1" in r.data
    assert repo.get_row("menus", 1)["menu"] == "Home"

    r = client.post("/menus", data={"rules": rules, "action": "rules_apply"})
    assert r.status_code == 302
    assert "Updated rows: 1 of 1" in _flashes(client)
    assert repo.get_row("menus", 1)["menu"] == "Start"

    client.post("/menus", data={"ids": "1", "action": "rules_revert"})
    assert repo.get_row("menus", 1)["menu"] == "Home"


def test_malformed_rules_flash_error(client, auth_mock):
    r = client.post("/menus", data={"rules": '[{"label": "x"}]', "action": "rules_apply"})
    assert r.status_code == 302
    assert any("malformed" in m for m in _flashes(client))


def test_service_repository_closed_after_request(monkeypatch):
    from rebrand.dashboard import app as app_module

    repo = MagicMock()
    from_url = MagicMock(return_value=repo)
    monkeypatch.setattr(app_module.RedisRepository, "from_url", from_url)
    with app_module.app.app_context():
        first = app_module.get_service()
        assert app_module.get_service() is first
        repo.close.assert_not_called()
    from_url.assert_called_once()
    repo.close.assert_called_once()

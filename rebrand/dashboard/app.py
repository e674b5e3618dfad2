"""Web dashboard for branding: settings, logo and favicons, head tags, menus, site identity, backups."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from flask import (
    Flask,
    Response,
    abort,
    flash,
    g,
    jsonify,
    make_response,
    redirect,
    render_template_string,
    request,
    url_for,
)

from rebrand.config.loader import get_config
from rebrand.core.errors import InvalidArgument, PermissionDenied, RebrandError, UpstreamUnavailable
from rebrand.core.head_tags import HeadMeta
from rebrand.core.logging_config import setup_logging
from rebrand.core.repository import RedisRepository
from rebrand.core.service import ActorContext, RebrandService
from rebrand.core.settings import parse_menu_ids
from rebrand.core.uploads import UploadedFile
from rebrand.dashboard.auth import (
    CSRF_FIELD,
    SESSION_COOKIE_NAME,
    SESSION_TTL,
    check_csrf,
    create_session,
    create_user,
    delete_session,
    get_csrf_token,
    get_current_user,
    get_redis,
    setup_done,
    verify_user,
)
from rebrand.security.audit import audit

logger = logging.getLogger(__name__)

app = Flask(__name__)
_secret_key = os.getenv("SECRET_KEY", "change-me-in-production")
app.secret_key = _secret_key
if _secret_key == "change-me-in-production":
    logger.warning("SECRET_KEY not set; using default. Set SECRET_KEY in production.")

_STYLE = """
  <style>
    :root { --bg:#0c0c0f; --card:#16161c; --border:#2a2a33; --fg:#e8e8ee; --muted:#8a8a99; --accent:#22c55e; --err:#ef4444; }
    body { background:var(--bg); color:var(--fg); font-family:system-ui,sans-serif; margin:0; }
    .nav { display:flex; gap:1rem; padding:0.75rem 1.5rem; border-bottom:1px solid var(--border); align-items:center; }
    .nav a { color:var(--muted); text-decoration:none; } .nav a.active { color:var(--fg); font-weight:600; }
    .container { max-width:960px; margin:0 auto; padding:1.5rem; }
    .card { background:var(--card); border:1px solid var(--border); border-radius:8px; padding:1rem; margin-bottom:1rem; }
    label { display:block; color:var(--muted); font-size:0.9rem; margin-top:0.5rem; }
    input[type=text], input[type=url], textarea { width:100%; box-sizing:border-box; background:var(--bg); color:var(--fg); border:1px solid var(--border); border-radius:4px; padding:0.4rem; }
    textarea { min-height:6rem; font-family:monospace; }
    .btn { background:var(--accent); color:#000; border:0; border-radius:4px; padding:0.45rem 0.9rem; cursor:pointer; margin-top:0.75rem; }
    .btn.secondary { background:var(--border); color:var(--fg); }
    .flash { padding:0.6rem 0.9rem; border-radius:4px; margin-bottom:0.75rem; }
    .flash.success { background:#14532d; } .flash.error { background:#7f1d1d; }
    pre { background:var(--bg); border:1px solid var(--border); padding:0.75rem; overflow:auto; white-space:pre-wrap; }
    table { width:100%; border-collapse:collapse; } td, th { border-bottom:1px solid var(--border); padding:0.35rem; text-align:left; }
  </style>
"""

_FLASHES = """
    {% with messages = get_flashed_messages(with_categories=true) %}
      {% if messages %}
        {% for cat, msg in messages %}
          <div class="flash {{ cat }}">{{ msg }}</div>
        {% endfor %}
      {% endif %}
    {% endwith %}
"""

INDEX_HTML = (
    """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>ReBrand admin</title>
"""
    + _STYLE
    + """
</head>
<body>
  <nav class="nav">
    <a href="{{ url_for('index') }}" class="{{ 'active' if section == 'settings' else '' }}">Settings</a>
    <a href="{{ url_for('assets_page') }}" class="{{ 'active' if section == 'assets' else '' }}">Logo &amp; icons</a>
    <a href="{{ url_for('head_page') }}" class="{{ 'active' if section == 'head' else '' }}">Head tags</a>
    <a href="{{ url_for('menus_page') }}" class="{{ 'active' if section == 'menus' else '' }}">Menus</a>
    <a href="{{ url_for('site_page') }}" class="{{ 'active' if section == 'site' else '' }}">Site</a>
    <a href="{{ url_for('backups_page') }}" class="{{ 'active' if section == 'backups' else '' }}">Backups</a>
    {% if current_user %}
    <span style="margin-left:auto;color:var(--muted);font-size:0.9rem">{{ current_user.display_name }} (#{{ current_user.id }})</span>
    <a href="{{ url_for('logout') }}">Log out</a>
    {% endif %}
  </nav>
  <div class="container">
"""
    + _FLASHES
    + """
    {% block content %}{% endblock %}
  </div>
</body>
</html>
"""
)

LOGIN_HTML = (
    """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>Log in: ReBrand</title>
"""
    + _STYLE
    + """
</head>
<body>
  <div class="container" style="max-width:360px;padding-top:4rem">
    <h1>Log in</h1>
"""
    + _FLASHES
    + """
    <form method="post" action="{{ url_for('login') }}">
      <input type="hidden" name="next" value="{{ next or '' }}">
      <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
      <div class="card">
        <label for="login">Login</label>
        <input id="login" name="login" type="text" required autocomplete="username">
        <label for="password">Password</label>
        <input id="password" name="password" type="password" required autocomplete="current-password">
      </div>
      <button type="submit" class="btn">Log in</button>
    </form>
  </div>
</body>
</html>
"""
)

SETUP_HTML = (
    """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>First-time setup: ReBrand</title>
"""
    + _STYLE
    + """
</head>
<body>
  <div class="container" style="max-width:400px;padding-top:3rem">
    <h1>First-time setup</h1>
    <p>Create the administrator account. It becomes user #1, the only account allowed to change branding.</p>
"""
    + _FLASHES
    + """
    <form method="post" action="{{ url_for('setup') }}">
      <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
      <div class="card">
        <label for="login">Login</label>
        <input id="login" name="login" type="text" required minlength="2">
        <label for="password">Password</label>
        <input id="password" name="password" type="password" required minlength="6">
        <label for="password2">Confirm password</label>
        <input id="password2" name="password2" type="password" required>
      </div>
      <button type="submit" class="btn">Create and log in</button>
    </form>
  </div>
</body>
</html>
"""
)

_SETTINGS_BODY = """
<h1>Brand settings</h1>
<form method="post" action="{{ url_for('save_settings') }}" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <p>Asset version: <b>{{ settings.asset_version }}</b>. Logo: <code>{{ settings.logo_path }}</code>
  {% if settings.logo_dark_path %}, dark logo: <code>{{ settings.logo_dark_path }}</code>{% endif %}</p>
  <label for="social_links">Social links (JSON object: platform -> {enabled, url, order})</label>
  <textarea id="social_links" name="social_links">{{ social_json }}</textarea>
  <label for="menu_ids">Menu ids to patch (comma separated or JSON list)</label>
  <input id="menu_ids" name="menu_ids" type="text" value="{{ settings.menu_target_ids | join(', ') }}">
  <label><input type="checkbox" name="header_override_enabled" value="1" {{ 'checked' if settings.header_override_enabled else '' }}>
    Re-patch head tags when favicons are regenerated</label>
  <button type="submit" class="btn">Save</button>
  <a href="{{ url_for('api_settings') }}" class="btn secondary" style="text-decoration:none;display:inline-block">Export JSON</a>
</form>
"""

_ASSETS_BODY = """
<h1>Logo &amp; icons</h1>
<form method="post" action="{{ url_for('upload_logo') }}" enctype="multipart/form-data" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <h3>Logo</h3>
  <p>PNG, JPEG or WebP, up to {{ max_mb }} MB. Resized to fit {{ config.uploads.logo_max_width }}x{{ config.uploads.logo_max_height }}.</p>
  <input type="file" name="logo" accept="image/png,image/jpeg,image/webp" required>
  <label><input type="checkbox" name="dark" value="1"> Dark-mode variant</label>
  <button type="submit" class="btn">Upload logo</button>
</form>
<form method="post" action="{{ url_for('generate_favicons') }}" enctype="multipart/form-data" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <h3>Favicons</h3>
  <p>Master PNG, square, at least 64x64 (1024x1024 recommended).</p>
  <input type="file" name="master" accept="image/png" required>
  <label><input type="checkbox" name="maskable" value="1"> Also generate a maskable 512x512 icon</label>
  <label for="theme_color">Theme color (optional)</label>
  <input id="theme_color" name="theme_color" type="text" placeholder="#0c0c0f">
  <button type="submit" class="btn">Generate favicon set</button>
</form>
<div class="card">
  <h3>Files on disk</h3>
  <table>
    {% for path, present in assets.items() %}
    <tr><td><code>{{ path }}</code></td><td>{{ "present" if present else "missing" }}</td></tr>
    {% endfor %}
  </table>
</div>
{% if settings.favicon_html %}
<div class="card"><h3>Current favicon snippet</h3><pre>{{ settings.favicon_html }}</pre></div>
{% endif %}
"""

_HEAD_BODY = """
<h1>Head tags</h1>
<form method="post" action="{{ url_for('patch_head') }}" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <label for="description">Description</label>
  <textarea id="description" name="description">{{ meta.description }}</textarea>
  {% for name, label in [('author', 'Author'), ('robots', 'Robots'), ('theme_color', 'Theme color'),
                         ('og_title', 'OpenGraph title'), ('og_site_name', 'OpenGraph site name'),
                         ('twitter_card', 'Twitter card')] %}
  <label for="{{ name }}">{{ label }}</label>
  <input id="{{ name }}" name="{{ name }}" type="text" value="{{ meta[name] }}">
  {% endfor %}
  <label for="extra_html">Extra head HTML (script tags are removed)</label>
  <textarea id="extra_html" name="extra_html">{{ meta.extra_html }}</textarea>
  <button type="submit" name="action" value="apply" class="btn">Write head tags</button>
  <button type="submit" name="action" value="preview" class="btn secondary">Preview</button>
</form>
{% if preview %}<div class="card"><h3>Preview</h3><pre>{{ preview }}</pre></div>{% endif %}
<div class="card">
  <h3>Current managed block</h3>
  <pre>{{ current_block or '(empty)' }}</pre>
  <form method="post" action="{{ url_for('revert_head') }}">
    <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
    <button type="submit" class="btn secondary">Revert to previous version</button>
  </form>
</div>
"""

_MENUS_BODY = """
<h1>Menus</h1>
<form method="post" action="{{ url_for('menus_action') }}" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <label for="ids">Menu ids (empty uses the saved list: {{ settings.menu_target_ids | join(', ') or 'none' }})</label>
  <input id="ids" name="ids" type="text" value="{{ ids }}">
  <button type="submit" name="action" value="apply" class="btn">Apply branding block</button>
  <button type="submit" name="action" value="preview" class="btn secondary">Preview</button>
  <button type="submit" name="action" value="discover" class="btn secondary">Discover candidates</button>
  <button type="submit" name="action" value="revert" class="btn secondary">Revert listed rows</button>
</form>
<form method="post" action="{{ url_for('menus_action') }}" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <h3>Menu item rules</h3>
  <label for="rules">JSON list of rules: {"id": 3} or {"key": "home"} plus any of label, link, enabled, parent, sort</label>
  <textarea id="rules" name="rules">{{ rules }}</textarea>
  <label for="rule_ids">Row ids to revert (comma separated)</label>
  <input id="rule_ids" name="ids" type="text" value="">
  <button type="submit" name="action" value="rules_apply" class="btn">Apply rules</button>
  <button type="submit" name="action" value="rules_preview" class="btn secondary">Preview rules</button>
  <button type="submit" name="action" value="rules_revert" class="btn secondary">Revert rule changes on listed rows</button>
</form>
{% if preview %}<div class="card"><h3>Preview</h3><pre>{{ preview }}</pre></div>{% endif %}
"""

_SITE_BODY = """
<h1>Site identity</h1>
{% for site in sites %}
<form method="post" action="{{ url_for('update_site') }}" class="card">
  <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
  <input type="hidden" name="site_id" value="{{ site.id }}">
  <h3>settings.id {{ site.id }}</h3>
  <label>Site name</label>
  <input name="site_name" type="text" maxlength="100" value="{{ site.site_name }}">
  <label>Site URL</label>
  <input name="site_url" type="url" value="{{ site.site_url or '' }}">
  <button type="submit" name="action" value="save" class="btn">Save</button>
  <button type="submit" name="action" value="revert" class="btn secondary">Revert last change</button>
</form>
{% else %}
<p>No site rows found.</p>
{% endfor %}
"""

_BACKUPS_BODY = """
<h1>Backups</h1>
<div class="card">
<table>
  <tr><th>#</th><th>Target</th><th>Note</th><th>Actor</th><th>Created</th><th>Size</th><th></th></tr>
  {% for b in backups %}
  <tr>
    <td>{{ b.id }}</td><td><code>{{ b.target }}</code></td><td>{{ b.note }}</td><td>{{ b.actor_id }}</td>
    <td>{{ b.created_at.strftime('%Y-%m-%d %H:%M:%S') }}</td><td>{{ b.size }}</td>
    <td>
      <form method="post" action="{{ url_for('restore_backup') }}">
        <input type="hidden" name="csrf_token" value="{{ csrf_token() }}">
        <input type="hidden" name="backup_id" value="{{ b.id }}">
        <button type="submit" class="btn secondary" style="margin:0">Restore</button>
      </form>
    </td>
  </tr>
  {% else %}
  <tr><td colspan="7">No backups yet.</td></tr>
  {% endfor %}
</table>
</div>
"""


def get_service() -> RebrandService:
    """Service for this request; its Redis repository is closed when the app context ends."""
    service = g.get("rebrand_service")
    if service is None:
        config = get_config()
        service = RebrandService(RedisRepository.from_url(config.redis.url), config)
        g.rebrand_service = service
    return service


@app.teardown_appcontext
def _close_repository(exc):
    service = g.pop("rebrand_service", None)
    if service is not None:
        service.repo.close()


def _page(body: str, section: str, **ctx) -> str:
    return render_template_string(
        INDEX_HTML.replace("{% block content %}{% endblock %}", body), section=section, **ctx
    )


def _actor() -> ActorContext:
    user = g.get("current_user")
    if not user:
        abort(401)
    return ActorContext(actor_id=int(user["id"]), login=user["login"])


app.jinja_env.globals["csrf_token"] = get_csrf_token


@app.context_processor
def _inject_current_user():
    return {"current_user": g.get("current_user")}


@app.before_request
def _require_auth():
    """Redirect to setup or login when needed; reject POSTs without a valid CSRF token."""
    if request.method == "POST" and get_config().security.csrf_enabled:
        if not check_csrf(request.form.get(CSRF_FIELD)):
            abort(400, description="CSRF token missing or invalid.")
    path = request.path
    if path in ("/login", "/logout", "/api/health"):
        return None
    r = get_redis()
    if not setup_done(r):
        if path == "/setup":
            return None
        return redirect(url_for("setup"))
    user = get_current_user(r)
    if user:
        g.current_user = user
        return None
    if path == "/setup":
        return None
    return redirect(url_for("login", next=request.url))


@app.errorhandler(RebrandError)
def _rebrand_error(e: RebrandError):
    """Errors raised outside a route's own try block, e.g. while rendering a page."""
    logger.warning("Unhandled rebrand error on %s: %s", request.path, e)
    status = 400
    if isinstance(e, PermissionDenied):
        status = 403
    elif isinstance(e, UpstreamUnavailable):
        status = 503
    flash(str(e), "error")
    return _page("<h1>Error</h1>", "error"), status


# ----- Auth routes -----
@app.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "GET":
        return render_template_string(LOGIN_HTML, next=request.args.get("next"))
    login_name = (request.form.get("login") or "").strip()
    password = request.form.get("password") or ""
    next_url = request.form.get("next") or url_for("index")
    if not next_url.startswith("/") or next_url.startswith("//"):
        next_url = url_for("index")
    if not login_name or not password:
        flash("Enter login and password.", "error")
        return redirect(url_for("login", next=next_url))
    r = get_redis()
    user = verify_user(r, login_name, password)
    if not user:
        audit("login_failed", login=login_name)
        flash("Wrong login or password.", "error")
        return redirect(url_for("login", next=next_url))
    sid = create_session(r, login_name)
    resp = make_response(redirect(next_url))
    _set_session_cookie(resp, sid)
    audit("login_ok", actor_id=user.get("id"), login=login_name)
    return resp


def _set_session_cookie(resp, sid: str) -> None:
    """Set session cookie; use secure=True when HTTPS or production."""
    secure = (
        os.getenv("HTTPS", "").lower() in ("1", "true", "yes")
        or os.getenv("FLASK_ENV") == "production"
    )
    resp.set_cookie(
        SESSION_COOKIE_NAME,
        sid,
        max_age=SESSION_TTL,
        httponly=True,
        samesite="Lax",
        secure=secure,
    )


@app.route("/logout")
def logout():
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if sid:
        delete_session(get_redis(), sid)
        audit("logout")
    resp = make_response(redirect(url_for("login")))
    resp.delete_cookie(SESSION_COOKIE_NAME)
    return resp


@app.route("/setup", methods=["GET", "POST"])
def setup():
    r = get_redis()
    if setup_done(r):
        return redirect(url_for("index"))
    if request.method == "GET":
        return render_template_string(SETUP_HTML)
    login_name = (request.form.get("login") or "").strip()
    password = request.form.get("password") or ""
    password2 = request.form.get("password2") or ""
    if len(login_name) < 2:
        flash("Login must be at least 2 characters.", "error")
        return redirect(url_for("setup"))
    if len(password) < 6:
        flash("Password must be at least 6 characters.", "error")
        return redirect(url_for("setup"))
    if password != password2:
        flash("Passwords do not match.", "error")
        return redirect(url_for("setup"))
    try:
        user_id = create_user(r, login_name, password, role="owner")
    except (RebrandError, ValueError) as e:
        flash(str(e), "error")
        return redirect(url_for("setup"))
    sid = create_session(r, login_name)
    resp = make_response(redirect(url_for("index")))
    _set_session_cookie(resp, sid)
    audit("setup_completed", actor_id=user_id, login=login_name)
    return resp


# ----- Settings -----
@app.route("/")
def index():
    settings = get_service().get_settings(_actor())
    social_json = json.dumps(
        {k: v.model_dump() for k, v in settings.social_links.items()}, indent=2
    )
    return _page(_SETTINGS_BODY, "settings", settings=settings, social_json=social_json)


@app.route("/save-settings", methods=["POST"])
def save_settings():
    try:
        get_service().save_settings(
            _actor(),
            social_links_json=request.form.get("social_links") or "",
            menu_ids=request.form.get("menu_ids") or "",
            header_override_enabled=request.form.get("header_override_enabled") == "1",
        )
        flash("Settings saved.", "success")
    except RebrandError as e:
        flash(str(e), "error")
    return redirect(url_for("index"))


@app.route("/api/settings")
def api_settings():
    """Download the brand settings document as JSON."""
    settings = get_service().get_settings(_actor())
    resp = Response(settings.model_dump_json(indent=2), mimetype="application/json")
    resp.headers["Content-Disposition"] = 'attachment; filename="rebrand_settings_export.json"'
    return resp


# ----- Logo and favicons -----
def _with_upload(field: str, fn):
    """Store the multipart file in a temp file, run fn(UploadedFile), always clean up."""
    storage = request.files.get(field)
    if storage is None or not storage.filename:
        raise InvalidArgument("No file uploaded.")
    fd, tmp = tempfile.mkstemp(prefix="rebrand-upload-")
    os.close(fd)
    try:
        storage.save(tmp)
        upload = UploadedFile(
            temp_path=tmp,
            filename=storage.filename,
            size=Path(tmp).stat().st_size,
            mime=storage.mimetype or "",
        )
        return fn(upload)
    finally:
        Path(tmp).unlink(missing_ok=True)


@app.route("/assets")
def assets_page():
    config = get_config()
    service = get_service()
    actor = _actor()
    settings = service.get_settings(actor)
    return _page(
        _ASSETS_BODY,
        "assets",
        settings=settings,
        assets=service.detect_assets(actor),
        config=config,
        max_mb=round(config.uploads.max_bytes / (1024 * 1024), 1),
    )


@app.route("/upload-logo", methods=["POST"])
def upload_logo():
    service = get_service()
    actor = _actor()
    dark = request.form.get("dark") == "1"
    try:
        rel = _with_upload("logo", lambda up: service.upload_logo(actor, up, dark=dark))
        flash(f"Logo saved to {rel}.", "success")
    except RebrandError as e:
        flash(str(e), "error")
    return redirect(url_for("assets_page"))


@app.route("/generate-favicons", methods=["POST"])
def generate_favicons():
    service = get_service()
    actor = _actor()
    try:
        result = _with_upload(
            "master",
            lambda up: service.generate_favicons(
                actor,
                up,
                include_maskable=request.form.get("maskable") == "1",
                theme_color=request.form.get("theme_color") or "",
            ),
        )
        flash(f"Generated {len(result.files)} icon files.", "success")
    except RebrandError as e:
        flash(str(e), "error")
    return redirect(url_for("assets_page"))


# ----- Head tags -----
def _head_meta_from_form() -> HeadMeta:
    return HeadMeta(**{name: request.form.get(name) or "" for name in HeadMeta.model_fields})


@app.route("/head")
def head_page(preview: str = "", meta: HeadMeta | None = None):
    service = get_service()
    actor = _actor()
    settings = service.get_settings(actor)
    return _page(
        _HEAD_BODY,
        "head",
        meta=meta or settings.head_meta,
        preview=preview,
        current_block=service.head.current_block(),
    )


@app.route("/patch-head", methods=["POST"])
def patch_head():
    service = get_service()
    actor = _actor()
    try:
        meta = _head_meta_from_form()
        if request.form.get("action") == "preview":
            return head_page(preview=service.preview_head(actor, meta), meta=meta)
        outcome = service.patch_head(actor, meta)
        flash("Head tags written." if outcome.changed else "Head tags already up to date.", "success")
    except RebrandError as e:
        flash(str(e), "error")
    return redirect(url_for("head_page"))


@app.route("/revert-head", methods=["POST"])
def revert_head():
    try:
        if get_service().revert_head(_actor()):
            flash("Head tags reverted.", "success")
        else:
            flash("No head tags backup to restore.", "error")
    except RebrandError as e:
        flash(str(e), "error")
    return redirect(url_for("head_page"))


# ----- Menus -----
@app.route("/menus")
def menus_page(preview: str = "", ids: str = "", rules: str = ""):
    settings = get_service().get_settings(_actor())
    return _page(_MENUS_BODY, "menus", settings=settings, preview=preview, ids=ids, rules=rules)


def _flash_batch(result) -> None:
    """One flash per row that has something to say, then the aggregate count."""
    for o in result.outcomes:
        if o.message:
            flash(f"menu {o.row_id}: {o.status.value}: {o.message}", "error")
    flash(result.summary(), "error" if result.aborted else "success")


@app.route("/menus", methods=["POST"])
def menus_action():
    service = get_service()
    actor = _actor()
    raw = (request.form.get("ids") or "").strip()
    action = request.form.get("action") or "preview"
    try:
        if action == "discover":
            found = service.discover_menus(actor)
            if found:
                flash("Discovered candidates: " + ", ".join(str(i) for i in found), "success")
            else:
                flash("No likely menu candidates discovered.", "success")
            return menus_page(ids=", ".join(str(i) for i in found))
        if action == "rules_preview":
            rules = request.form.get("rules") or ""
            return menus_page(preview=service.preview_menu_rules(actor, rules).format(), rules=rules)
        if action == "rules_apply":
            _flash_batch(service.apply_menu_rules(actor, request.form.get("rules") or ""))
            return redirect(url_for("menus_page"))
        ids = parse_menu_ids(raw) or None
        if action == "preview":
            return menus_page(preview=service.preview_menus(actor, ids), ids=raw)
        if action in ("revert", "rules_revert"):
            revert = service.revert_menu_rules if action == "rules_revert" else service.revert_menu
            if not ids:
                flash("List the menu ids to revert.", "error")
            else:
                restored = [i for i in ids if revert(actor, i)]
                flash(f"Reverted rows: {len(restored)} of {len(ids)}", "success" if restored else "error")
            return redirect(url_for("menus_page"))
        _flash_batch(service.apply_menus(actor, ids))
    except RebrandError as e:
        flash(str(e), "error")
    return redirect(url_for("menus_page"))


# ----- Site identity -----
@app.route("/site")
def site_page():
    sites = get_service().list_sites(_actor())
    return _page(_SITE_BODY, "site", sites=sites)


@app.route("/site", methods=["POST"])
def update_site():
    service = get_service()
    actor = _actor()
    try:
        site_id = int(request.form.get("site_id") or 0)
        if request.form.get("action") == "revert":
            if service.revert_site(actor, site_id):
                flash(f"Site {site_id} restored from its last backup.", "success")
            else:
                flash(f"No backup found for site {site_id}.", "error")
        else:
            service.update_site(
                actor, site_id, request.form.get("site_name") or "", request.form.get("site_url")
            )
            flash(f"Site {site_id} saved.", "success")
    except (RebrandError, ValueError) as e:
        flash(str(e), "error")
    return redirect(url_for("site_page"))


# ----- Backups -----
@app.route("/backups")
def backups_page():
    backups = get_service().list_backups(_actor(), request.args.get("target") or None)
    return _page(_BACKUPS_BODY, "backups", backups=backups)


@app.route("/backups/restore", methods=["POST"])
def restore_backup():
    try:
        backup_id = int(request.form.get("backup_id") or 0)
        if get_service().restore_backup(_actor(), backup_id):
            flash(f"Backup #{backup_id} restored.", "success")
        else:
            flash(f"Backup #{backup_id} could not be restored.", "error")
    except (RebrandError, ValueError) as e:
        flash(str(e), "error")
    return redirect(url_for("backups_page"))


@app.route("/api/health")
def api_health():
    """Liveness endpoint, no auth."""
    return jsonify({"ok": True})


def main():
    config = get_config()
    setup_logging(config.logging.level, use_json=config.logging.json_format)
    port = int(os.getenv("PORT", "8080"))
    app.run(host="0.0.0.0", port=port, debug=False)


if __name__ == "__main__":
    main()

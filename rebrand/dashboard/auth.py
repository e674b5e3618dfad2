"""Dashboard auth: users and sessions in Redis, numeric user ids, CSRF token per browser session."""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from typing import Any

import redis
from flask import request, session as flask_session

from rebrand.core.repository import get_redis_url

logger = logging.getLogger(__name__)

USERS_SET_KEY = "rebrand:users"
USER_PREFIX = "rebrand:user:"
USER_SEQ_KEY = "rebrand:user:seq"
SESSION_PREFIX = "rebrand:session:"
SESSION_TTL = 86400  # 24h
SESSION_COOKIE_NAME = "rebrand_sid"
CSRF_FIELD = "csrf_token"
PBKDF2_ITERATIONS = 100_000


def _hash_password(password: str, salt: bytes | None = None) -> tuple[str, str]:
    """Return (hex_hash, hex_salt). If salt is None, generate new."""
    if salt is None:
        salt = secrets.token_bytes(32)
    h = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return h.hex(), salt.hex()


def verify_password(password: str, stored_hash: str, stored_salt_hex: str) -> bool:
    """Verify password against stored hash and salt."""
    try:
        salt = bytes.fromhex(stored_salt_hex)
    except ValueError:
        return False
    h, _ = _hash_password(password, salt)
    return secrets.compare_digest(h, stored_hash)


def get_redis():
    """Sync Redis client for auth (used in request context)."""
    return redis.from_url(get_redis_url(), decode_responses=True)


def setup_done(redis_client: Any) -> bool:
    """True if at least one user exists (setup completed)."""
    try:
        return redis_client.scard(USERS_SET_KEY) > 0
    except redis.exceptions.RedisError:
        return False


def create_user(redis_client: Any, login: str, password: str, role: str = "viewer") -> int:
    """Create user and return its numeric id. Raises ValueError if login exists."""
    if redis_client.sismember(USERS_SET_KEY, login):
        raise ValueError("User already exists")
    password_hash, salt_hex = _hash_password(password)
    user_id = int(redis_client.incr(USER_SEQ_KEY))
    data = {
        "id": user_id,
        "password_hash": password_hash,
        "salt": salt_hex,
        "role": role,
        "display_name": login,
    }
    redis_client.set(USER_PREFIX + login, json.dumps(data))
    redis_client.sadd(USERS_SET_KEY, login)
    logger.info("Created dashboard user %s (id %s, role %s)", login, user_id, role)
    return user_id


def get_user(redis_client: Any, login: str) -> dict[str, Any] | None:
    raw = redis_client.get(USER_PREFIX + login)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def verify_user(redis_client: Any, login: str, password: str) -> dict[str, Any] | None:
    """Verify login/password. Returns user dict (id, role) or None."""
    data = get_user(redis_client, login)
    if not data:
        return None
    if not verify_password(password, data["password_hash"], data["salt"]):
        return None
    return {k: v for k, v in data.items() if k not in ("password_hash", "salt")}


def create_session(redis_client: Any, login: str) -> str:
    sid = secrets.token_urlsafe(32)
    redis_client.setex(SESSION_PREFIX + sid, SESSION_TTL, json.dumps({"login": login}))
    return sid


def get_session(redis_client: Any, session_id: str) -> dict[str, Any] | None:
    """Get session payload (login). Refreshes TTL on access."""
    if not session_id:
        return None
    key = SESSION_PREFIX + session_id
    raw = redis_client.get(key)
    if not raw:
        return None
    redis_client.expire(key, SESSION_TTL)
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def delete_session(redis_client: Any, session_id: str) -> None:
    if session_id:
        redis_client.delete(SESSION_PREFIX + session_id)


def get_current_user(redis_client: Any) -> dict[str, Any] | None:
    """Current user from request session cookie, or None."""
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return None
    sess = get_session(redis_client, sid)
    if not sess or not sess.get("login"):
        return None
    login = sess["login"]
    user = get_user(redis_client, login)
    if not user:
        return None
    return {
        "id": int(user.get("id", 0)),
        "login": login,
        "role": user.get("role", "viewer"),
        "display_name": user.get("display_name", login),
    }


def get_csrf_token() -> str:
    token = flask_session.get(CSRF_FIELD)
    if not token:
        token = secrets.token_urlsafe(32)
        flask_session[CSRF_FIELD] = token
    return token


def check_csrf(submitted: str | None) -> bool:
    expected = flask_session.get(CSRF_FIELD)
    return bool(expected and submitted and secrets.compare_digest(expected, submitted))

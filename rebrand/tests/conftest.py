"""Pytest fixtures and config."""

from __future__ import annotations

import io
import json
from itertools import count
from typing import Any, Optional

import pytest
from PIL import Image

from rebrand.config.loader import Config
from rebrand.core.records import BackupRecord


class MemoryRepository:
    """In-process stand-in for RedisRepository with the same ordering rules."""

    def __init__(self) -> None:
        self.settings_raw: Optional[str] = None
        self.rows: dict[str, dict[int, dict[str, Any]]] = {}
        self.backups: list[BackupRecord] = []
        self._seq = count(1)
        self.fail_backup = False
        self.fail_update = False

    def get_settings(self) -> Optional[str]:
        return self.settings_raw

    def save_settings(self, raw: str) -> None:
        self.settings_raw = raw

    def get_row(self, table: str, row_id: int) -> Optional[dict[str, Any]]:
        row = self.rows.get(table, {}).get(int(row_id))
        return json.loads(json.dumps(row)) if row is not None else None

    def insert_row(self, table: str, row_id: int, fields: dict[str, Any]) -> None:
        self.rows.setdefault(table, {})[int(row_id)] = {**fields, "id": int(row_id)}

    def update_row(self, table: str, row_id: int, fields: dict[str, Any]) -> None:
        if self.fail_update:
            raise RuntimeError("disk full")
        row = self.rows.get(table, {}).get(int(row_id))
        if row is None:
            raise LookupError(f"{table}.id {row_id} not found")
        row.update(fields)

    def iter_rows(self, table: str) -> list[dict[str, Any]]:
        return [dict(r) for _, r in sorted(self.rows.get(table, {}).items())]

    def insert_backup(self, record: BackupRecord) -> BackupRecord:
        if self.fail_backup:
            raise RuntimeError("backup store down")
        stored = record.with_id(next(self._seq))
        self.backups.append(stored)
        return stored

    def get_backup(self, backup_id: int) -> Optional[BackupRecord]:
        return next((b for b in self.backups if b.id == int(backup_id)), None)

    def list_backups(self, target: Optional[str] = None, limit: Optional[int] = 50) -> list[BackupRecord]:
        items = [b for b in reversed(self.backups) if target is None or b.target == target]
        return items if limit is None else items[:limit]


@pytest.fixture(autouse=True)
def env_cleanup(monkeypatch):
    """Avoid picking up deployment env in tests."""
    for name in ("REBRAND_ENV_PREFIX", "REBRAND_WEB_ROOT", "REBRAND_ADMIN_ID", "SECRET_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/1")
    yield


@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def config(tmp_path):
    cfg = Config.load()
    cfg.paths.web_root = str(tmp_path)
    return cfg


def make_png(width: int, height: int, color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_jpeg(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (10, 120, 200)).save(buf, format="JPEG")
    return buf.getvalue()


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def jpeg_factory():
    return make_jpeg

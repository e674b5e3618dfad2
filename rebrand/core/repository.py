"""Storage for settings, rows and backups. Production store is Redis; core code sees only the protocol."""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol

import redis

from rebrand.core.errors import UpstreamUnavailable
from rebrand.core.records import BackupRecord

logger = logging.getLogger(__name__)

REDIS_PREFIX = "rebrand:"
SETTINGS_KEY = REDIS_PREFIX + "settings"
ROW_PREFIX = REDIS_PREFIX + "row:"
ROW_INDEX_PREFIX = REDIS_PREFIX + "rows:"
BACKUP_SEQ_KEY = REDIS_PREFIX + "backup:seq"
BACKUP_PREFIX = REDIS_PREFIX + "backup:"
BACKUP_INDEX_KEY = REDIS_PREFIX + "backups"
BACKUP_TARGET_PREFIX = REDIS_PREFIX + "backups:target:"


def get_redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


class BrandingRepository(Protocol):
    def get_settings(self) -> Optional[str]: ...

    def save_settings(self, raw: str) -> None: ...

    def get_row(self, table: str, row_id: int) -> Optional[dict[str, Any]]: ...

    def insert_row(self, table: str, row_id: int, fields: dict[str, Any]) -> None: ...

    def update_row(self, table: str, row_id: int, fields: dict[str, Any]) -> None: ...

    def iter_rows(self, table: str) -> list[dict[str, Any]]: ...

    def insert_backup(self, record: BackupRecord) -> BackupRecord: ...

    def get_backup(self, backup_id: int) -> Optional[BackupRecord]: ...

    def list_backups(
        self, target: Optional[str] = None, limit: Optional[int] = 50
    ) -> list[BackupRecord]: ...


@contextmanager
def _upstream(op: str) -> Iterator[None]:
    try:
        yield
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
        logger.warning("Redis unavailable during %s: %s", op, e)
        raise UpstreamUnavailable(f"Store unavailable ({op}): {e}") from e


class RedisRepository:
    """Rows are JSON blobs under rebrand:row:<table>:<id>; backups are append-only, newest first."""

    def __init__(self, client: Any) -> None:
        self._r = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisRepository":
        return cls(redis.from_url(redis_url, decode_responses=True))

    def close(self) -> None:
        self._r.close()

    # ----- settings -----
    def get_settings(self) -> Optional[str]:
        with _upstream("get_settings"):
            return self._r.get(SETTINGS_KEY)

    def save_settings(self, raw: str) -> None:
        with _upstream("save_settings"):
            self._r.set(SETTINGS_KEY, raw)

    # ----- rows -----
    def get_row(self, table: str, row_id: int) -> Optional[dict[str, Any]]:
        with _upstream("get_row"):
            raw = self._r.get(f"{ROW_PREFIX}{table}:{int(row_id)}")
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt row %s:%s", table, row_id)
            return None

    def insert_row(self, table: str, row_id: int, fields: dict[str, Any]) -> None:
        row = dict(fields)
        row["id"] = int(row_id)
        with _upstream("insert_row"):
            pipe = self._r.pipeline()
            pipe.set(f"{ROW_PREFIX}{table}:{int(row_id)}", json.dumps(row))
            pipe.sadd(ROW_INDEX_PREFIX + table, int(row_id))
            pipe.execute()

    def update_row(self, table: str, row_id: int, fields: dict[str, Any]) -> None:
        row = self.get_row(table, row_id)
        if row is None:
            raise LookupError(f"{table}.id {row_id} not found")
        row.update(fields)
        with _upstream("update_row"):
            self._r.set(f"{ROW_PREFIX}{table}:{int(row_id)}", json.dumps(row))

    def iter_rows(self, table: str) -> list[dict[str, Any]]:
        with _upstream("iter_rows"):
            ids = sorted(int(x) for x in self._r.smembers(ROW_INDEX_PREFIX + table))
            if not ids:
                return []
            raws = self._r.mget([f"{ROW_PREFIX}{table}:{i}" for i in ids])
        return [json.loads(r) for r in raws if r]

    # ----- backups -----
    def insert_backup(self, record: BackupRecord) -> BackupRecord:
        with _upstream("insert_backup"):
            backup_id = int(self._r.incr(BACKUP_SEQ_KEY))
            stored = record.with_id(backup_id)
            pipe = self._r.pipeline()
            pipe.set(BACKUP_PREFIX + str(backup_id), stored.to_json())
            pipe.lpush(BACKUP_INDEX_KEY, backup_id)
            pipe.lpush(BACKUP_TARGET_PREFIX + stored.target, backup_id)
            pipe.execute()
        return stored

    def get_backup(self, backup_id: int) -> Optional[BackupRecord]:
        with _upstream("get_backup"):
            raw = self._r.get(BACKUP_PREFIX + str(int(backup_id)))
        return BackupRecord.from_json(raw) if raw else None

    def list_backups(
        self, target: Optional[str] = None, limit: Optional[int] = 50
    ) -> list[BackupRecord]:
        key = BACKUP_TARGET_PREFIX + target if target else BACKUP_INDEX_KEY
        stop = -1 if limit is None else max(0, limit - 1)
        with _upstream("list_backups"):
            if limit == 0:
                return []
            ids = self._r.lrange(key, 0, stop)
            if not ids:
                return []
            raws = self._r.mget([BACKUP_PREFIX + str(i) for i in ids])
        return [BackupRecord.from_json(r) for r in raws if r]

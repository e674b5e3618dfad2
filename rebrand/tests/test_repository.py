"""Tests for the Redis-backed repository and backup record storage form."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import redis

from rebrand.core.errors import UpstreamUnavailable
from rebrand.core.records import BackupRecord
from rebrand.core.repository import REDIS_PREFIX, RedisRepository


@pytest.fixture
def redis_repo():
    try:
        client = redis.from_url("redis://localhost:6379/13", decode_responses=True)
        client.ping()
    except Exception:
        pytest.skip("Redis not available")
    for key in client.scan_iter(REDIS_PREFIX + "*"):
        client.delete(key)
    repo = RedisRepository(client)
    yield repo
    for key in client.scan_iter(REDIS_PREFIX + "*"):
        client.delete(key)
    repo.close()


def test_binary_record_json_keeps_bytes():
    rec = BackupRecord(
        target="file:icons/favicon.ico",
        content=b"\x00\x01\xff",
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        id=3,
    )
    back = BackupRecord.from_json(rec.to_json())
    assert back == rec
    assert back.is_binary and back.size == 3


def test_text_record_json_keeps_restores():
    rec = BackupRecord(target="field:menus:1:brand_html", content="<b>x</b>", restores=2, actor_id=1)
    back = BackupRecord.from_json(rec.to_json())
    assert back.content == "<b>x</b>"
    assert back.restores == 2
    assert not back.is_binary


def test_connection_error_becomes_upstream_unavailable():
    client = MagicMock()
    client.get.side_effect = redis.exceptions.ConnectionError("refused")
    with pytest.raises(UpstreamUnavailable):
        RedisRepository(client).get_settings()


def test_list_backups_limit_zero_skips_redis():
    client = MagicMock()
    assert RedisRepository(client).list_backups(limit=0) == []
    client.lrange.assert_not_called()


def test_settings_roundtrip(redis_repo):
    assert redis_repo.get_settings() is None
    redis_repo.save_settings('{"asset_version": 4}')
    assert redis_repo.get_settings() == '{"asset_version": 4}'


def test_rows(redis_repo):
    redis_repo.insert_row("menus", 5, {"menu_name": "main", "brand_html": ""})
    redis_repo.insert_row("menus", 2, {"menu_name": "side", "brand_html": "x"})
    redis_repo.update_row("menus", 5, {"brand_html": "<div></div>"})
    assert redis_repo.get_row("menus", 5) == {"id": 5, "menu_name": "main", "brand_html": "<div></div>"}
    assert [r["id"] for r in redis_repo.iter_rows("menus")] == [2, 5]
    assert redis_repo.get_row("menus", 9) is None
    with pytest.raises(LookupError):
        redis_repo.update_row("menus", 9, {"brand_html": ""})


def test_backups_newest_first(redis_repo):
    a = redis_repo.insert_backup(BackupRecord(target="file:a.txt", content="one"))
    b = redis_repo.insert_backup(BackupRecord(target="file:b.png", content=b"\x89PNG"))
    c = redis_repo.insert_backup(BackupRecord(target="file:a.txt", content="two"))
    assert a.id < b.id < c.id
    assert [x.id for x in redis_repo.list_backups()] == [c.id, b.id, a.id]
    assert [x.content for x in redis_repo.list_backups("file:a.txt")] == ["two", "one"]
    assert [x.id for x in redis_repo.list_backups(limit=1)] == [c.id]
    assert len(redis_repo.list_backups(limit=None)) == 3
    assert redis_repo.get_backup(b.id).content == b"\x89PNG"
    assert redis_repo.get_backup(999) is None

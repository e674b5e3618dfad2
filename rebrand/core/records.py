"""Backup record model and its JSON form for storage."""

from __future__ import annotations

import base64
import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional, Union

Content = Union[str, bytes]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BackupRecord:
    """Snapshot of a target taken right before it was overwritten. Never updated once stored."""

    target: str
    content: Content
    note: str = ""
    actor_id: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    id: Optional[int] = None
    # id of the backup that a revert put back; None for ordinary writes
    restores: Optional[int] = None

    @property
    def is_binary(self) -> bool:
        return isinstance(self.content, bytes)

    @property
    def size(self) -> int:
        return len(self.content)

    def with_id(self, backup_id: int) -> "BackupRecord":
        return replace(self, id=backup_id)

    def to_json(self) -> str:
        data: dict[str, Any] = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        if self.is_binary:
            data["content"] = base64.b64encode(self.content).decode("ascii")
            data["binary"] = True
        else:
            data["binary"] = False
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "BackupRecord":
        data = json.loads(raw)
        content: Content = data["content"]
        if data.pop("binary", False):
            content = base64.b64decode(content)
        return cls(
            target=data["target"],
            content=content,
            note=data.get("note", ""),
            actor_id=int(data.get("actor_id") or 0),
            created_at=datetime.fromisoformat(data["created_at"]),
            id=data.get("id"),
            restores=data.get("restores"),
        )

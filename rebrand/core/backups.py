"""Backup-then-write discipline for file and row targets, plus revert.

Every mutation records the previous content first; a failed backup aborts before the
target is touched. File writes go to a temp file next to the target and are moved into
place with os.replace, so the visible file only changes at the rename.

There is no locking: two overlapping requests both back up the same state and the
last writer wins.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from rebrand.core.errors import BackupFailed, InvalidArgument, NotFound, RebrandError, WriteFailed
from rebrand.core.marker_patch import EncodingMode, MarkerPair
from rebrand.core.records import BackupRecord, Content
from rebrand.core.repository import BrandingRepository

logger = logging.getLogger(__name__)

LATEST = "latest"


@dataclass(frozen=True)
class WriteOutcome:
    """Result of a patch-and-persist call. backup is None when unchanged or when nothing existed before."""

    changed: bool
    backup: Optional[BackupRecord] = None


class TargetKind(str, Enum):
    FILE = "file"
    FIELD = "field"
    ROW = "row"


@dataclass(frozen=True)
class PatchTarget:
    """A file path, a (table, row_id, column) triple, or a set of columns of one row.

    ROW targets carry their content as a JSON object of the listed columns.
    """

    kind: TargetKind
    path: Optional[Path] = None
    table: Optional[str] = None
    row_id: Optional[int] = None
    column: Optional[str] = None
    encoding: EncodingMode = EncodingMode.PLAIN
    markers: Optional[MarkerPair] = None
    binary: bool = False
    columns: tuple[str, ...] = ()

    @classmethod
    def file(
        cls,
        path: Union[str, Path],
        *,
        encoding: EncodingMode = EncodingMode.PLAIN,
        markers: Optional[MarkerPair] = None,
        binary: bool = False,
    ) -> "PatchTarget":
        return cls(
            TargetKind.FILE,
            path=Path(path).resolve(),
            encoding=encoding,
            markers=markers,
            binary=binary,
        )

    @classmethod
    def field(
        cls,
        table: str,
        row_id: int,
        column: str,
        *,
        encoding: EncodingMode = EncodingMode.PLAIN,
        markers: Optional[MarkerPair] = None,
    ) -> "PatchTarget":
        return cls(
            TargetKind.FIELD,
            table=table,
            row_id=int(row_id),
            column=column,
            encoding=encoding,
            markers=markers,
        )

    @classmethod
    def row(cls, table: str, row_id: int, columns: Iterable[str]) -> "PatchTarget":
        return cls(TargetKind.ROW, table=table, row_id=int(row_id), columns=tuple(columns))

    @property
    def key(self) -> str:
        if self.kind is TargetKind.FILE:
            return f"file:{self.path}"
        if self.kind is TargetKind.ROW:
            return f"row:{self.table}:{self.row_id}"
        return f"field:{self.table}:{self.row_id}:{self.column}"


def read_target(repo: BrandingRepository, target: PatchTarget) -> Optional[Content]:
    """Current content, or None when the file or row does not exist."""
    if target.kind is TargetKind.FILE:
        assert target.path is not None
        if not target.path.is_file():
            return None
        try:
            data = target.path.read_bytes()
        except OSError as e:
            logger.error("Cannot read %s: %s", target.key, e)
            raise WriteFailed(f"Cannot read {target.path}: {e}") from e
        if target.binary:
            return data
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidArgument(f"{target.path} is not valid UTF-8 text: {e}") from e
    row = repo.get_row(target.table, target.row_id)
    if row is None:
        return None
    if target.kind is TargetKind.ROW:
        return json.dumps({c: row.get(c) for c in target.columns}, sort_keys=True)
    value = row.get(target.column)
    return "" if value is None else str(value)


def _as_bytes(content: Content) -> bytes:
    return content if isinstance(content, bytes) else content.encode("utf-8")


def write_file_atomic(path: Path, data: bytes) -> None:
    """Temp file in the same directory, then os.replace. Raises OSError; the target is untouched on failure."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".rebrand.tmp.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def _commit(
    repo: BrandingRepository,
    target: PatchTarget,
    current: Optional[Content],
    next_content: Content,
    *,
    actor_id: int,
    note: str,
    restores: Optional[int] = None,
) -> Optional[BackupRecord]:
    record = None
    if current is not None:
        try:
            record = repo.insert_backup(
                BackupRecord(
                    target=target.key,
                    content=current,
                    note=note,
                    actor_id=actor_id,
                    restores=restores,
                )
            )
        except Exception as e:
            logger.error("Backup failed for %s: %s", target.key, e)
            raise BackupFailed(f"Failed to record backup for {target.key}: {e}") from e

    try:
        if target.kind is TargetKind.FILE:
            write_file_atomic(target.path, _as_bytes(next_content))
        else:
            value = next_content.decode("utf-8") if isinstance(next_content, bytes) else next_content
            if target.kind is TargetKind.ROW:
                fields = json.loads(value)
                repo.update_row(target.table, target.row_id, {c: fields.get(c) for c in target.columns})
            else:
                repo.update_row(target.table, target.row_id, {target.column: value})
    except Exception as e:
        logger.error("Write failed for %s: %s", target.key, e)
        raise WriteFailed(f"Failed to write {target.key}: {e}") from e

    logger.info(
        "Wrote %s (backup %s)", target.key, record.id if record is not None else "none"
    )
    return record


def backup_then_write(
    repo: BrandingRepository,
    target: PatchTarget,
    next_content: Content,
    *,
    actor_id: int,
    note: str = "",
) -> Optional[BackupRecord]:
    """Back up the current content (if any) and write next_content.

    Returns the new BackupRecord, or None when the file did not exist yet.
    A missing row is an error: there is nothing to update.
    """
    current = read_target(repo, target)
    if current is None and target.kind is not TargetKind.FILE:
        raise NotFound(f"{target.table}.id {target.row_id} not found.")
    return _commit(repo, target, current, next_content, actor_id=actor_id, note=note)


def resolve_backup(
    repo: BrandingRepository, target: PatchTarget, backup_id: Union[int, str] = LATEST
) -> Optional[BackupRecord]:
    """Pick the backup a revert would restore.

    "latest" walks newest to oldest, skipping records written by reverts and the
    backups those reverts already put back, so repeated reverts step further back.
    """
    if backup_id == LATEST:
        consumed: set[int] = set()
        for rec in repo.list_backups(target.key, limit=None):
            if rec.restores is not None:
                consumed.add(rec.restores)
                continue
            if rec.id in consumed:
                continue
            return rec
        return None
    try:
        wanted = int(backup_id)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"Invalid backup id: {backup_id!r}") from e
    rec = repo.get_backup(wanted)
    if rec is None or rec.target != target.key:
        return None
    return rec


def revert_to_backup(
    repo: BrandingRepository,
    target: PatchTarget,
    backup_id: Union[int, str] = LATEST,
    *,
    actor_id: int,
) -> bool:
    """Restore a backup through backup_then_write. False when there is nothing to restore."""
    rec = resolve_backup(repo, target, backup_id)
    if rec is None:
        return False
    current = read_target(repo, target)
    if current is None and target.kind is not TargetKind.FILE:
        raise NotFound(f"{target.table}.id {target.row_id} not found.")
    content: Content = rec.content
    if target.binary and isinstance(content, str):
        content = content.encode("utf-8")
    _commit(
        repo,
        target,
        current,
        content,
        actor_id=actor_id,
        note=f"revert to backup #{rec.id}",
        restores=rec.id,
    )
    return True


class RowStatus(str, Enum):
    WRITTEN = "written"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RowOutcome:
    row_id: int
    status: RowStatus
    message: str = ""
    backup_id: Optional[int] = None


@dataclass
class BatchResult:
    outcomes: list[RowOutcome] = field(default_factory=list)
    aborted: bool = False

    @property
    def written(self) -> int:
        return sum(1 for o in self.outcomes if o.status is RowStatus.WRITTEN)

    @property
    def errors(self) -> list[str]:
        return [o.message for o in self.outcomes if o.status is RowStatus.FAILED]

    def summary(self) -> str:
        text = f"Updated rows: {self.written} of {len(self.outcomes)}"
        if self.aborted:
            text += " (aborted)"
        return text


def backup_then_write_rows(
    repo: BrandingRepository,
    targets: Iterable[PatchTarget],
    render: Callable[[PatchTarget, str], str],
    *,
    actor_id: int,
    note: str = "",
) -> BatchResult:
    """Apply render(target, current) to each row with the per-row backup discipline.

    The first failure stops the batch. Rows written before it stay written.
    """
    result = BatchResult()
    for target in targets:
        try:
            current = read_target(repo, target)
            if current is None:
                result.outcomes.append(
                    RowOutcome(target.row_id, RowStatus.SKIPPED, f"{target.table}.id {target.row_id} not found")
                )
                continue
            nxt = render(target, current)
            if nxt == current:
                result.outcomes.append(RowOutcome(target.row_id, RowStatus.UNCHANGED))
                continue
            rec = _commit(repo, target, current, nxt, actor_id=actor_id, note=note)
        except RebrandError as e:
            result.outcomes.append(RowOutcome(target.row_id, RowStatus.FAILED, str(e)))
            result.aborted = True
            logger.warning("Row batch aborted at %s: %s", target.key, e)
            break
        result.outcomes.append(
            RowOutcome(target.row_id, RowStatus.WRITTEN, backup_id=rec.id if rec else None)
        )
    return result

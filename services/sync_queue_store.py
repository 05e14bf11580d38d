from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.settings import SYNC
from datetime_utils import ensure_utc, utc_now
from models.sync_op import OperationType, SyncQueueEntry, SyncStatus
from storage.db import get_session


class StorageError(RuntimeError):
    """The local sync queue could not be read or written."""


@dataclass
class QueuedMutation:
    id: int
    operation_type: OperationType
    table_name: str
    record_id: str
    payload: dict
    timestamp: datetime
    retry_count: int
    status: SyncStatus
    last_error: Optional[str]


def _to_mutation(row: SyncQueueEntry) -> QueuedMutation:
    try:
        payload = json.loads(row.data)
    except (TypeError, json.JSONDecodeError):
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return QueuedMutation(
        id=row.id,
        operation_type=OperationType(row.operation_type),
        table_name=row.table_name,
        record_id=row.record_id,
        payload=payload,
        timestamp=ensure_utc(row.timestamp),
        retry_count=row.retry_count,
        status=SyncStatus(row.status),
        last_error=row.last_error,
    )


class SyncQueueStore:
    """SQLModel-backed ``sync_queue`` table.

    Every public method opens its own session; a failing database surfaces
    as :class:`StorageError`.
    """

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def add(
        self,
        operation_type: OperationType,
        record_id: str,
        payload: dict,
        *,
        timestamp: Optional[datetime] = None,
    ) -> QueuedMutation:
        op = OperationType(operation_type)
        record = SyncQueueEntry(
            operation_type=op.value,
            table_name=op.table.value,
            record_id=str(record_id),
            data=json.dumps(payload, ensure_ascii=False),
            timestamp=timestamp or utc_now(),
            retry_count=0,
            status=SyncStatus.PENDING.value,
        )
        try:
            with self._session_factory() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return _to_mutation(record)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to queue {op.value} for {record_id}: {exc}") from exc

    def get(self, entry_id: int) -> Optional[QueuedMutation]:
        try:
            with self._session_factory() as session:
                row = session.get(SyncQueueEntry, entry_id)
                return _to_mutation(row) if row else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read queue entry {entry_id}: {exc}") from exc

    def pending_batch(self, limit: int = SYNC.batch_size) -> List[QueuedMutation]:
        """Oldest pending entries first."""

        stmt = (
            select(SyncQueueEntry)
            .where(SyncQueueEntry.status == SyncStatus.PENDING.value)
            .order_by(SyncQueueEntry.timestamp.asc(), SyncQueueEntry.id.asc())
            .limit(limit)
        )
        result: List[QueuedMutation] = []
        try:
            with self._session_factory() as session:
                rows = list(session.exec(stmt))
                unknown = False
                for row in rows:
                    try:
                        result.append(_to_mutation(row))
                    except ValueError:
                        # rows written by an older client with an operation we can't replay
                        row.status = SyncStatus.FAILED.value
                        row.last_error = f"Unknown operation type: {row.operation_type}"
                        session.add(row)
                        unknown = True
                if unknown:
                    session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read pending queue: {exc}") from exc
        return result

    def list_entries(self, status: Optional[SyncStatus] = None) -> List[QueuedMutation]:
        stmt = select(SyncQueueEntry)
        if status is not None:
            stmt = stmt.where(SyncQueueEntry.status == SyncStatus(status).value)
        stmt = stmt.order_by(SyncQueueEntry.timestamp.asc(), SyncQueueEntry.id.asc())
        try:
            with self._session_factory() as session:
                return [_to_mutation(row) for row in session.exec(stmt)]
        except (SQLAlchemyError, ValueError) as exc:
            raise StorageError(f"Failed to list queue: {exc}") from exc

    def claim(self, entry_id: int) -> bool:
        """Move one entry from pending to syncing.

        Returns ``False`` when another drain got there first.
        """

        return self._transition(entry_id, SyncStatus.PENDING, SyncStatus.SYNCING) == 1

    def mark_completed(self, entry_id: int) -> None:
        self._transition(entry_id, SyncStatus.SYNCING, SyncStatus.COMPLETED)

    def record_failure(
        self,
        entry_id: int,
        error: str,
        *,
        max_retries: int = SYNC.max_retries,
        permanent: bool = False,
    ) -> Optional[QueuedMutation]:
        """Bump ``retry_count`` and park the entry as pending or failed."""

        try:
            with self._session_factory() as session:
                row = session.get(SyncQueueEntry, entry_id)
                if not row:
                    return None
                row.retry_count += 1
                row.last_error = (error or "")[: SYNC.error_max_length]
                if permanent or row.retry_count >= max_retries:
                    row.status = SyncStatus.FAILED.value
                else:
                    row.status = SyncStatus.PENDING.value
                session.add(row)
                session.commit()
                session.refresh(row)
                return _to_mutation(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record failure for {entry_id}: {exc}") from exc

    def reset_failed(self) -> int:
        stmt = (
            update(SyncQueueEntry)
            .where(SyncQueueEntry.status == SyncStatus.FAILED.value)
            .values(status=SyncStatus.PENDING.value, retry_count=0, last_error=None)
        )
        return self._execute(stmt, "reset failed entries")

    def release_stuck(self) -> int:
        """Return entries left in syncing by an interrupted drain to pending."""

        stmt = (
            update(SyncQueueEntry)
            .where(SyncQueueEntry.status == SyncStatus.SYNCING.value)
            .values(status=SyncStatus.PENDING.value)
        )
        return self._execute(stmt, "release syncing entries")

    def clear_failed(self) -> int:
        stmt = delete(SyncQueueEntry).where(SyncQueueEntry.status == SyncStatus.FAILED.value)
        return self._execute(stmt, "clear failed entries")

    def sweep_completed(self, older_than: datetime) -> int:
        stmt = (
            delete(SyncQueueEntry)
            .where(SyncQueueEntry.status == SyncStatus.COMPLETED.value)
            .where(SyncQueueEntry.timestamp < older_than)
        )
        return self._execute(stmt, "sweep completed entries")

    def clear(self) -> int:
        return self._execute(delete(SyncQueueEntry), "clear queue")

    def counts(self) -> Dict[SyncStatus, int]:
        stmt = select(SyncQueueEntry.status, func.count()).group_by(SyncQueueEntry.status)
        try:
            with self._session_factory() as session:
                rows = session.exec(stmt).all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count queue: {exc}") from exc
        result = {status: 0 for status in SyncStatus}
        for status, count in rows:
            result[SyncStatus(status)] = int(count)
        return result

    def pending_count(self) -> int:
        return self.counts()[SyncStatus.PENDING]

    def open_count(self, record_id: str) -> int:
        """Entries for ``record_id`` that still wait for (or are in) a drain."""

        stmt = (
            select(func.count())
            .select_from(SyncQueueEntry)
            .where(SyncQueueEntry.record_id == str(record_id))
            .where(
                SyncQueueEntry.status.in_([SyncStatus.PENDING.value, SyncStatus.SYNCING.value])
            )
        )
        try:
            with self._session_factory() as session:
                return int(session.exec(stmt).one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count entries for {record_id}: {exc}") from exc

    # ------------------------------------------------------------------
    def _transition(self, entry_id: int, source: SyncStatus, target: SyncStatus) -> int:
        stmt = (
            update(SyncQueueEntry)
            .where(SyncQueueEntry.id == entry_id)
            .where(SyncQueueEntry.status == source.value)
            .values(status=target.value)
        )
        return self._execute(stmt, f"move entry {entry_id} to {target.value}")

    def _execute(self, stmt, action: str) -> int:
        try:
            with self._session_factory() as session:
                result = session.exec(stmt)
                session.commit()
                return int(result.rowcount or 0)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to {action}: {exc}") from exc


__all__ = ["QueuedMutation", "StorageError", "SyncQueueStore"]

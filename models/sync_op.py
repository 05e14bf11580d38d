"""SQLModel table for queued offline mutations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class TableName(str, Enum):
    WORKOUTS = "workouts"
    EXERCISES = "exercises"


class Verb(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationType(str, Enum):
    CREATE_WORKOUT = "CREATE_WORKOUT"
    UPDATE_WORKOUT = "UPDATE_WORKOUT"
    DELETE_WORKOUT = "DELETE_WORKOUT"
    CREATE_EXERCISE = "CREATE_EXERCISE"
    UPDATE_EXERCISE = "UPDATE_EXERCISE"
    DELETE_EXERCISE = "DELETE_EXERCISE"

    @property
    def table(self) -> TableName:
        return _ROUTES[self][0]

    @property
    def verb(self) -> Verb:
        return _ROUTES[self][1]


_ROUTES = {
    OperationType.CREATE_WORKOUT: (TableName.WORKOUTS, Verb.CREATE),
    OperationType.UPDATE_WORKOUT: (TableName.WORKOUTS, Verb.UPDATE),
    OperationType.DELETE_WORKOUT: (TableName.WORKOUTS, Verb.DELETE),
    OperationType.CREATE_EXERCISE: (TableName.EXERCISES, Verb.CREATE),
    OperationType.UPDATE_EXERCISE: (TableName.EXERCISES, Verb.UPDATE),
    OperationType.DELETE_EXERCISE: (TableName.EXERCISES, Verb.DELETE),
}


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncQueueEntry(SQLModel, table=True):
    __tablename__ = "sync_queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    operation_type: str
    table_name: str
    record_id: str = Field(index=True)
    data: str
    timestamp: datetime = Field(default_factory=utc_now, index=True)
    retry_count: int = Field(default=0)
    status: str = Field(default=SyncStatus.PENDING.value, index=True)
    last_error: Optional[str] = None


__all__ = ["OperationType", "SyncQueueEntry", "SyncStatus", "TableName", "Verb"]

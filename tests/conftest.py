import asyncio
from pathlib import Path
import sys

import pytest
from sqlmodel import Session, SQLModel, create_engine

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from models.sync_op import TableName  # noqa: E402
from services.connectivity import ConnectivityMonitor, ManualConnectivityFeed  # noqa: E402
from services.remote_apply import RemoteApplyError  # noqa: E402
from services.sync_queue_store import SyncQueueStore  # noqa: E402
from services.sync_service import SyncQueueManager  # noqa: E402


class FakeRemote:
    """In-memory stand-in for the Supabase tables.

    ``failures`` maps a record id to the exceptions the next calls for that
    record should raise, in order.
    """

    def __init__(self, failures=None):
        self.calls = []
        self.rows = {TableName.WORKOUTS: {}, TableName.EXERCISES: {}}
        self.failures = {key: list(value) for key, value in (failures or {}).items()}

    async def _maybe_fail(self, record_id):
        await asyncio.sleep(0)
        pending = self.failures.get(record_id)
        if pending:
            raise pending.pop(0)

    async def insert(self, table, record):
        self.calls.append(("insert", TableName(table), record["id"], dict(record)))
        await self._maybe_fail(record["id"])
        self.rows[TableName(table)][record["id"]] = dict(record)

    async def update(self, table, record_id, patch):
        self.calls.append(("update", TableName(table), record_id, dict(patch)))
        await self._maybe_fail(record_id)
        self.rows[TableName(table)].setdefault(record_id, {"id": record_id}).update(patch)

    async def delete(self, table, record_id):
        self.calls.append(("delete", TableName(table), record_id, None))
        await self._maybe_fail(record_id)
        self.rows[TableName(table)].pop(record_id, None)


class SlowRemote(FakeRemote):
    """Remote that suspends mid-insert and enforces the exercise -> workout key."""

    def __init__(self, failures=None):
        super().__init__(failures)
        self.in_flight = 0
        self.max_in_flight = 0

    async def insert(self, table, record):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for _ in range(3):
                await asyncio.sleep(0)
            workouts = self.rows[TableName.WORKOUTS]
            if TableName(table) is TableName.EXERCISES and record.get("workout_id") not in workouts:
                raise RemoteApplyError(
                    "insert or update violates foreign key constraint", retryable=False, code="23503"
                )
            await super().insert(table, record)
        finally:
            self.in_flight -= 1


def network_error(message="network down"):
    return RemoteApplyError(message)


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def store(session_factory):
    return SyncQueueStore(session_factory)


@pytest.fixture()
def remote():
    return FakeRemote()


@pytest.fixture()
def feed():
    return ManualConnectivityFeed(online=False)


@pytest.fixture()
def manager(remote, feed, store):
    return SyncQueueManager(remote, ConnectivityMonitor(feed), store=store)

"""Remote side of the sync queue: replaying mutations against Supabase."""
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import httpx
from postgrest.exceptions import APIError

from models.sync_op import TableName


# Postgres error classes that will fail the same way on every retry:
# 22 data exception, 23 integrity constraint violation, 42 syntax/access rule.
PERMANENT_SQLSTATE_CLASSES = ("22", "23", "42")


class RemoteApplyError(Exception):
    """The remote store rejected or could not receive a mutation."""

    def __init__(self, message: str, *, retryable: bool = True, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.code = code


class RemoteApplyLayer(Protocol):
    async def insert(self, table: TableName, record: Dict[str, Any]) -> None: ...

    async def update(self, table: TableName, record_id: str, patch: Dict[str, Any]) -> None: ...

    async def delete(self, table: TableName, record_id: str) -> None: ...


def classify_api_error(exc: APIError, action: str) -> RemoteApplyError:
    code = str(getattr(exc, "code", "") or "")
    message = getattr(exc, "message", None) or str(exc)
    retryable = not code.startswith(PERMANENT_SQLSTATE_CLASSES)
    return RemoteApplyError(f"Failed to {action}: {message}", retryable=retryable, code=code or None)


class SupabaseRemote:
    """Applies queued mutations through a supabase ``AsyncClient``.

    Updates overwrite the remote row unconditionally, so the last queued
    update for a record is the one that sticks.
    """

    def __init__(self, client: Any):
        self.client = client

    async def insert(self, table: TableName, record: Dict[str, Any]) -> None:
        name = TableName(table).value
        await self._run(self.client.table(name).insert(record), f"create {name}")

    async def update(self, table: TableName, record_id: str, patch: Dict[str, Any]) -> None:
        name = TableName(table).value
        query = self.client.table(name).update(patch).eq("id", record_id)
        await self._run(query, f"update {name} {record_id}")

    async def delete(self, table: TableName, record_id: str) -> None:
        name = TableName(table).value
        query = self.client.table(name).delete().eq("id", record_id)
        await self._run(query, f"delete {name} {record_id}")

    async def _run(self, query: Any, action: str) -> None:
        try:
            await query.execute()
        except APIError as exc:
            raise classify_api_error(exc, action) from exc
        except httpx.HTTPError as exc:
            raise RemoteApplyError(f"Failed to {action}: {exc}") from exc


async def create_supabase_remote(url: str, key: str) -> SupabaseRemote:
    from supabase import acreate_client

    client = await acreate_client(url, key)
    return SupabaseRemote(client)


__all__ = [
    "RemoteApplyError",
    "RemoteApplyLayer",
    "SupabaseRemote",
    "classify_api_error",
    "create_supabase_remote",
]

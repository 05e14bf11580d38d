from __future__ import annotations
import asyncio
import logging
from logging.handlers import RotatingFileHandler
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from core.settings import SYNC, SyncSettings
from datetime_utils import hours_ago
from models.sync_op import OperationType, SyncStatus, TableName, Verb
from models.workout import LOCAL_ONLY_FIELDS, ExerciseData, WorkoutData
from services.connectivity import ConnectivityMonitor
from services.notifications import QueueStatus, SyncEvent, SyncNotifier
from services.remote_apply import RemoteApplyError, RemoteApplyLayer
from services.sanitizer import sanitize
from services.sync_queue_store import QueuedMutation, StorageError, SyncQueueStore


SYNC_LOG_PATH = SYNC.log_path

_PAYLOAD_MODELS = {
    TableName.WORKOUTS: WorkoutData,
    TableName.EXERCISES: ExerciseData,
}


def _ensure_logger(log_path: Path | str = SYNC_LOG_PATH) -> logging.Logger:
    logger = logging.getLogger("liftfire.sync")
    if not logger.handlers:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


class OfflineError(RuntimeError):
    """A sync was explicitly requested while the device is offline."""


@dataclass
class DrainResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0


class SyncQueueManager:
    """Offline-first write queue.

    Mutations are sanitized and stored as ``pending`` rows, then replayed
    oldest first against the remote layer whenever the device is online.
    Every entry is claimed (pending -> syncing) before it is applied, so
    overlapping drains never apply the same entry twice.
    """

    def __init__(
        self,
        remote: RemoteApplyLayer,
        monitor: ConnectivityMonitor,
        store: Optional[SyncQueueStore] = None,
        notifier: Optional[SyncNotifier] = None,
        settings: SyncSettings = SYNC,
    ) -> None:
        self.remote = remote
        self.monitor = monitor
        self.store = store or SyncQueueStore()
        self.notifier = notifier or SyncNotifier()
        self.settings = settings
        self.logger = _ensure_logger(settings.log_path)
        self._tasks: Set[asyncio.Task] = set()
        self._drain_task: Optional[asyncio.Task] = None
        self._rerun = False
        self._applied_listeners: List[Callable[[QueuedMutation], None]] = []
        self.monitor.set_on_online(self.schedule_drain)

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> None:
        released = self.store.release_stuck()
        if released:
            self.logger.warning("Returned %s interrupted entries to pending", released)
        online = await self.monitor.start()
        if online:
            self.schedule_drain()

    async def stop(self) -> None:
        self.monitor.teardown()
        await self.wait_idle()

    def on_applied(self, callback: Callable[[QueuedMutation], None]) -> None:
        self._applied_listeners.append(callback)

    # ------------------------------------------------------------------
    # Public API
    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    async def enqueue(
        self,
        operation_type: OperationType | str,
        record_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> QueuedMutation:
        try:
            op = OperationType(operation_type)
        except ValueError:
            raise ValueError(f"Unsupported operation: {operation_type}") from None

        if op.verb is Verb.DELETE:
            clean = {"id": str(record_id)}
        else:
            clean = sanitize(op.table, payload or {})

        entry = self.store.add(op, record_id, clean)
        self.logger.debug("Queued operation %s %s for %s", entry.id, op.value, record_id)

        if self.monitor.is_online:
            self.schedule_drain()
        return entry

    def schedule_drain(self) -> asyncio.Task:
        """Start the background drain, or ask the running one to go again.

        At most one background drain exists at a time, so records from one
        burst of edits are applied one after another in queue order.
        """
        running = self._drain_task
        if running is not None and not running.done():
            self._rerun = True
            return running
        task = asyncio.get_running_loop().create_task(self._background_drain())
        self._drain_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every drain started in the background to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def drain(self) -> DrainResult:
        result = DrainResult()
        if not self.monitor.is_online:
            self.logger.debug("Offline - skipping queue processing")
            return result

        batch = self.store.pending_batch(self.settings.batch_size)
        if not batch:
            self.logger.debug("No pending operations to sync")
            return result

        self.logger.info("Processing %s pending operations", len(batch))
        self.notifier.emit(SyncEvent.SYNCING, len(batch))

        for entry in batch:
            try:
                if not self.store.claim(entry.id):
                    self.logger.debug("Entry %s already claimed", entry.id)
                    continue
                result.attempted += 1
                if await self._process(entry):
                    result.succeeded += 1
                else:
                    result.failed += 1
            except StorageError as exc:
                self.logger.error("Queue bookkeeping failed for entry %s: %s", entry.id, exc)

        if result.failed:
            self.notifier.emit(SyncEvent.FAILED)
        elif result.succeeded:
            self.notifier.emit(SyncEvent.SYNCED, result.succeeded)
        self.logger.info(
            "Drain finished: %s succeeded, %s failed", result.succeeded, result.failed
        )

        try:
            self.sweep()
        except Exception as exc:
            self.logger.error("Sweep of completed operations failed: %s", exc)
        return result

    async def force_sync_now(self) -> DrainResult:
        if not self.monitor.is_online:
            raise OfflineError("Cannot sync while offline")
        self.logger.info("Manual sync requested")
        return await self.drain()

    async def retry_failed_operations(self) -> int:
        reset = self.store.reset_failed()
        self.logger.info("Reset %s failed operations to pending", reset)
        if self.monitor.is_online:
            await self.drain()
        return reset

    def clear_failed_operations(self) -> int:
        removed = self.store.clear_failed()
        self.logger.info("Dropped %s failed operations", removed)
        return removed

    def get_queue_status(self) -> QueueStatus:
        try:
            counts = self.store.counts()
        except StorageError as exc:
            self.logger.error("Failed to get sync queue status: %s", exc)
            return QueueStatus(pending=0, failed=0, syncing=0, is_online=self.monitor.is_online)
        return QueueStatus(
            pending=counts[SyncStatus.PENDING],
            failed=counts[SyncStatus.FAILED],
            syncing=counts[SyncStatus.SYNCING],
            is_online=self.monitor.is_online,
        )

    def sweep(self, now: Optional[datetime] = None) -> int:
        cutoff = hours_ago(self.settings.completed_retention_hours, now=now)
        removed = self.store.sweep_completed(cutoff)
        if removed:
            self.logger.debug("Swept %s completed operations", removed)
        return removed

    # ------------------------------------------------------------------
    async def _background_drain(self) -> None:
        while True:
            self._rerun = False
            try:
                await self.drain()
            except Exception as exc:
                self.logger.error("Background sync failed: %s", exc)
            if not self._rerun:
                break

    async def _process(self, entry: QueuedMutation) -> bool:
        try:
            await self._apply(entry)
        except Exception as exc:
            retryable = exc.retryable if isinstance(exc, RemoteApplyError) else True
            updated = self.store.record_failure(
                entry.id,
                str(exc),
                max_retries=self.settings.max_retries,
                permanent=not retryable,
            )
            status = updated.status.value if updated else "missing"
            self.logger.warning(
                "Sync op %s (%s) failed, now %s: %s",
                entry.id,
                entry.operation_type.value,
                status,
                exc,
            )
            return False

        self.store.mark_completed(entry.id)
        self.logger.debug("Synced operation %s", entry.id)
        for listener in list(self._applied_listeners):
            try:
                listener(entry)
            except Exception as exc:
                self.logger.error("Applied listener crashed for %s: %s", entry.id, exc)
        return True

    async def _apply(self, entry: QueuedMutation) -> None:
        op = entry.operation_type
        if op.verb is Verb.DELETE:
            await self.remote.delete(op.table, entry.record_id)
            return

        try:
            data = _PAYLOAD_MODELS[op.table].model_validate(entry.payload)
        except ValidationError as exc:
            raise RemoteApplyError(f"Invalid payload for {op.value}: {exc}", retryable=False) from exc
        body = data.model_dump(exclude_unset=True, exclude=set(LOCAL_ONLY_FIELDS))

        if op.verb is Verb.CREATE:
            body.setdefault("id", entry.record_id)
            await self.remote.insert(op.table, body)
        else:
            body.pop("id", None)
            await self.remote.update(op.table, entry.record_id, body)


__all__ = ["DrainResult", "OfflineError", "SyncQueueManager", "SYNC_LOG_PATH"]

# liftfire/services/workouts.py
from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, literal_column
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from datetime_utils import to_rfc3339_utc, utc_now
from models.sync_op import OperationType
from models.workout import Exercise, Workout
from services.sanitizer import whitelist_exercise_data, whitelist_workout_data
from services.sync_queue_store import QueuedMutation, StorageError
from services.sync_service import SyncQueueManager
from storage.db import get_session


DEFAULT_DURATION_MINUTES = 30
XP_PER_EXERCISE = 5


def temp_id(prefix: str = "temp") -> str:
    """Client-side id used until the server knows the record."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def calculate_xp(duration_minutes: Optional[int], exercise_count: int) -> int:
    return (duration_minutes or DEFAULT_DURATION_MINUTES) + exercise_count * XP_PER_EXERCISE


class WorkoutService:
    """Local workout cache plus the sync-queue side effects of each edit."""

    def __init__(
        self,
        sync: SyncQueueManager,
        session_factory: Callable[[], Session] = get_session,
    ):
        self.sync = sync
        self._session_factory = session_factory
        sync.on_applied(self._on_applied)

    # ---------- local cache ----------
    def save_local(self, workout: Dict[str, Any], exercises: Iterable[Dict[str, Any]] = ()) -> None:
        """Upsert a workout and replace its exercises in one transaction."""

        clean = whitelist_workout_data(workout)
        rows = [whitelist_exercise_data(exercise) for exercise in exercises]
        try:
            with self._session_factory() as s:
                with s.begin():
                    existing = s.get(Workout, clean["id"])
                    if existing is None:
                        s.add(Workout(**clean, updated_at=to_rfc3339_utc(utc_now())))
                    else:
                        for key, value in clean.items():
                            setattr(existing, key, value)
                        existing.updated_at = to_rfc3339_utc(utc_now())
                        s.add(existing)
                    s.exec(delete(Exercise).where(Exercise.workout_id == clean["id"]))
                    for row in rows:
                        row["workout_id"] = clean["id"]
                        s.add(Exercise(**row))
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to save workout {clean.get('id')}: {exc}") from exc

    def delete_local(self, workout_id: str) -> None:
        try:
            with self._session_factory() as s:
                with s.begin():
                    s.exec(delete(Exercise).where(Exercise.workout_id == workout_id))
                    s.exec(delete(Workout).where(Workout.id == workout_id))
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete workout {workout_id}: {exc}") from exc

    def get_local(self, workout_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as s:
            workout = s.get(Workout, workout_id)
            if workout is None:
                return None
            return self._with_exercises(s, workout)

    def list_local(self, user_id: str) -> List[Dict[str, Any]]:
        with self._session_factory() as s:
            stmt = (
                select(Workout)
                .where(Workout.user_id == user_id)
                .order_by(Workout.completed_at.desc())
            )
            return [self._with_exercises(s, workout) for workout in s.exec(stmt)]

    def clear_local_data(self) -> None:
        with self._session_factory() as s:
            with s.begin():
                s.exec(delete(Exercise))
                s.exec(delete(Workout))
        self.sync.store.clear()

    # ---------- edits ----------
    async def create_workout(
        self,
        user_id: str,
        name: str,
        *,
        notes: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        exercises: Iterable[Dict[str, Any]] = (),
    ) -> Dict[str, Any]:
        now = to_rfc3339_utc(utc_now())
        workout_id = temp_id()
        exercise_rows = [self._new_exercise(workout_id, data, now) for data in exercises]
        workout = whitelist_workout_data(
            {
                "id": workout_id,
                "user_id": user_id,
                "name": name,
                "notes": notes,
                "duration_minutes": duration_minutes,
                "xp_earned": calculate_xp(duration_minutes, len(exercise_rows)),
                "completed_at": now,
                "created_at": now,
                "synced": False,
            }
        )
        if not workout.get("name"):
            raise ValueError("Workout name is required")

        self.save_local(workout, exercise_rows)
        await self.sync.enqueue(OperationType.CREATE_WORKOUT, workout_id, workout)
        for row in exercise_rows:
            await self.sync.enqueue(OperationType.CREATE_EXERCISE, row["id"], row)
        return self.get_local(workout_id)

    async def update_workout(
        self,
        workout_id: str,
        *,
        exercises: Optional[Iterable[Dict[str, Any]]] = None,
        **changes: Any,
    ) -> Optional[Dict[str, Any]]:
        existing = self.get_local(workout_id)
        if existing is None:
            return None

        patch = whitelist_workout_data(changes)
        patch.pop("id", None)
        patch.pop("synced", None)
        old_exercises = existing.pop("exercises")
        now = to_rfc3339_utc(utc_now())
        new_exercises = (
            [self._new_exercise(workout_id, data, now) for data in exercises]
            if exercises is not None
            else old_exercises
        )
        if "duration_minutes" in patch or exercises is not None:
            duration = patch.get("duration_minutes", existing.get("duration_minutes"))
            patch["xp_earned"] = calculate_xp(duration, len(new_exercises))

        updated = {**existing, **patch, "synced": False}
        self.save_local(updated, new_exercises)

        await self.sync.enqueue(OperationType.UPDATE_WORKOUT, workout_id, patch)
        if exercises is not None:
            for row in old_exercises:
                await self.sync.enqueue(OperationType.DELETE_EXERCISE, row["id"])
            for row in new_exercises:
                await self.sync.enqueue(OperationType.CREATE_EXERCISE, row["id"], row)
        return self.get_local(workout_id)

    async def delete_workout(self, workout_id: str) -> bool:
        existing = self.get_local(workout_id)
        if existing is None:
            return False
        self.delete_local(workout_id)
        # Always queued: a create still waiting in the queue would otherwise
        # resurrect the workout upstream.
        await self.sync.enqueue(OperationType.DELETE_WORKOUT, workout_id)
        return True

    # ---------- helpers ----------
    @staticmethod
    def _new_exercise(workout_id: str, data: Dict[str, Any], created_at: str) -> Dict[str, Any]:
        row = whitelist_exercise_data(data)
        row.setdefault("sets", 0)
        row.setdefault("reps", 0)
        row["id"] = temp_id("temp_ex")
        row["workout_id"] = workout_id
        row["created_at"] = created_at
        if not row.get("name"):
            raise ValueError("Exercise name is required")
        return row

    @staticmethod
    def _with_exercises(session: Session, workout: Workout) -> Dict[str, Any]:
        stmt = (
            select(Exercise)
            .where(Exercise.workout_id == workout.id)
            .order_by(Exercise.created_at.asc(), literal_column("rowid"))
        )
        data = workout.model_dump()
        data["exercises"] = [exercise.model_dump() for exercise in session.exec(stmt)]
        return data

    def _on_applied(self, entry: QueuedMutation) -> None:
        if entry.operation_type not in (OperationType.CREATE_WORKOUT, OperationType.UPDATE_WORKOUT):
            return
        if self.sync.store.open_count(entry.record_id):
            return
        with self._session_factory() as s:
            workout = s.get(Workout, entry.record_id)
            if workout is not None and not workout.synced:
                workout.synced = True
                s.add(workout)
                s.commit()


__all__ = ["WorkoutService", "calculate_xp", "temp_id"]

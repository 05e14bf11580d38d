"""Workout and exercise models: local cache tables and sync payloads."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class Workout(SQLModel, table=True):
    __tablename__ = "workouts"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    name: str
    notes: Optional[str] = None
    duration_minutes: Optional[int] = None
    xp_earned: int = 0
    completed_at: str
    created_at: str
    synced: bool = Field(default=False, index=True)
    updated_at: Optional[str] = None


class Exercise(SQLModel, table=True):
    __tablename__ = "exercises"

    id: str = Field(primary_key=True)
    workout_id: str = Field(foreign_key="workouts.id", index=True)
    name: str
    sets: int
    reps: int
    weight: Optional[float] = None
    notes: Optional[str] = None
    created_at: str


class WorkoutData(SQLModel):
    """Typed snapshot of a queued workout mutation."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    name: Optional[str] = None
    notes: Optional[str] = None
    duration_minutes: Optional[int] = None
    xp_earned: Optional[int] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    synced: Optional[bool] = None


class ExerciseData(SQLModel):
    """Typed snapshot of a queued exercise mutation."""

    id: Optional[str] = None
    workout_id: Optional[str] = None
    name: Optional[str] = None
    sets: Optional[int] = None
    reps: Optional[int] = None
    weight: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None


# Columns that only exist in the local cache and are never sent upstream.
LOCAL_ONLY_FIELDS = frozenset({"synced"})


__all__ = ["Exercise", "ExerciseData", "LOCAL_ONLY_FIELDS", "Workout", "WorkoutData"]

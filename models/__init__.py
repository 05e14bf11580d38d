"""ORM models exposed by the LiftFire sync layer."""
from .sync_op import OperationType, SyncQueueEntry, SyncStatus, TableName
from .workout import Exercise, ExerciseData, Workout, WorkoutData

__all__ = [
    "Exercise",
    "ExerciseData",
    "OperationType",
    "SyncQueueEntry",
    "SyncStatus",
    "TableName",
    "Workout",
    "WorkoutData",
]

import asyncio

import pytest

from models.sync_op import OperationType, SyncStatus, TableName
from services.sync_queue_store import StorageError
from services.workouts import WorkoutService, calculate_xp

from conftest import SlowRemote


@pytest.fixture()
def workouts(manager, session_factory):
    return WorkoutService(manager, session_factory)


def _queued(store):
    return [(entry.operation_type, entry.record_id) for entry in store.list_entries()]


def test_calculate_xp():
    assert calculate_xp(45, 2) == 55
    assert calculate_xp(None, 0) == 30
    assert calculate_xp(0, 1) == 35


def test_create_workout_saves_locally_and_queues_each_row(workouts, store):
    async def scenario():
        return await workouts.create_workout(
            "u1",
            "<b>Leg Day</b>",
            duration_minutes=45,
            exercises=[
                {"name": "Squat", "sets": 5, "reps": 5, "weight": 100},
                {"name": "Lunge", "sets": 3, "reps": "12"},
            ],
        )

    workout = asyncio.run(scenario())

    assert workout["name"] == "bLeg Day/b"
    assert workout["xp_earned"] == 55
    assert workout["synced"] is False
    assert [exercise["name"] for exercise in workout["exercises"]] == ["Squat", "Lunge"]
    assert workout["exercises"][1]["reps"] == 12

    exercise_ids = [exercise["id"] for exercise in workout["exercises"]]
    assert _queued(store) == [
        (OperationType.CREATE_WORKOUT, workout["id"]),
        (OperationType.CREATE_EXERCISE, exercise_ids[0]),
        (OperationType.CREATE_EXERCISE, exercise_ids[1]),
    ]
    assert all(entry.status is SyncStatus.PENDING for entry in store.list_entries())


def test_create_workout_requires_a_name(workouts, store):
    with pytest.raises(ValueError):
        asyncio.run(workouts.create_workout("u1", "   "))
    assert store.list_entries() == []


def test_workout_is_marked_synced_once_its_entries_are_applied(workouts, remote, feed):
    async def scenario():
        await workouts.sync.start()
        created = await workouts.create_workout("u1", "Push", exercises=[{"name": "Bench"}])
        feed.set_online(True)
        await workouts.sync.wait_idle()
        return created

    created = asyncio.run(scenario())

    assert workouts.get_local(created["id"])["synced"] is True
    sent = remote.rows[TableName.WORKOUTS][created["id"]]
    assert "synced" not in sent
    assert sent["name"] == "Push"
    assert len(remote.rows[TableName.EXERCISES]) == 1


def test_update_recomputes_xp_and_replaces_exercises(workouts, store):
    async def scenario():
        created = await workouts.create_workout(
            "u1", "Pull", duration_minutes=40, exercises=[{"name": "Row"}]
        )
        store.clear()
        updated = await workouts.update_workout(
            created["id"],
            duration_minutes=60,
            exercises=[{"name": "Chin-up"}, {"name": "Curl"}],
        )
        return created, updated

    created, updated = asyncio.run(scenario())

    assert updated["duration_minutes"] == 60
    assert updated["xp_earned"] == 70
    assert [exercise["name"] for exercise in updated["exercises"]] == ["Chin-up", "Curl"]

    entries = store.list_entries()
    assert entries[0].operation_type is OperationType.UPDATE_WORKOUT
    assert entries[0].payload == {"duration_minutes": 60, "xp_earned": 70}
    assert [entry.operation_type for entry in entries[1:]] == [
        OperationType.DELETE_EXERCISE,
        OperationType.CREATE_EXERCISE,
        OperationType.CREATE_EXERCISE,
    ]
    assert entries[1].record_id == created["exercises"][0]["id"]


def test_update_without_exercises_keeps_them(workouts, store):
    async def scenario():
        created = await workouts.create_workout("u1", "Core", exercises=[{"name": "Plank"}])
        store.clear()
        return await workouts.update_workout(created["id"], notes="felt good")

    updated = asyncio.run(scenario())
    assert updated["notes"] == "felt good"
    assert updated["xp_earned"] == 35
    assert [exercise["name"] for exercise in updated["exercises"]] == ["Plank"]
    assert _queued(store) == [(OperationType.UPDATE_WORKOUT, updated["id"])]


def test_update_missing_workout_returns_none(workouts, store):
    assert asyncio.run(workouts.update_workout("nope", name="x")) is None
    assert store.list_entries() == []


def test_delete_workout_removes_local_rows_and_queues_delete(workouts, store):
    async def scenario():
        created = await workouts.create_workout("u1", "Legs", exercises=[{"name": "Squat"}])
        store.clear()
        deleted = await workouts.delete_workout(created["id"])
        missing = await workouts.delete_workout(created["id"])
        return created, deleted, missing

    created, deleted, missing = asyncio.run(scenario())
    assert (deleted, missing) == (True, False)
    assert workouts.get_local(created["id"]) is None
    entries = store.list_entries()
    assert [(entry.operation_type, entry.payload) for entry in entries] == [
        (OperationType.DELETE_WORKOUT, {"id": created["id"]}),
    ]


def test_save_local_is_all_or_nothing(workouts):
    workout = {
        "id": "w1",
        "user_id": "u1",
        "name": "Legs",
        "completed_at": "2024-01-01T10:00:00Z",
        "created_at": "2024-01-01T10:00:00Z",
    }
    nameless = {"id": "e1", "sets": 3, "reps": 5, "created_at": "2024-01-01T10:00:00Z"}

    with pytest.raises(StorageError):
        workouts.save_local(workout, [nameless])
    assert workouts.get_local("w1") is None


def test_list_local_is_newest_first_and_scoped_to_user(workouts):
    for workout_id, user_id, completed in (
        ("w1", "u1", "2024-01-01T10:00:00Z"),
        ("w2", "u1", "2024-01-03T10:00:00Z"),
        ("w3", "u2", "2024-01-02T10:00:00Z"),
    ):
        workouts.save_local(
            {
                "id": workout_id,
                "user_id": user_id,
                "name": workout_id,
                "completed_at": completed,
                "created_at": completed,
            }
        )

    assert [workout["id"] for workout in workouts.list_local("u1")] == ["w2", "w1"]


def test_clear_local_data_empties_cache_and_queue(workouts, store):
    asyncio.run(workouts.create_workout("u1", "Arms", exercises=[{"name": "Curl"}]))

    workouts.clear_local_data()
    assert workouts.list_local("u1") == []
    assert store.list_entries() == []


def test_online_create_with_exercises_syncs_every_row(workouts, manager, store, feed):
    manager.remote = SlowRemote()
    feed.set_online(True)

    async def scenario():
        await manager.monitor.start()
        created = await workouts.create_workout(
            "u1", "Legs", exercises=[{"name": "Squat"}, {"name": "Lunge"}]
        )
        await manager.wait_idle()
        return created

    created = asyncio.run(scenario())

    assert manager.remote.max_in_flight == 1
    assert all(entry.status is SyncStatus.COMPLETED for entry in store.list_entries())
    assert len(manager.remote.rows[TableName.EXERCISES]) == 2
    assert workouts.get_local(created["id"])["synced"] is True

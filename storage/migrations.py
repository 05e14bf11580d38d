"""Ad-hoc database migrations for the LiftFire local store."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_sync_queue_table(conn) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS sync_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                operation_type TEXT NOT NULL,
                table_name TEXT NOT NULL,
                record_id TEXT NOT NULL,
                data TEXT NOT NULL,
                timestamp TEXT DEFAULT CURRENT_TIMESTAMP,
                retry_count INTEGER DEFAULT 0,
                status TEXT DEFAULT 'pending'
            )
            """
        )
    )


def ensure_sync_queue_columns(conn) -> None:
    if not _column_exists(conn, "sync_queue", "last_error"):
        conn.execute(text("ALTER TABLE sync_queue ADD COLUMN last_error TEXT"))


def ensure_sync_queue_indexes(conn) -> None:
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_sync_queue_status ON sync_queue (status)")
    )
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_sync_queue_timestamp ON sync_queue (timestamp)")
    )
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_sync_queue_record_id ON sync_queue (record_id)")
    )


def ensure_workout_columns(conn) -> None:
    if not _column_exists(conn, "workouts", "updated_at"):
        conn.execute(text("ALTER TABLE workouts ADD COLUMN updated_at TEXT"))


def run_all(engine) -> None:
    with engine.begin() as conn:
        # SQLModel creates sync_queue, but databases written by the mobile
        # client predate last_error and the indexes
        ensure_sync_queue_table(conn)
        ensure_sync_queue_columns(conn)
        ensure_sync_queue_indexes(conn)
        ensure_workout_columns(conn)


__all__ = ["run_all"]

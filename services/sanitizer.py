"""Whitelisting of mutation payloads before they are queued or sent upstream.

Every payload entering the sync queue goes through :func:`sanitize`. The
functions here are total: they never raise, unknown keys are dropped and
absent fields stay absent.
"""
from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, Mapping

from core.settings import SYNC
from datetime_utils import to_rfc3339_utc
from models.sync_op import TableName


_UNSAFE_CHARS_RE = re.compile(r"[<>\x00]")


def sanitize_text(value: Any, max_length: int = SYNC.text_max_length) -> str:
    """Trim, cap and strip markup characters and null bytes."""

    if not isinstance(value, str):
        return ""
    return _UNSAFE_CHARS_RE.sub("", value.strip()[:max_length])


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def non_negative_int(value: Any) -> int:
    return max(0, math.floor(_to_number(value)))


def non_negative_float(value: Any) -> float:
    return max(0.0, _to_number(value))


def _optional_int(value: Any):
    if value is None:
        return None
    return non_negative_int(value)


def _optional_text(value: Any):
    if value is None:
        return None
    return sanitize_text(value)


def _identifier(value: Any):
    if value is None:
        return None
    return sanitize_text(str(value))


# Returned by a cleaner when the value cannot be trusted; the key is dropped.
_DROP = object()


def _flag(value: Any):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return _DROP


def _timestamp(value: Any):
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_rfc3339_utc(value)
    return sanitize_text(str(value))


_WORKOUT_CLEANERS: Dict[str, Callable[[Any], Any]] = {
    "id": _identifier,
    "user_id": _identifier,
    "name": _optional_text,
    "notes": _optional_text,
    "duration_minutes": _optional_int,
    "xp_earned": _optional_int,
    "completed_at": _timestamp,
    "created_at": _timestamp,
    "synced": _flag,
}

_EXERCISE_CLEANERS: Dict[str, Callable[[Any], Any]] = {
    "id": _identifier,
    "workout_id": _identifier,
    "name": _optional_text,
    "sets": non_negative_int,
    "reps": non_negative_int,
    "weight": non_negative_float,
    "notes": _optional_text,
    "created_at": _timestamp,
}


def _whitelist(data: Any, cleaners: Mapping[str, Callable[[Any], Any]]) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        return {}
    result: Dict[str, Any] = {}
    for name, clean in cleaners.items():
        if name not in data:
            continue
        try:
            cleaned = clean(data[name])
        except Exception:  # pragma: no cover - cleaners are total for plain values
            continue
        if cleaned is not _DROP:
            result[name] = cleaned
    return result


def whitelist_workout_data(data: Any) -> Dict[str, Any]:
    return _whitelist(data, _WORKOUT_CLEANERS)


def whitelist_exercise_data(data: Any) -> Dict[str, Any]:
    return _whitelist(data, _EXERCISE_CLEANERS)


def sanitize(table: TableName | str, data: Any) -> Dict[str, Any]:
    """Return the whitelisted copy of ``data`` for ``table``.

    An unknown table yields an empty payload rather than an error.
    """

    try:
        kind = TableName(table)
    except ValueError:
        return {}
    if kind is TableName.WORKOUTS:
        return whitelist_workout_data(data)
    return whitelist_exercise_data(data)


__all__ = [
    "non_negative_float",
    "non_negative_int",
    "sanitize",
    "sanitize_text",
    "whitelist_exercise_data",
    "whitelist_workout_data",
]

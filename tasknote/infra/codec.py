"""Translation between backend payloads and client entities.

The backend speaks snake_case JSON with epoch-millisecond timestamps. Every
field the client knows about is listed in the tables below, in both
directions, so that nothing is dropped silently at the boundary.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Optional

from tasknote.domain.entities import Highlights, Note, StandaloneNote, Task, TaskStat, TotpSecret
from tasknote.domain.enums import TimeUnit
from tasknote.domain.updates import TaskUpdate, changed_fields

# client field -> wire field
TASK_FIELDS = {
    "id": "id",
    "title": "title",
    "completed": "completed",
    "created_at": "created_at",
    "completed_at": "completed_at",
    "task_time": "task_time",
    "time_spent": "time_spent",
    "time_unit": "time_unit",
    "sort_order": "sort_order",
    "notes": "notes",
    "highlights": "highlights",
}

NOTE_FIELDS = {
    "id": "id",
    "content": "content",
    "created_at": "created_at",
    "label": "label",
    "sort": "sort",
}

STAT_FIELDS = {
    "date": "date",
    "total_count": "total_count",
    "un_completed_count": "un_completed_count",
}

UPDATE_FIELDS = {
    "title": "title",
    "completed": "completed",
    "task_time": "task_time",
    "sort_order": "sort_order",
    "time_spent": "time_spent",
    "time_unit": "time_unit",
}

_TIMESTAMP_FIELDS = {"task_time"}

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    if isinstance(value, str):
        text = _FRACTION_RE.sub(r"\1", value.strip())
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _time_unit(value: Any) -> Optional[TimeUnit]:
    if not value:
        return None
    return TimeUnit(value)


def note_from_wire(data: dict) -> Note:
    return Note(
        id=data[NOTE_FIELDS["id"]],
        content=data.get(NOTE_FIELDS["content"]) or "",
        created_at=parse_timestamp(data.get(NOTE_FIELDS["created_at"])) or datetime.now(),
    )


def standalone_note_from_wire(data: dict) -> StandaloneNote:
    return StandaloneNote(
        id=data[NOTE_FIELDS["id"]],
        content=data.get(NOTE_FIELDS["content"]) or "",
        created_at=parse_timestamp(data.get(NOTE_FIELDS["created_at"])) or datetime.now(),
        label=data.get(NOTE_FIELDS["label"]) or "",
        sort=int(data.get(NOTE_FIELDS["sort"]) or 0),
    )


def highlights_from_wire(data: Optional[dict]) -> Optional[Highlights]:
    if not data:
        return None
    return Highlights(
        title=tuple(data.get("title") or ()),
        content=tuple(data.get("content") or ()),
    )


def task_from_wire(data: dict) -> Task:
    raw_notes = data.get(TASK_FIELDS["notes"])
    notes = None if raw_notes is None else tuple(note_from_wire(item) for item in raw_notes)
    time_spent = data.get(TASK_FIELDS["time_spent"])
    return Task(
        id=data[TASK_FIELDS["id"]],
        title=data.get(TASK_FIELDS["title"]) or "",
        completed=bool(data.get(TASK_FIELDS["completed"])),
        created_at=parse_timestamp(data.get(TASK_FIELDS["created_at"])) or datetime.now(),
        completed_at=parse_timestamp(data.get(TASK_FIELDS["completed_at"])),
        task_time=parse_timestamp(data.get(TASK_FIELDS["task_time"])),
        time_spent=float(time_spent) if time_spent is not None else None,
        time_unit=_time_unit(data.get(TASK_FIELDS["time_unit"])),
        sort_order=int(data.get(TASK_FIELDS["sort_order"]) or 0),
        notes=notes,
        highlights=highlights_from_wire(data.get(TASK_FIELDS["highlights"])),
    )


def stat_from_wire(data: dict) -> TaskStat:
    return TaskStat(
        date=date.fromisoformat(str(data[STAT_FIELDS["date"]])[:10]),
        total_count=int(data.get(STAT_FIELDS["total_count"]) or 0),
        un_completed_count=int(data.get(STAT_FIELDS["un_completed_count"]) or 0),
    )


def totp_secret_from_wire(data: dict) -> TotpSecret:
    return TotpSecret(secret=data["secret"], url=data["url"])


def new_task_to_wire(title: str, task_time: datetime) -> dict:
    return {
        TASK_FIELDS["title"]: title,
        TASK_FIELDS["completed"]: False,
        TASK_FIELDS["task_time"]: to_millis(task_time),
    }


def update_to_wire(update: TaskUpdate) -> dict:
    payload = {}
    for name, value in changed_fields(update).items():
        if name in _TIMESTAMP_FIELDS and value is not None:
            value = to_millis(value)
        elif isinstance(value, TimeUnit):
            value = value.value
        payload[UPDATE_FIELDS[name]] = value
    return payload

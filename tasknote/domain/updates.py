"""Typed partial-update requests for a task.

Each request covers one field group so that the wire translation in
``tasknote.infra.codec`` stays exhaustive: a field is sent only when it was
set on the request.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Optional, Union

from .enums import TimeUnit

UNSET: Any = object()


@dataclass(frozen=True)
class IdentityUpdate:
    title: Optional[str] = UNSET
    completed: Optional[bool] = UNSET


@dataclass(frozen=True)
class ScheduleUpdate:
    task_time: Optional[datetime] = UNSET
    sort_order: Optional[int] = UNSET


@dataclass(frozen=True)
class EffortUpdate:
    time_spent: Optional[float] = UNSET
    time_unit: Optional[TimeUnit] = UNSET


TaskUpdate = Union[IdentityUpdate, ScheduleUpdate, EffortUpdate]


def changed_fields(update: TaskUpdate) -> dict[str, Any]:
    return {
        item.name: getattr(update, item.name)
        for item in fields(update)
        if getattr(update, item.name) is not UNSET
    }


def is_empty(update: TaskUpdate) -> bool:
    return not changed_fields(update)


def moves_task(update: TaskUpdate) -> bool:
    """True when the update can move the task to a different day bucket."""
    return isinstance(update, ScheduleUpdate) and update.task_time is not UNSET

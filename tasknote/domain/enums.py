from __future__ import annotations

from enum import StrEnum


class TimeUnit(StrEnum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class NoteType(StrEnum):
    TASK = "task"
    NOTE = "note"


class WindowName(StrEnum):
    TODAY = "today"
    SELECTED = "selected"


class SessionState(StrEnum):
    INIT = "init"
    ACTIVE = "active"
    CLEARED = "cleared"


class TotpState(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    ENABLED = "enabled"

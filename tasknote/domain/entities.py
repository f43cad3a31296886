from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from .enums import TimeUnit


@dataclass(frozen=True)
class Note:
    id: int
    content: str
    created_at: datetime


@dataclass(frozen=True)
class Highlights:
    title: tuple[str, ...] = ()
    content: tuple[str, ...] = ()


@dataclass(frozen=True)
class Task:
    id: int
    title: str
    completed: bool
    created_at: datetime
    completed_at: Optional[datetime] = None
    task_time: Optional[datetime] = None
    time_spent: Optional[float] = None
    time_unit: Optional[TimeUnit] = None
    sort_order: int = 0
    # None means the payload this task was decoded from carried no notes.
    notes: Optional[tuple[Note, ...]] = ()
    highlights: Optional[Highlights] = None

    @property
    def scheduled_at(self) -> datetime:
        return self.task_time or self.created_at

    def has_note(self, note_id: int) -> bool:
        return any(note.id == note_id for note in self.notes or ())


@dataclass(frozen=True)
class TaskStat:
    date: date
    total_count: int
    un_completed_count: int

    @property
    def completed_count(self) -> int:
        return self.total_count - self.un_completed_count


@dataclass(frozen=True)
class DayStats:
    total: int
    completed: int

    @property
    def remaining(self) -> int:
        return self.total - self.completed

    @property
    def progress(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)


@dataclass(frozen=True)
class StandaloneNote:
    id: int
    content: str
    created_at: datetime
    label: str = ""
    sort: int = 0

    @property
    def pinned(self) -> bool:
        return self.sort > 0

    @property
    def tags(self) -> list[str]:
        return split_tags(self.label)


@dataclass(frozen=True)
class LoginResult:
    require_2fa: bool = False
    token: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class TotpSecret:
    secret: str
    url: str


@dataclass
class ClientSession:
    token: str
    username: str
    saved_at: datetime = field(default_factory=datetime.now)


def split_tags(label: str) -> list[str]:
    parts = label.replace("，", ",").split(",")
    return [part.strip() for part in parts if part.strip()]

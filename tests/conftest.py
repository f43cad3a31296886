from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from tasknote.domain.entities import (
    ClientSession,
    Highlights,
    LoginResult,
    Note,
    StandaloneNote,
    Task,
    TaskStat,
    TotpSecret,
)
from tasknote.domain.errors import ApiError
from tasknote.domain.updates import TaskUpdate, changed_fields
from tasknote.services.session import SessionContext
from tasknote.services.store import TaskStore
from tasknote.services.task_service import TaskService

NOW = datetime(2026, 3, 10, 9, 30)


class FakeApi:
    """In-memory backend speaking the same methods as ApiClient."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now
        self.tasks: dict[int, Task] = {}
        self.standalone: dict[int, StandaloneNote] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.failing_updates: dict[int, Exception] = {}
        self.login_requires_2fa = False
        self.totp_enabled = False
        self._id = 1
        self._note_id = 1

    # helpers for tests

    def seed(self, title: str, sort_order: int = 0, task_time: datetime | None = None, **fields) -> Task:
        task = Task(
            id=self._next_id(),
            title=title,
            completed=fields.pop("completed", False),
            created_at=fields.pop("created_at", self.now),
            task_time=task_time or self.now,
            sort_order=sort_order,
            **fields,
        )
        self.tasks[task.id] = task
        return task

    def _next_id(self) -> int:
        value = self._id
        self._id += 1
        return value

    def _next_note_id(self) -> int:
        value = self._note_id
        self._note_id += 1
        return value

    def _check(self, name: str) -> None:
        if name in self.failures:
            raise self.failures[name]

    def _omit_notes(self, task: Task) -> Task:
        return replace(task, notes=None)

    # tasks

    def fetch_tasks(self, start: datetime | None = None, end: datetime | None = None) -> list[Task]:
        self.calls.append(("fetch_tasks", start, end))
        self._check("fetch_tasks")
        tasks = [
            task
            for task in self.tasks.values()
            if (start is None or task.scheduled_at >= start) and (end is None or task.scheduled_at <= end)
        ]
        return sorted(tasks, key=lambda task: (task.sort_order, task.id))

    def fetch_task_stats(self, start: datetime, end: datetime) -> list[TaskStat]:
        self.calls.append(("fetch_task_stats", start, end))
        self._check("fetch_task_stats")
        days: dict = {}
        for task in self.tasks.values():
            if start <= task.scheduled_at <= end:
                total, open_count = days.get(task.scheduled_at.date(), (0, 0))
                days[task.scheduled_at.date()] = (total + 1, open_count + (0 if task.completed else 1))
        return [TaskStat(date=day, total_count=t, un_completed_count=o) for day, (t, o) in sorted(days.items())]

    def create_task(self, title: str, task_time: datetime) -> Task:
        self.calls.append(("create_task", title))
        self._check("create_task")
        task = Task(id=self._next_id(), title=title, completed=False, created_at=self.now, task_time=task_time)
        self.tasks[task.id] = task
        return task

    def update_task(self, task_id: int, update: TaskUpdate) -> Task:
        fields = changed_fields(update)
        self.calls.append(("update_task", task_id, fields))
        self._check("update_task")
        if task_id in self.failing_updates:
            raise self.failing_updates[task_id]
        task = replace(self.tasks[task_id], **fields)
        self.tasks[task_id] = task
        return self._omit_notes(task)

    def toggle_task(self, task_id: int) -> Task:
        self.calls.append(("toggle_task", task_id))
        self._check("toggle_task")
        task = self.tasks[task_id]
        completed = not task.completed
        task = replace(task, completed=completed, completed_at=self.now if completed else None)
        self.tasks[task_id] = task
        return self._omit_notes(task)

    def delete_task(self, task_id: int) -> None:
        self.calls.append(("delete_task", task_id))
        self._check("delete_task")
        del self.tasks[task_id]

    def search_tasks(self, query: str) -> list[Task]:
        self.calls.append(("search_tasks", query))
        self._check("search_tasks")
        results = []
        for task in self.tasks.values():
            fragments = [
                note.content.replace(query, f"<mark>{query}</mark>")
                for note in task.notes or ()
                if query in note.content
            ]
            titles = [task.title.replace(query, f"<mark>{query}</mark>")] if query in task.title else []
            if fragments or titles:
                results.append(
                    replace(task, notes=None, highlights=Highlights(title=tuple(titles), content=tuple(fragments)))
                )
        return results

    # notes

    def create_note(self, task_id: int, content: str) -> Note:
        self.calls.append(("create_note", task_id, content))
        self._check("create_note")
        note = Note(id=self._next_note_id(), content=content, created_at=self.now)
        task = self.tasks[task_id]
        self.tasks[task_id] = replace(task, notes=(task.notes or ()) + (note,))
        return note

    def update_note(self, note_id: int, content: str) -> Note:
        self.calls.append(("update_note", note_id, content))
        self._check("update_note")
        for task in self.tasks.values():
            for note in task.notes or ():
                if note.id == note_id:
                    updated = replace(note, content=content)
                    notes = tuple(updated if item.id == note_id else item for item in task.notes)
                    self.tasks[task.id] = replace(task, notes=notes)
                    return updated
        raise ApiError("note not found", status=404)

    def delete_note(self, note_id: int) -> None:
        self.calls.append(("delete_note", note_id))
        self._check("delete_note")
        if note_id in self.standalone:
            del self.standalone[note_id]
            return
        for task in self.tasks.values():
            if any(note.id == note_id for note in task.notes or ()):
                notes = tuple(note for note in task.notes if note.id != note_id)
                self.tasks[task.id] = replace(task, notes=notes)
                return
        raise ApiError("note not found", status=404)

    def fetch_standalone_notes(self) -> list[StandaloneNote]:
        self.calls.append(("fetch_standalone_notes",))
        self._check("fetch_standalone_notes")
        return list(self.standalone.values())

    def create_standalone_note(self, content: str, label: str = "") -> StandaloneNote:
        self.calls.append(("create_standalone_note", content, label))
        self._check("create_standalone_note")
        note = StandaloneNote(
            id=self._next_note_id(),
            content=content,
            created_at=self.now + timedelta(minutes=self._note_id),
            label=label,
        )
        self.standalone[note.id] = note
        return note

    def update_standalone_note(self, note_id: int, content: str, label: str, sort: int) -> StandaloneNote:
        self.calls.append(("update_standalone_note", note_id, content, label, sort))
        self._check("update_standalone_note")
        note = replace(self.standalone[note_id], content=content, label=label, sort=sort)
        self.standalone[note_id] = note
        return note

    def upload_image(self, path: Path) -> str:
        self.calls.append(("upload_image", path))
        self._check("upload_image")
        return f"http://files.test/uploads/{path.name}"

    # auth

    def login(self, username: str, password: str, totp_token: str | None = None) -> LoginResult:
        self.calls.append(("login", username, totp_token))
        self._check("login")
        if self.login_requires_2fa and not totp_token:
            return LoginResult(require_2fa=True)
        return LoginResult(token=f"token-{username}", username=username)

    def register(self, username: str, password: str) -> None:
        self.calls.append(("register", username))
        self._check("register")

    def reset_password(self, username: str, new_password: str, totp_token: str) -> None:
        self.calls.append(("reset_password", username, totp_token))
        self._check("reset_password")

    def totp_status(self) -> bool:
        self.calls.append(("totp_status",))
        self._check("totp_status")
        return self.totp_enabled

    def totp_generate(self) -> TotpSecret:
        self.calls.append(("totp_generate",))
        self._check("totp_generate")
        return TotpSecret(secret="JBSWY3DPEHPK3PXP", url="otpauth://totp/tasknote:alice?secret=JBSWY3DPEHPK3PXP")

    def totp_verify(self, code: str) -> None:
        self.calls.append(("totp_verify", code))
        self._check("totp_verify")
        self.totp_enabled = True

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class StubResponse:
    def __init__(self, status_code: int = 200, payload=None) -> None:
        self.status_code = status_code
        self.content = b"" if payload is None else json.dumps(payload).encode()
        self._payload = payload

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class StubHttp:
    """Stands in for ``requests.Session``, replaying canned responses."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[dict] = []

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSessionRepo:
    def __init__(self, stored: ClientSession | None = None) -> None:
        self.stored = stored

    def load(self) -> ClientSession | None:
        return self.stored

    def save(self, token: str, username: str) -> ClientSession:
        self.stored = ClientSession(token=token, username=username)
        return self.stored

    def clear(self) -> None:
        self.stored = None


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def session() -> SessionContext:
    context = SessionContext(FakeSessionRepo())
    context.activate("token-alice", "alice")
    return context


@pytest.fixture
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture
def alerts() -> list[str]:
    return []


@pytest.fixture
def service(api: FakeApi, store: TaskStore, session: SessionContext, alerts: list[str]) -> TaskService:
    return TaskService(api, store, session, notify=alerts.append, clock=lambda: NOW, reorder_workers=4)

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Sequence

from tasknote.config import SETTINGS
from tasknote.domain.entities import DayStats, Note, Task, TaskStat
from tasknote.domain.enums import WindowName
from tasknote.domain.errors import ApiError, AuthenticationError
from tasknote.domain.updates import (
    IdentityUpdate,
    ScheduleUpdate,
    TaskUpdate,
    changed_fields,
    is_empty,
    moves_task,
)
from tasknote.infra.api_client import ApiClient

from . import projections
from .reconcile import completion_fields, reconcile
from .session import SessionContext
from .sort_assigner import assign_sort_orders
from .store import TaskStore

logger = logging.getLogger(__name__)


def _log_alert(message: str) -> None:
    logger.warning("%s", message)


class TaskService:
    """Applies user intents to the backend and reconciles the task store.

    Each operation calls the API first and touches the store only after the
    call succeeds. Failures are logged and leave the store as it was; a
    rejected token signs the user out.
    """

    def __init__(
        self,
        api: ApiClient,
        store: TaskStore,
        session: SessionContext,
        notify: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        reorder_workers: int | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._session = session
        self._notify = notify or _log_alert
        self._clock = clock
        self._reorder_workers = reorder_workers or SETTINGS.reorder_workers
        today = clock().date()
        self.selected_date: date = today
        self.view_month: date = today.replace(day=1)
        session.on_clear(store.clear)

    @property
    def store(self) -> TaskStore:
        return self._store

    # views

    @property
    def today(self) -> date:
        return self._clock().date()

    @property
    def today_tasks(self) -> list[Task]:
        return self._store.window(WindowName.TODAY)

    @property
    def selected_date_tasks(self) -> list[Task]:
        return self._store.window(WindowName.SELECTED)

    @property
    def selected_task(self) -> Task | None:
        return self._store.selected

    def active_count(self) -> int:
        return projections.active_count(self.today_tasks)

    def today_stats(self) -> DayStats:
        return projections.daily_stats(self.today_tasks, self.today)

    def cell_stats(self, day: date) -> TaskStat:
        return projections.monthly_cell_stats(self._store.stats, day)

    def open_task(self, task: Task) -> Task:
        return self._store.select(task)

    def close_detail(self) -> None:
        self._store.close_detail()

    # loading

    def refresh_today(self) -> bool:
        start, end = projections.day_range(self.today)
        try:
            tasks = self._api.fetch_tasks(start, end)
        except ApiError as exc:
            self._fail("load today's tasks", exc)
            return False
        self._store.set_window(WindowName.TODAY, tasks)
        return True

    def refresh_selected(self) -> bool:
        start, end = projections.day_range(self.selected_date)
        try:
            tasks = self._api.fetch_tasks(start, end)
        except ApiError as exc:
            self._fail(f"load tasks for {self.selected_date}", exc)
            return False
        self._store.set_window(WindowName.SELECTED, tasks)
        return True

    def refresh_stats(self) -> bool:
        first, last = projections.month_grid_range(self.view_month)
        start, _ = projections.day_range(first)
        _, end = projections.day_range(last)
        try:
            stats = self._api.fetch_task_stats(start, end)
        except ApiError as exc:
            self._fail("load calendar stats", exc)
            return False
        self._store.set_stats(stats)
        return True

    def refresh_windows(self) -> bool:
        today_ok = self.refresh_today()
        return self.refresh_selected() and today_ok

    def refresh_all(self) -> bool:
        stats_ok = self.refresh_stats()
        return self.refresh_windows() and stats_ok

    def select_date(self, day: date) -> bool:
        self.selected_date = day
        return self.refresh_selected()

    def change_month(self, month: date) -> bool:
        self.view_month = month.replace(day=1)
        return self.refresh_stats()

    # task mutations

    def add_task(self, title: str, note_content: str = "") -> Task | None:
        title = title.strip()
        if not title:
            self._notify("Task title must not be empty")
            return None

        created = None
        try:
            created = self._api.create_task(title, self._clock())
            if note_content.strip():
                self._api.create_note(created.id, note_content)
        except ApiError as exc:
            self._fail("add task", exc)
            self._notify("Failed to add task")
            if created is not None and self._session.is_active:
                self.refresh_all()
            return None

        self.refresh_all()
        return self._store.get(created.id) or created

    def toggle_task(self, task_id: int) -> Task | None:
        if not self._known(task_id):
            return None
        try:
            server = self._api.toggle_task(task_id)
        except ApiError as exc:
            self._fail(f"toggle task {task_id}", exc)
            return None

        self._store.patch(task_id, **completion_fields(server))
        self.refresh_stats()
        return self._store.get(task_id)

    def delete_task(self, task_id: int) -> bool:
        if not self._known(task_id):
            return False
        try:
            self._api.delete_task(task_id)
        except ApiError as exc:
            self._fail(f"delete task {task_id}", exc)
            return False

        self._store.remove(task_id)
        self.refresh_stats()
        return True

    def update_task(self, task_id: int, update: TaskUpdate) -> Task | None:
        if is_empty(update):
            return self._store.get(task_id)
        local = self._store.get(task_id)
        try:
            server = self._api.update_task(task_id, update)
        except ApiError as exc:
            self._fail(f"update task {task_id}", exc)
            return None

        if moves_task(update):
            # Windows are date-range queries; the task may now belong to another day.
            selected = self._store.selected
            self.refresh_windows()
            self.refresh_stats()
            if self._session.is_active and selected is not None and selected.id == task_id:
                self._store.select(selected)
                self._store.merge(server)
            return self._store.get(task_id) or reconcile(server, local)

        self._store.merge(server)
        if "completed" in changed_fields(update):
            self.refresh_stats()
        return self._store.get(task_id) or reconcile(server, local)

    def rename_task(self, task_id: int, title: str) -> Task | None:
        title = title.strip()
        if not title:
            self._notify("Task title must not be empty")
            return None
        return self.update_task(task_id, IdentityUpdate(title=title))

    def move_to_today(self, task_id: int) -> Task | None:
        return self.update_task(task_id, ScheduleUpdate(task_time=self._clock()))

    def reorder_tasks(self, new_order: Sequence[Task], window: str = WindowName.TODAY) -> list[int] | None:
        previous = self._store.window(window)
        if sorted(task.id for task in new_order) != sorted(task.id for task in previous):
            logger.warning("Ignoring reorder of %s: task set differs from the window", window)
            return None

        # Only the order comes from the caller; field values come from the store.
        current = {task.id: task for task in previous}
        assignment = assign_sort_orders([current[task.id] for task in new_order], previous)
        self._store.set_window(window, assignment.tasks)
        for task in assignment.changed:
            self._store.patch(task.id, sort_order=task.sort_order)
        if not assignment.changed:
            return []

        failures: list[ApiError] = []
        workers = min(self._reorder_workers, len(assignment.changed))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._api.update_task, task.id, ScheduleUpdate(sort_order=task.sort_order))
                for task in assignment.changed
            ]
            for future in as_completed(futures):
                try:
                    future.result()
                except ApiError as exc:
                    failures.append(exc)

        if failures:
            auth_failure = next((exc for exc in failures if isinstance(exc, AuthenticationError)), None)
            self._fail(f"save order of {window}", auth_failure or failures[0])
            if self._session.is_active:
                self.refresh_all()
            return None
        return [task.id for task in assignment.changed]

    # note mutations

    def add_note_to_task(self, task_id: int, content: str) -> Note | None:
        if not content.strip():
            return None
        try:
            note = self._api.create_note(task_id, content)
        except ApiError as exc:
            self._fail(f"add note to task {task_id}", exc)
            return None

        def append(notes: tuple[Note, ...]) -> tuple[Note, ...]:
            return tuple(item for item in notes if item.id != note.id) + (note,)

        self._store.edit_notes(task_id, append)
        return note

    def update_note(self, task_id: int, note_id: int, content: str) -> Note | None:
        if not self._has_note(task_id, note_id):
            return None
        try:
            note = self._api.update_note(note_id, content)
        except ApiError as exc:
            self._fail(f"update note {note_id}", exc)
            return None

        self._store.edit_notes(
            task_id, lambda notes: tuple(note if item.id == note_id else item for item in notes)
        )
        return note

    def delete_note(self, task_id: int, note_id: int) -> bool:
        if not self._has_note(task_id, note_id):
            return False
        try:
            self._api.delete_note(note_id)
        except ApiError as exc:
            self._fail(f"delete note {note_id}", exc)
            return False

        self._store.edit_notes(task_id, lambda notes: tuple(item for item in notes if item.id != note_id))
        return True

    # search and attachments

    def search(self, query: str) -> list[Task]:
        if not query.strip():
            return []
        try:
            return self._api.search_tasks(query.strip())
        except ApiError as exc:
            self._fail(f"search for {query!r}", exc)
            return []

    def embed_image(self, content: str, start: int, end: int, path: Path) -> str:
        try:
            url = self._api.upload_image(path)
        except ApiError as exc:
            self._fail(f"upload {path.name}", exc)
            self._notify("Image upload failed")
            return content
        except OSError:
            logger.exception("Failed to read %s", path)
            self._notify("Image upload failed")
            return content
        return f"{content[:start]}![image]({url}){content[end:]}"

    def _known(self, task_id: int) -> bool:
        if self._store.contains(task_id):
            return True
        logger.warning("Task %s is not loaded; ignoring", task_id)
        return False

    def _has_note(self, task_id: int, note_id: int) -> bool:
        task = self._store.get(task_id)
        if task is not None and task.has_note(note_id):
            return True
        logger.warning("Note %s is not loaded under task %s; ignoring", note_id, task_id)
        return False

    def _fail(self, action: str, exc: ApiError) -> None:
        if isinstance(exc, AuthenticationError):
            logger.warning("Failed to %s: session rejected, signing out", action)
            self._session.clear()
            return
        logger.error("Failed to %s: %s", action, exc, exc_info=exc)

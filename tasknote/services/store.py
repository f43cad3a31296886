from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable, Optional

from tasknote.domain.entities import Note, Task, TaskStat

from .reconcile import reconcile

NotesEdit = Callable[[tuple[Note, ...]], tuple[Note, ...]]


def _normalize(task: Task) -> Task:
    if task.notes is None or task.highlights is not None:
        return replace(task, notes=task.notes or (), highlights=None)
    return task


class TaskStore:
    """Client-side copy of the tasks loaded into each date window.

    Every mutation is applied to every place a task currently appears: each
    window list and the task open in the detail view.
    """

    def __init__(self) -> None:
        self._windows: dict[str, list[Task]] = {}
        self._selected: Optional[Task] = None
        self._stats: list[TaskStat] = []

    # windows

    def set_window(self, name: str, tasks: Iterable[Task]) -> None:
        self._windows[name] = [_normalize(task) for task in tasks]

    def window(self, name: str) -> list[Task]:
        return list(self._windows.get(name, ()))

    def window_names(self) -> list[str]:
        return list(self._windows)

    def get(self, task_id: int) -> Optional[Task]:
        task = self._find_in_windows(task_id)
        if task is not None:
            return task
        if self._selected is not None and self._selected.id == task_id:
            return self._selected
        return None

    def contains(self, task_id: int) -> bool:
        return self.get(task_id) is not None

    def _find_in_windows(self, task_id: int) -> Optional[Task]:
        for tasks in self._windows.values():
            for task in tasks:
                if task.id == task_id:
                    return task
        return None

    # mutations

    def upsert(self, task: Task, window: str | None = None) -> None:
        task = _normalize(task)
        found = self._apply(task.id, lambda _: task)
        if not found and window is not None:
            self._windows.setdefault(window, []).append(task)

    def patch(self, task_id: int, **changes) -> bool:
        if not changes:
            return False
        return self._apply(task_id, lambda task: replace(task, **changes))

    def merge(self, server: Task) -> bool:
        return self._apply(server.id, lambda local: reconcile(server, local))

    def edit_notes(self, task_id: int, edit: NotesEdit) -> bool:
        return self._apply(task_id, lambda task: replace(task, notes=edit(task.notes or ())))

    def remove(self, task_id: int) -> bool:
        removed = False
        for name, tasks in self._windows.items():
            kept = [task for task in tasks if task.id != task_id]
            if len(kept) != len(tasks):
                self._windows[name] = kept
                removed = True
        if self._selected is not None and self._selected.id == task_id:
            self._selected = None
            removed = True
        return removed

    def clear(self) -> None:
        self._windows.clear()
        self._selected = None
        self._stats = []

    def _apply(self, task_id: int, change: Callable[[Task], Task]) -> bool:
        found = False
        for tasks in self._windows.values():
            for index, task in enumerate(tasks):
                if task.id == task_id:
                    tasks[index] = change(task)
                    found = True
        if self._selected is not None and self._selected.id == task_id:
            self._selected = change(self._selected)
            found = True
        return found

    # detail focus

    @property
    def selected(self) -> Optional[Task]:
        return self._selected

    def select(self, task: Task) -> Task:
        current = self._find_in_windows(task.id)
        self._selected = current if current is not None else _normalize(task)
        return self._selected

    def close_detail(self) -> None:
        self._selected = None

    # calendar stats

    @property
    def stats(self) -> list[TaskStat]:
        return list(self._stats)

    def set_stats(self, stats: Iterable[TaskStat]) -> None:
        self._stats = list(stats)

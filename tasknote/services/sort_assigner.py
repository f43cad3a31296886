from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from tasknote.domain.entities import Task

SORT_STEP = 100


@dataclass(frozen=True)
class SortAssignment:
    tasks: list[Task]
    changed: list[Task]


def assign_sort_orders(
    new_order: Sequence[Task],
    previous: Iterable[Task] | None = None,
    step: int = SORT_STEP,
) -> SortAssignment:
    """Renumber ``new_order`` as step, 2*step, ... and report what moved.

    A task counts as changed when its new value differs from its value in
    ``previous`` (or from its own value when ``previous`` is omitted). Tasks
    missing from ``previous`` are not reported.
    """
    if step <= 0:
        raise ValueError("step must be positive")
    seen: set[int] = set()
    for task in new_order:
        if task.id in seen:
            raise ValueError(f"task {task.id} appears twice in the new order")
        seen.add(task.id)

    before = {task.id: task.sort_order for task in (previous if previous is not None else new_order)}
    tasks = [replace(task, sort_order=(index + 1) * step) for index, task in enumerate(new_order)]
    changed = [task for task in tasks if task.id in before and before[task.id] != task.sort_order]
    return SortAssignment(tasks=tasks, changed=changed)

"""Merge policy for server responses into locally held tasks.

Field groups and who wins:

* identity (``id``, ``title``, ``completed``, ``completed_at``,
  ``created_at``): server
* schedule (``task_time``, ``sort_order``): server
* effort (``time_spent``, ``time_unit``): server
* ``notes``: local, unless the server payload carried a notes list
* ``highlights``: dropped; they only live on search results
"""
from __future__ import annotations

from dataclasses import replace
from typing import Optional

from tasknote.domain.entities import Task


def reconcile(server: Task, local: Optional[Task]) -> Task:
    if server.notes is not None:
        notes = server.notes
    elif local is not None:
        notes = local.notes or ()
    else:
        notes = ()
    return replace(server, notes=notes, highlights=None)


def completion_fields(server: Task) -> dict:
    return {"completed": server.completed, "completed_at": server.completed_at}

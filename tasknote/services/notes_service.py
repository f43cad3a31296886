from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from tasknote.domain.entities import StandaloneNote
from tasknote.domain.errors import ApiError, AuthenticationError
from tasknote.infra.api_client import ApiClient

from .session import SessionContext

logger = logging.getLogger(__name__)

PIN_SORT = 100


def sort_notes(notes: Iterable[StandaloneNote]) -> list[StandaloneNote]:
    """Pinned notes first, then newest first."""
    return sorted(notes, key=lambda note: (-note.sort, -note.created_at.timestamp()))


def all_tags(notes: Iterable[StandaloneNote]) -> list[str]:
    return sorted({tag for note in notes for tag in note.tags})


def filter_by_tags(notes: Iterable[StandaloneNote], selected: Iterable[str]) -> list[StandaloneNote]:
    wanted = set(selected)
    if not wanted:
        return list(notes)
    return [note for note in notes if wanted.intersection(note.tags)]


class NotesService:
    """The note-only collection kept apart from tasks."""

    def __init__(self, api: ApiClient, session: SessionContext) -> None:
        self._api = api
        self._session = session
        self.notes: list[StandaloneNote] = []
        session.on_clear(self._forget)

    def get(self, note_id: int) -> StandaloneNote | None:
        return next((note for note in self.notes if note.id == note_id), None)

    def load(self) -> bool:
        try:
            notes = self._api.fetch_standalone_notes()
        except ApiError as exc:
            self._fail("load notes", exc)
            return False
        self.notes = sort_notes(notes)
        return True

    def add(self, content: str, label: str = "") -> StandaloneNote | None:
        if not content.strip():
            return None
        try:
            note = self._api.create_standalone_note(content, label.strip())
        except ApiError as exc:
            self._fail("add note", exc)
            return None
        self.notes = sort_notes([note, *self.notes])
        return note

    def update_content(self, note_id: int, content: str) -> StandaloneNote | None:
        note = self.get(note_id)
        if note is None:
            return None
        return self._save(replace(note, content=content))

    def relabel(self, note_id: int, label: str) -> StandaloneNote | None:
        note = self.get(note_id)
        if note is None:
            return None
        return self._save(replace(note, label=label.strip()))

    def toggle_pin(self, note_id: int) -> StandaloneNote | None:
        note = self.get(note_id)
        if note is None:
            return None
        return self._save(replace(note, sort=0 if note.pinned else PIN_SORT))

    def delete(self, note_id: int) -> bool:
        if self.get(note_id) is None:
            return False
        try:
            self._api.delete_note(note_id)
        except ApiError as exc:
            self._fail(f"delete note {note_id}", exc)
            return False
        self.notes = [note for note in self.notes if note.id != note_id]
        return True

    def _save(self, note: StandaloneNote) -> StandaloneNote | None:
        try:
            saved = self._api.update_standalone_note(note.id, note.content, note.label, note.sort)
        except ApiError as exc:
            self._fail(f"update note {note.id}", exc)
            return None
        self.notes = sort_notes(saved if item.id == saved.id else item for item in self.notes)
        return saved

    def _forget(self) -> None:
        self.notes = []

    def _fail(self, action: str, exc: ApiError) -> None:
        if isinstance(exc, AuthenticationError):
            logger.warning("Failed to %s: session rejected, signing out", action)
            self._session.clear()
            return
        logger.error("Failed to %s: %s", action, exc, exc_info=exc)

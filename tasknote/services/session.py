from __future__ import annotations

import logging
from typing import Callable

from tasknote.domain.enums import SessionState
from tasknote.infra.session_repository import SessionRepository

logger = logging.getLogger(__name__)


class SessionContext:
    """Signed-in user's token, persisted between runs.

    Lifecycle: ``init`` until ``load`` runs, then ``active`` while a token is
    held, ``cleared`` after logout or a rejected token.
    """

    def __init__(self, repo: SessionRepository) -> None:
        self._repo = repo
        self._token: str | None = None
        self._username: str | None = None
        self.state = SessionState.INIT
        self._on_clear: list[Callable[[], None]] = []

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def load(self) -> bool:
        stored = self._repo.load()
        if stored is None:
            self.state = SessionState.CLEARED
            return False
        self._token = stored.token
        self._username = stored.username
        self.state = SessionState.ACTIVE
        return True

    def activate(self, token: str, username: str) -> None:
        self._repo.save(token, username)
        self._token = token
        self._username = username
        self.state = SessionState.ACTIVE
        logger.info("Signed in as %s", username)

    def clear(self) -> None:
        was_active = self.is_active
        self._repo.clear()
        self._token = None
        self._username = None
        self.state = SessionState.CLEARED
        if was_active:
            logger.info("Session cleared")
        for callback in list(self._on_clear):
            callback()

    def on_clear(self, callback: Callable[[], None]) -> None:
        self._on_clear.append(callback)

from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from tasknote.domain.entities import ClientSession

from .db import SessionLocal
from .models import ClientSessionModel

# The store keeps at most one signed-in user.
SESSION_ROW_ID = 1


def _to_entity(model: ClientSessionModel) -> ClientSession:
    return ClientSession(
        token=model.token,
        username=model.username,
        saved_at=model.updated_at,
    )


class SessionRepository:
    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def load(self) -> Optional[ClientSession]:
        with self._session_factory() as session:
            row = session.scalar(
                select(ClientSessionModel).where(ClientSessionModel.id == SESSION_ROW_ID)
            )
            return _to_entity(row) if row else None

    def save(self, token: str, username: str) -> ClientSession:
        with self._session_factory() as session:
            row = session.get(ClientSessionModel, SESSION_ROW_ID)
            if row is None:
                row = ClientSessionModel(id=SESSION_ROW_ID, token=token, username=username)
                session.add(row)
            else:
                row.token = token
                row.username = username
            session.commit()
            session.refresh(row)
            return _to_entity(row)

    def clear(self) -> None:
        with self._session_factory() as session:
            session.execute(delete(ClientSessionModel))
            session.commit()

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


def utcnow() -> datetime:
    return datetime.utcnow()


class ClientSessionModel(Base):
    __tablename__ = "client_session"

    id = Column(Integer, primary_key=True)
    token = Column(Text, nullable=False)
    username = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

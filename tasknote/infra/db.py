from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from tasknote.config import SETTINGS

engine = create_engine(SETTINGS.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db(bind=None) -> None:
    bind = bind or engine
    # Imported for its side effect of registering the tables on Base.
    from tasknote.infra import models  # noqa: F401

    Base.metadata.create_all(bind)
    with bind.connect() as connection:
        connection.execute(text("SELECT 1"))

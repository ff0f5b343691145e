from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_URL


def make_engine(url: str) -> Engine:
    connect_args: dict = {}
    if url.startswith("sqlite"):
        # worker threads share the engine; wait on writer locks instead of failing
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(
        url,
        echo=False,              # True to see the queries
        future=True,
        connect_args=connect_args,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


def configure(url: str) -> Engine:
    """Point the module-level engine and session factory at another database."""
    global engine
    engine.dispose()
    engine = make_engine(url)
    SessionLocal.configure(bind=engine)
    return engine


class Base(DeclarativeBase):
    """ORM base for every model."""
    pass


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager handling the session lifecycle:
    - commit when everything went fine
    - rollback on exceptions
    - always close
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create the tables if they do not exist."""
    from . import auth_models, models  # noqa: F401  (register tables on the metadata)

    Base.metadata.create_all(bind=engine)

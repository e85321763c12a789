from contextlib import contextmanager

from flask import current_app
from sqlalchemy import create_engine, select, func, cast, Integer
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class Database:
    """
    Engine plus session factory for one database.

    ``session_scope()`` is the unit of work handed to the services: it
    commits when the block exits normally and rolls back on any exception.
    """

    def __init__(self, url, echo=False):
        engine_kwargs = {}
        if url.startswith("sqlite"):
            # pooled connections move between request threads
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in IN_MEMORY_URLS:
            # one shared connection, otherwise every session sees an empty db
            engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, echo=echo, future=True, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )

    def create_all(self):
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self):
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def next_identifier(session, column, prefix):
    """
    Return the next ``<prefix><n>`` id for ``column``, e.g. ``U7`` after ``U6``.

    Ordering is numeric, so ``U10`` follows ``U9``.
    """
    suffix = cast(func.substr(column, len(prefix) + 1), Integer)
    current = session.execute(
        select(func.max(suffix)).where(column.like(f"{prefix}%"))
    ).scalar()
    return f"{prefix}{(current or 0) + 1}"


def get_db():
    return current_app.extensions["db"]

"""Engine and session factory for the relay database."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for `database_url`.

    SQLite connections are shared across the request thread pool, and an
    in-memory database is pinned to one connection so every request sees
    the same tables.
    """
    kwargs: dict = {"echo": echo, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    # Import for side effect: registers the table on Base.metadata
    from privacy_relay.storage import tables  # noqa: F401

    Base.metadata.create_all(engine)

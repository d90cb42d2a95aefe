"""Engine and session factory construction."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from proposals.db.base import Base
from proposals.db import models  # noqa: F401  (registers tables on Base.metadata)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker:
    """Build a session factory bound to ``database_url`` with the schema in place."""
    engine = create_db_engine(database_url, echo=echo)
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)

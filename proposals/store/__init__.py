"""Persistence layer for proposals."""

from typing import Optional

from proposals.core.config import Settings, get_settings

from .base import ProposalStore
from .memory import InMemoryProposalStore
from .sql import SqlProposalStore


def get_store(settings: Optional[Settings] = None) -> ProposalStore:
    """Build the proposal store selected by ``settings.store_backend``.

    ``memory`` keeps proposals in process; ``sql`` persists them to
    ``settings.database_url`` and creates the schema on first use.
    """
    settings = settings or get_settings()

    if settings.store_backend == "memory":
        return InMemoryProposalStore()

    if settings.store_backend == "sql":
        from proposals.db.session import create_session_factory

        factory = create_session_factory(settings.database_url, echo=settings.database_echo)
        return SqlProposalStore(factory)

    raise ValueError(f"Unsupported store backend: {settings.store_backend}")


__all__ = [
    "ProposalStore",
    "InMemoryProposalStore",
    "SqlProposalStore",
    "get_store",
]

"""In-memory proposal store."""

import threading
from typing import Dict, List, Optional

from proposals.core.errors import ConflictError, ProposalNotFoundError
from proposals.core.models import Proposal, ProposalStatus

from .base import ProposalStore


class InMemoryProposalStore(ProposalStore):
    """Store proposals in local memory.

    Useful for tests or single-process deployments. Data is not persisted
    across restarts. Each proposal has its own lock, so writes to different
    proposals never wait on each other.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Proposal] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, proposal_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(proposal_id)
            if lock is None:
                lock = self._locks[proposal_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    def get(self, proposal_id: str) -> Optional[Proposal]:
        with self._lock_for(proposal_id):
            record = self._records.get(proposal_id)
            return record.model_copy(deep=True) if record else None

    def add(self, proposal: Proposal) -> Proposal:
        with self._lock_for(proposal.id):
            if proposal.id in self._records:
                raise ConflictError(
                    f"Proposal {proposal.id} already exists", proposal.id
                )
            stored = proposal.model_copy(deep=True)
            stored.version = 1
            self._records[proposal.id] = stored
            return stored.model_copy(deep=True)

    def put(self, proposal: Proposal) -> Proposal:
        with self._lock_for(proposal.id):
            current = self._records.get(proposal.id)
            if current is None:
                raise ProposalNotFoundError(proposal.id)
            if current.version != proposal.version:
                raise ConflictError(
                    f"Proposal {proposal.id} was modified concurrently "
                    f"(read version {proposal.version}, stored {current.version})",
                    proposal.id,
                )
            stored = proposal.model_copy(deep=True)
            stored.version = current.version + 1
            self._records[proposal.id] = stored
            return stored.model_copy(deep=True)

    def list(
        self,
        *,
        status: Optional[ProposalStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Proposal]:
        with self._registry_lock:
            records = list(self._records.values())
        if status is not None:
            records = [r for r in records if r.status == status]
        if created_by is not None:
            records = [r for r in records if r.created_by == created_by]
        records.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in records]

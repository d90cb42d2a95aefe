"""Proposal store contract.

A store holds proposal records keyed by id and supports an atomic
read-modify-write per record through optimistic versioning:

1. ``get`` returns a private copy carrying the stored ``version``
2. the caller mutates the copy
3. ``put`` writes it back only if the stored version is unchanged,
   bumping the version; otherwise it raises ``ConflictError``

Records for different proposals never contend.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from proposals.core.models import Proposal, ProposalStatus


class ProposalStore(ABC):
    """Abstract base class for proposal persistence backends."""

    @abstractmethod
    def get(self, proposal_id: str) -> Optional[Proposal]:
        """Return a detached copy of the proposal, or None if unknown."""

    @abstractmethod
    def add(self, proposal: Proposal) -> Proposal:
        """Insert a new proposal.

        Raises:
            ConflictError: If a proposal with the same id already exists
        """

    @abstractmethod
    def put(self, proposal: Proposal) -> Proposal:
        """Write back a proposal previously obtained from ``get``.

        Returns:
            The stored copy with its version incremented

        Raises:
            ProposalNotFoundError: If the proposal was never added
            ConflictError: If another write landed since the copy was read
        """

    @abstractmethod
    def list(
        self,
        *,
        status: Optional[ProposalStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Proposal]:
        """Return proposals ordered by creation time, optionally filtered."""

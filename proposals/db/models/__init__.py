"""Database models for proposals."""

from proposals.db.models.proposal import (
    ApprovalStepRecord,
    ProposalHistoryRecord,
    ProposalRecord,
)

__all__ = [
    "ProposalRecord",
    "ApprovalStepRecord",
    "ProposalHistoryRecord",
]

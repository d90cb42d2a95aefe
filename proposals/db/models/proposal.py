"""Proposal workflow database models.

Stores proposals, their approver steps (all rounds) and the transition
history.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from proposals.db.base import Base
from proposals.db.types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProposalRecord(Base):
    """
    Root row of a proposal.

    ``version`` is bumped on every committed write and compared on update
    to detect concurrent modifications.
    """
    __tablename__ = "proposals"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Workflow state
    status = Column(String(50), nullable=False, default="DRAFT", index=True)
    type = Column(String(50), nullable=False, default="general")

    # Type-specific details
    budget = Column(String(255), nullable=True)
    timeline = Column(String(255), nullable=True)
    justification = Column(Text, nullable=True)
    department = Column(String(255), nullable=True)
    field_values = Column(JSON, nullable=False, default=dict)

    # Parties
    created_by = Column(String(64), nullable=False, index=True)
    created_by_name = Column(String(255), nullable=False, default="")
    assigned_to = Column(String(64), nullable=False, index=True)
    assigned_to_name = Column(String(255), nullable=False, default="")

    # Approver rounds
    approvers = Column(JSON, nullable=False, default=list)
    pending_approvers = Column(JSON, nullable=False, default=list)
    approvers_assigned = Column(Boolean, nullable=False, default=False)
    needs_reassignment = Column(Boolean, nullable=False, default=False)
    approval_round = Column(Integer, nullable=False, default=0)

    # Outcome
    rejection_reason = Column(Text, nullable=True)
    rejected_by_registrar = Column(Boolean, nullable=False, default=False)

    comments = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(UTCDateTime(), default=_utcnow, index=True)
    updated_at = Column(UTCDateTime(), default=_utcnow)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    steps = relationship(
        "ApprovalStepRecord",
        back_populates="proposal",
        order_by="ApprovalStepRecord.position",
        cascade="all, delete-orphan",
    )
    history = relationship(
        "ProposalHistoryRecord",
        back_populates="proposal",
        order_by="ProposalHistoryRecord.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ProposalRecord {self.id} [{self.status}] v{self.version}>"


class ApprovalStepRecord(Base):
    """
    One approver's response slot.

    Rows are never deleted; a new round appends new rows.
    """
    __tablename__ = "approval_steps"

    id = Column(String(36), primary_key=True)
    proposal_id = Column(String(36), ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    round = Column(Integer, nullable=False)

    # Approver (denormalized at assignment time)
    user_id = Column(String(64), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    user_role = Column(String(50), nullable=False)

    # Response
    status = Column(String(20), nullable=False, default="pending")
    comment = Column(Text, nullable=True)
    timestamp = Column(UTCDateTime(), nullable=True)

    proposal = relationship("ProposalRecord", back_populates="steps")

    def __repr__(self) -> str:
        return f"<ApprovalStepRecord r{self.round} {self.user_id} [{self.status}]>"


class ProposalHistoryRecord(Base):
    """
    Records every committed action against a proposal.

    Provides a complete audit trail of the approval workflow.
    """
    __tablename__ = "proposal_history"

    id = Column(String(36), primary_key=True)
    proposal_id = Column(String(36), ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    # Transition details
    action = Column(String(50), nullable=False)
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)

    # Actor
    actor_id = Column(String(64), nullable=False)
    actor_name = Column(String(255), nullable=True)

    # Reason or comment given with the action
    comment = Column(Text, nullable=True)

    timestamp = Column(UTCDateTime(), default=_utcnow, index=True)

    proposal = relationship("ProposalRecord", back_populates="history")

    def __repr__(self) -> str:
        return f"<ProposalHistoryRecord {self.from_status} -> {self.to_status}>"

"""Domain models for proposals and their approval history.

A proposal moves through a fixed approval pipeline:

    creator → superior → admin → approvers (fan-out) → registrar

Approver responses are tracked as ``ApprovalStep`` records grouped into
rounds. A round is opened each time the admin commits an approver set and
is never rewritten once a later round starts, so every response ever given
stays visible.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ProposalStatus(str, Enum):
    """Workflow status of a proposal."""

    DRAFT = "DRAFT"                             # Being prepared by the creator
    PENDING_SUPERIOR = "PENDING_SUPERIOR"       # Awaiting the assigned superior
    PENDING_ADMIN = "PENDING_ADMIN"             # Awaiting an administrator
    PENDING_APPROVERS = "PENDING_APPROVERS"     # Approver round in progress
    PENDING_REGISTRAR = "PENDING_REGISTRAR"     # Awaiting the registrar
    APPROVED = "APPROVED"                       # Final approval
    REJECTED = "REJECTED"                       # Rejected (no resubmission)
    NEEDS_REVISION = "NEEDS_REVISION"           # Returned to the creator


class ProposalType(str, Enum):
    """Classification tag selecting which descriptive fields apply."""

    GENERAL = "general"
    BUDGET = "budget"         # requires ``budget``
    TIMELINE = "timeline"     # requires ``timeline``
    CUSTOM = "custom"         # requires at least one ``field_values`` entry


class StepStatus(str, Enum):
    """Response state of a single approver within a round."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESUBMIT = "resubmit"     # approver asked for a revision


# Descriptive fields the creator may change while the proposal is editable
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "type",
    "budget",
    "timeline",
    "justification",
    "department",
    "field_values",
})


class ApprovalStep(BaseModel):
    """One approver's response slot within an approval round."""

    id: str = Field(default_factory=new_id)
    round: int
    user_id: str
    user_name: str
    user_role: str
    status: StepStatus = StepStatus.PENDING
    comment: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def is_settled(self) -> bool:
        return self.status != StepStatus.PENDING


class TransitionRecord(BaseModel):
    """Audit note for a committed workflow action."""

    id: str = Field(default_factory=new_id)
    action: str
    from_status: ProposalStatus
    to_status: ProposalStatus
    actor_id: str
    actor_name: Optional[str] = None
    comment: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class Proposal(BaseModel):
    """A proposal document and its complete workflow state."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    status: ProposalStatus = ProposalStatus.DRAFT
    type: ProposalType = ProposalType.GENERAL

    # Type-specific descriptive fields
    budget: Optional[str] = None
    timeline: Optional[str] = None
    justification: Optional[str] = None
    department: Optional[str] = None
    field_values: Dict[str, Any] = Field(default_factory=dict)

    # Parties (names are display copies taken at creation time)
    created_by: str
    created_by_name: str = ""
    assigned_to: str
    assigned_to_name: str = ""

    # Approver rounds
    approvers: List[str] = Field(default_factory=list)
    pending_approvers: List[str] = Field(default_factory=list)
    approvers_assigned: bool = False
    needs_reassignment: bool = False
    approval_round: int = 0
    approval_steps: List[ApprovalStep] = Field(default_factory=list)

    # Outcome
    rejection_reason: Optional[str] = None
    rejected_by_registrar: bool = False

    history: List[TransitionRecord] = Field(default_factory=list)
    comments: List[Dict[str, Any]] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        """True once no further mutation is permitted."""
        if self.status == ProposalStatus.APPROVED:
            return True
        return self.status == ProposalStatus.REJECTED and self.rejected_by_registrar

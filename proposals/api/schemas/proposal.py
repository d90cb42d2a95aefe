"""Proposal request/response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from proposals.core.models import ProposalStatus, ProposalType, StepStatus
from proposals.core.permissions import UserRole


# Requests
class ProposalCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    type: ProposalType = ProposalType.GENERAL
    budget: Optional[str] = None
    timeline: Optional[str] = None
    justification: Optional[str] = None
    department: Optional[str] = None
    field_values: Dict[str, Any] = Field(default_factory=dict)
    assigned_to: str = Field(..., description="Id of the superior who reviews first")


class ProposalUpdate(BaseModel):
    """Partial edit; only fields present in the body are changed."""
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[ProposalType] = None
    budget: Optional[str] = None
    timeline: Optional[str] = None
    justification: Optional[str] = None
    department: Optional[str] = None
    field_values: Optional[Dict[str, Any]] = None


class CommentAction(BaseModel):
    comment: Optional[str] = None


class ReasonAction(BaseModel):
    # Presence is checked by the workflow so a blank reason gets a workflow error
    reason: Optional[str] = None


class AssignApproversRequest(BaseModel):
    user_ids: List[str] = Field(default_factory=list)


# Responses
class ApprovalStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    round: int
    user_id: str
    user_name: str
    user_role: str
    status: StepStatus
    comment: Optional[str]
    timestamp: Optional[datetime]


class TransitionRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    from_status: ProposalStatus
    to_status: ProposalStatus
    actor_id: Optional[str]  # withheld for approver responses
    actor_name: Optional[str]
    comment: Optional[str]
    timestamp: datetime


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    status: ProposalStatus
    type: ProposalType
    budget: Optional[str]
    timeline: Optional[str]
    justification: Optional[str]
    department: Optional[str]
    field_values: Dict[str, Any]
    created_by: str
    created_by_name: str
    assigned_to: str
    assigned_to_name: str
    approvers: List[str]
    pending_approvers: Optional[List[str]] = None  # see approval_steps
    approvers_assigned: bool
    needs_reassignment: bool
    approval_round: int
    # None when the caller may not see individual approver responses
    approval_steps: Optional[List[ApprovalStepResponse]] = None
    rejection_reason: Optional[str]
    rejected_by_registrar: bool
    created_at: datetime
    updated_at: datetime
    version: int


class ProposalListResponse(BaseModel):
    items: List[ProposalResponse]
    total: int


class ProgressResponse(BaseModel):
    progress: float
    pending_approver_ids: List[str]
    all_responded: bool


class AvailableActionsResponse(BaseModel):
    actions: List[str]
    can_resubmit: bool


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    role: UserRole

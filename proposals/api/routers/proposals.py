"""Proposal workflow API endpoints.

Every endpoint acts as the user named by the ``X-User-Id`` header. Workflow
failures propagate as ``WorkflowError`` and are turned into error responses
by the application's exception handler.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from proposals.api.deps import get_current_user, get_engine
from proposals.api.schemas.proposal import (
    AssignApproversRequest,
    AvailableActionsResponse,
    CommentAction,
    ProgressResponse,
    ProposalCreate,
    ProposalListResponse,
    ProposalResponse,
    ProposalUpdate,
    ReasonAction,
    TransitionRecordResponse,
)
from proposals.core.directory import User
from proposals.core.errors import UnauthorizedError
from proposals.core.models import Proposal, ProposalStatus
from proposals.core.workflow import WorkflowEngine
from proposals.core.workflow.states import APPROVER_ROUND_ACTIONS

router = APIRouter(prefix="/proposals", tags=["proposals"])


def _to_response(proposal: Proposal, engine: WorkflowEngine, user: User) -> ProposalResponse:
    response = ProposalResponse.model_validate(proposal)
    if not engine.evaluator.can_view_approval_details(proposal, user.id, user.role):
        response.pending_approvers = None
        response.approval_steps = None
    return response


def _history_for(proposal: Proposal, engine: WorkflowEngine, user: User) -> List[TransitionRecordResponse]:
    """History as the caller may see it.

    Callers without the approval detail capability get no in-round records
    and an anonymous record for an approver's revision request.
    """
    if engine.evaluator.can_view_approval_details(proposal, user.id, user.role):
        return [TransitionRecordResponse.model_validate(h) for h in proposal.history]

    round_actions = {a.value for a in APPROVER_ROUND_ACTIONS}
    visible = []
    for record in proposal.history:
        if record.action not in round_actions:
            visible.append(TransitionRecordResponse.model_validate(record))
        elif record.from_status != record.to_status:
            response = TransitionRecordResponse.model_validate(record)
            response.actor_id = None
            response.actor_name = None
            visible.append(response)
    return visible


# Queries
@router.get("", response_model=ProposalListResponse)
def list_proposals(
    status_filter: Optional[ProposalStatus] = Query(None, alias="status"),
    created_by: Optional[str] = None,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """List proposals, optionally filtered by status and creator."""
    items = engine.list_proposals(status=status_filter, created_by=created_by)
    return ProposalListResponse(
        items=[_to_response(p, engine, current_user) for p in items],
        total=len(items),
    )


@router.get("/actionable", response_model=ProposalListResponse)
def list_actionable(
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Proposals currently waiting on the caller."""
    items = engine.list_actionable(current_user.id)
    return ProposalListResponse(
        items=[_to_response(p, engine, current_user) for p in items],
        total=len(items),
    )


@router.post("", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
def create_proposal(
    body: ProposalCreate,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Create a draft proposal owned by the caller."""
    proposal = engine.create_proposal(
        current_user.id,
        body.title,
        assigned_to=body.assigned_to,
        description=body.description,
        type=body.type,
        budget=body.budget,
        timeline=body.timeline,
        justification=body.justification,
        department=body.department,
        field_values=body.field_values,
    )
    return _to_response(proposal, engine, current_user)


@router.get("/{proposal_id}", response_model=ProposalResponse)
def get_proposal(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    return _to_response(engine.get_proposal(proposal_id), engine, current_user)


@router.patch("/{proposal_id}", response_model=ProposalResponse)
def update_proposal(
    proposal_id: str,
    body: ProposalUpdate,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Edit descriptive fields while the proposal is with its creator."""
    proposal = engine.update_proposal(
        proposal_id, current_user.id, body.model_dump(exclude_unset=True)
    )
    return _to_response(proposal, engine, current_user)


@router.get("/{proposal_id}/history", response_model=List[TransitionRecordResponse])
def get_history(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Get the transition history of a proposal, oldest first."""
    return _history_for(engine.get_proposal(proposal_id), engine, current_user)


@router.get("/{proposal_id}/progress", response_model=ProgressResponse)
def get_progress(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Approver round progress for the current round."""
    proposal = engine.get_proposal(proposal_id)
    if not engine.evaluator.can_view_approval_details(proposal, current_user.id, current_user.role):
        raise UnauthorizedError(
            "Approval progress is restricted to administrators and registrars", proposal_id
        )
    return ProgressResponse(
        progress=engine.progress(proposal_id),
        pending_approver_ids=engine.pending_approver_ids(proposal_id),
        all_responded=engine.all_responded(proposal_id),
    )


@router.get("/{proposal_id}/actions", response_model=AvailableActionsResponse)
def get_available_actions(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Capabilities the caller currently holds on the proposal."""
    actions = engine.available_actions(proposal_id, current_user.id)
    return AvailableActionsResponse(
        actions=sorted(a.value for a in actions),
        can_resubmit=engine.can_resubmit(proposal_id, current_user.id),
    )


# Creator actions
@router.post("/{proposal_id}/submit", response_model=ProposalResponse)
def submit_proposal(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    return _to_response(engine.submit(proposal_id, current_user.id), engine, current_user)


@router.post("/{proposal_id}/resubmit", response_model=ProposalResponse)
def resubmit_proposal(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    return _to_response(engine.resubmit(proposal_id, current_user.id), engine, current_user)


# Superior / admin stage
@router.post("/{proposal_id}/approve", response_model=ProposalResponse)
def approve_proposal(
    proposal_id: str,
    action: CommentAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Approve at the superior or admin stage."""
    proposal = engine.approve(proposal_id, current_user.id, action.comment)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/reject", response_model=ProposalResponse)
def reject_proposal(
    proposal_id: str,
    action: ReasonAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Reject at the superior or admin stage. A reason is required."""
    proposal = engine.reject(proposal_id, current_user.id, action.reason)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/request-revision", response_model=ProposalResponse)
def request_revision(
    proposal_id: str,
    action: ReasonAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    proposal = engine.request_revision(proposal_id, current_user.id, action.reason)
    return _to_response(proposal, engine, current_user)


# Approver round
@router.post("/{proposal_id}/approvers", response_model=ProposalResponse)
def assign_approvers(
    proposal_id: str,
    body: AssignApproversRequest,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Open an approver round with the given users."""
    proposal = engine.assign_approvers(proposal_id, current_user.id, body.user_ids)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/approver/approve", response_model=ProposalResponse)
def approve_as_approver(
    proposal_id: str,
    action: CommentAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    proposal = engine.approve_as_approver(proposal_id, current_user.id, action.comment)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/approver/reject", response_model=ProposalResponse)
def reject_as_approver(
    proposal_id: str,
    action: ReasonAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    proposal = engine.reject_as_approver(proposal_id, current_user.id, action.reason)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/approver/request-revision", response_model=ProposalResponse)
def request_revision_as_approver(
    proposal_id: str,
    action: ReasonAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    proposal = engine.request_revision_as_approver(proposal_id, current_user.id, action.reason)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/send-to-registrar", response_model=ProposalResponse)
def assign_to_registrar(
    proposal_id: str,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Forward a fully responded approver round to the registrar."""
    proposal = engine.assign_to_registrar(proposal_id, current_user.id)
    return _to_response(proposal, engine, current_user)


# Registrar
@router.post("/{proposal_id}/registrar/approve", response_model=ProposalResponse)
def approve_as_registrar(
    proposal_id: str,
    action: CommentAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    proposal = engine.approve_as_registrar(proposal_id, current_user.id, action.comment)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/registrar/reject", response_model=ProposalResponse)
def reject_as_registrar(
    proposal_id: str,
    action: ReasonAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Final rejection; the proposal cannot be revised afterwards."""
    proposal = engine.reject_as_registrar(proposal_id, current_user.id, action.reason)
    return _to_response(proposal, engine, current_user)


@router.post("/{proposal_id}/registrar/request-revision", response_model=ProposalResponse)
def request_revision_as_registrar(
    proposal_id: str,
    action: ReasonAction,
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    proposal = engine.request_revision_as_registrar(proposal_id, current_user.id, action.reason)
    return _to_response(proposal, engine, current_user)

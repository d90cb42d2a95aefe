"""Approval step ledger.

Owns the fan-out/fan-in bookkeeping of the approvers stage:

- opening a round appends one pending step per approver
- each response settles exactly one step of the current round
- progress and the "all responded" barrier are derived here and nowhere else

Rounds are append-only. A revision request invalidates the current round
(``needs_reassignment``) but its steps stay in ``approval_steps`` so the
audit trail of every round survives reassignment.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from .errors import ProposalValidationError, UnauthorizedError
from .models import ApprovalStep, Proposal, StepStatus


class ApprovalStepLedger:
    """Derived queries and round bookkeeping over ``Proposal.approval_steps``."""

    def current_round_steps(self, proposal: Proposal) -> List[ApprovalStep]:
        """Steps belonging to the most recently opened round."""
        if proposal.approval_round == 0:
            return []
        return [s for s in proposal.approval_steps if s.round == proposal.approval_round]

    def step_for(self, proposal: Proposal, user_id: str) -> Optional[ApprovalStep]:
        """The current-round step of ``user_id``, if any."""
        for step in self.current_round_steps(proposal):
            if step.user_id == user_id:
                return step
        return None

    def progress(self, proposal: Proposal) -> float:
        """Percentage of current-round steps that are no longer pending."""
        steps = self.current_round_steps(proposal)
        if not steps:
            return 0.0
        settled = sum(1 for s in steps if s.is_settled)
        return settled / len(steps) * 100

    def pending_approver_ids(self, proposal: Proposal) -> List[str]:
        return list(proposal.pending_approvers)

    def all_responded(self, proposal: Proposal) -> bool:
        return proposal.approvers_assigned and not proposal.pending_approvers

    def all_steps_settled(self, proposal: Proposal) -> bool:
        """True when the current round exists and has no pending step."""
        steps = self.current_round_steps(proposal)
        return bool(steps) and all(s.is_settled for s in steps)

    def open_round(self, proposal: Proposal, users: Sequence, now: datetime) -> List[ApprovalStep]:
        """
        Start a new approver round.

        Args:
            proposal: Proposal to mutate
            users: Directory users (``id``, ``name``, ``role``) in assignment order
            now: Timestamp of the assignment (unused by pending steps)

        Returns:
            The steps appended for the new round
        """
        if not users:
            raise ProposalValidationError(
                "At least one approver is required", proposal.id
            )

        proposal.approval_round += 1
        ids = [u.id for u in users]
        proposal.approvers = list(ids)
        proposal.pending_approvers = list(ids)
        proposal.approvers_assigned = True
        proposal.needs_reassignment = False

        steps = [
            ApprovalStep(
                round=proposal.approval_round,
                user_id=u.id,
                user_name=u.name,
                user_role=getattr(u.role, "value", u.role),
            )
            for u in users
        ]
        proposal.approval_steps.extend(steps)
        proposal.updated_at = now
        return steps

    def record_response(
        self,
        proposal: Proposal,
        user_id: str,
        status: StepStatus,
        comment: Optional[str],
        now: datetime,
    ) -> ApprovalStep:
        """Settle ``user_id``'s current-round step and drop them from pending."""
        if status == StepStatus.PENDING:
            raise ProposalValidationError("A response cannot be 'pending'", proposal.id)

        step = self.step_for(proposal, user_id)
        if step is None or user_id not in proposal.pending_approvers:
            raise UnauthorizedError(
                f"User {user_id} has no pending approval step", proposal.id
            )

        step.status = status
        step.comment = comment
        step.timestamp = now
        proposal.pending_approvers = [
            uid for uid in proposal.pending_approvers if uid != user_id
        ]
        proposal.updated_at = now
        return step

    def invalidate_round(self, proposal: Proposal) -> None:
        """Mark the current round as superseded; a fresh assignment is required."""
        proposal.needs_reassignment = True

"""Typed failures raised by the proposal workflow.

Every guard failure surfaces as one of these; callers may only expect a
successful retry after a ``ConflictError``.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for workflow failures."""

    code = "workflow_error"

    def __init__(self, message: str, proposal_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.proposal_id = proposal_id


class ProposalNotFoundError(WorkflowError):
    """Raised when a proposal id does not exist."""

    code = "not_found"

    def __init__(self, proposal_id: str):
        super().__init__(f"Proposal {proposal_id} not found", proposal_id)


class UnauthorizedError(WorkflowError):
    """Raised when the actor lacks the role or relationship for an action."""

    code = "unauthorized"


class InvalidTransitionError(WorkflowError):
    """Raised when an action is not legal from the proposal's current status."""

    code = "invalid_transition"

    def __init__(
        self,
        message: str,
        from_status: str,
        action: str,
        proposal_id: Optional[str] = None,
    ):
        super().__init__(message, proposal_id)
        self.from_status = from_status
        self.action = action


class ProposalValidationError(WorkflowError):
    """Raised for malformed payloads (empty reason, empty approver set, ...)."""

    code = "validation_error"


class ConflictError(WorkflowError):
    """Raised when a concurrent write won the race for the same proposal."""

    code = "conflict"


class TerminalStateError(WorkflowError):
    """Raised for any action against an approved or finally rejected proposal."""

    code = "terminal"

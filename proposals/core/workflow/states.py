"""Proposal workflow actions and transitions.

State Machine Diagram:

    ┌───────┐ submit  ┌──────────────────┐ approve ┌───────────────┐
    │ DRAFT │────────►│ PENDING_SUPERIOR │────────►│ PENDING_ADMIN │
    └───────┘         └────────┬─────────┘         └───────┬───────┘
                               │ ▲                         │ approve
                 reject /      │ │ resubmit                ▼
                 revision      │ │                ┌───────────────────┐
                               ▼ │                │ PENDING_APPROVERS │◄─┐ assign / respond
                      ┌────────────────┐ revision │  (approver round) │──┘
                      │ NEEDS_REVISION │◄─────────┤                   │
                      └────────────────┘          └─────────┬─────────┘
                               ▲                            │ assign_to_registrar
                               │ revision                   ▼
                               │                  ┌───────────────────┐
                               └──────────────────┤ PENDING_REGISTRAR │
                                                  └────┬─────────┬────┘
                                                       ▼         ▼
                                                 ┌──────────┐ ┌──────────┐
                                                 │ APPROVED │ │ REJECTED │
                                                 └──────────┘ └──────────┘

REJECTED is also reachable from the superior and admin stages; it never
leads back to NEEDS_REVISION.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Set, Tuple

from ..models import ProposalStatus
from ..permissions import Capability


class WorkflowAction(str, Enum):
    """Named actions a caller can invoke on a proposal."""

    # Creator
    SUBMIT = "submit"                                              # DRAFT → PENDING_SUPERIOR
    RESUBMIT = "resubmit"                                          # NEEDS_REVISION → PENDING_SUPERIOR

    # Superior / admin stage (destination depends on current status)
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"

    # Approver round
    ASSIGN_APPROVERS = "assign_approvers"
    APPROVE_AS_APPROVER = "approve_as_approver"
    REJECT_AS_APPROVER = "reject_as_approver"
    REQUEST_REVISION_AS_APPROVER = "request_revision_as_approver"
    ASSIGN_TO_REGISTRAR = "assign_to_registrar"                    # PENDING_APPROVERS → PENDING_REGISTRAR

    # Registrar
    APPROVE_AS_REGISTRAR = "approve_as_registrar"                  # → APPROVED
    REJECT_AS_REGISTRAR = "reject_as_registrar"                    # → REJECTED (final)
    REQUEST_REVISION_AS_REGISTRAR = "request_revision_as_registrar"


class TransitionRule(NamedTuple):
    """Defines a valid transition."""
    from_status: ProposalStatus
    action: WorkflowAction
    capability: Capability
    to_status: ProposalStatus
    requires_reason: bool = False


S = ProposalStatus
A = WorkflowAction
C = Capability

TRANSITION_RULES: List[TransitionRule] = [
    # Creator
    TransitionRule(S.DRAFT, A.SUBMIT, C.SUBMIT, S.PENDING_SUPERIOR),
    TransitionRule(S.NEEDS_REVISION, A.RESUBMIT, C.RESUBMIT, S.PENDING_SUPERIOR),

    # Superior stage
    TransitionRule(S.PENDING_SUPERIOR, A.APPROVE, C.ACT_AS_SUPERIOR, S.PENDING_ADMIN),
    TransitionRule(S.PENDING_SUPERIOR, A.REJECT, C.ACT_AS_SUPERIOR, S.REJECTED,
                   requires_reason=True),
    TransitionRule(S.PENDING_SUPERIOR, A.REQUEST_REVISION, C.ACT_AS_SUPERIOR, S.NEEDS_REVISION,
                   requires_reason=True),

    # Admin stage
    TransitionRule(S.PENDING_ADMIN, A.APPROVE, C.ACT_AS_ADMIN, S.PENDING_APPROVERS),
    TransitionRule(S.PENDING_ADMIN, A.REJECT, C.ACT_AS_ADMIN, S.REJECTED,
                   requires_reason=True),
    TransitionRule(S.PENDING_ADMIN, A.REQUEST_REVISION, C.ACT_AS_ADMIN, S.NEEDS_REVISION,
                   requires_reason=True),

    # Approver round (status stays put until the round is forwarded or invalidated)
    TransitionRule(S.PENDING_APPROVERS, A.ASSIGN_APPROVERS, C.ASSIGN_APPROVERS, S.PENDING_APPROVERS),
    TransitionRule(S.PENDING_APPROVERS, A.APPROVE_AS_APPROVER, C.ACT_AS_APPROVER, S.PENDING_APPROVERS),
    TransitionRule(S.PENDING_APPROVERS, A.REJECT_AS_APPROVER, C.ACT_AS_APPROVER, S.PENDING_APPROVERS,
                   requires_reason=True),
    TransitionRule(S.PENDING_APPROVERS, A.REQUEST_REVISION_AS_APPROVER, C.ACT_AS_APPROVER,
                   S.NEEDS_REVISION, requires_reason=True),
    TransitionRule(S.PENDING_APPROVERS, A.ASSIGN_TO_REGISTRAR, C.SEND_TO_REGISTRAR, S.PENDING_REGISTRAR),

    # Registrar
    TransitionRule(S.PENDING_REGISTRAR, A.APPROVE_AS_REGISTRAR, C.ACT_AS_REGISTRAR, S.APPROVED),
    TransitionRule(S.PENDING_REGISTRAR, A.REJECT_AS_REGISTRAR, C.ACT_AS_REGISTRAR, S.REJECTED,
                   requires_reason=True),
    TransitionRule(S.PENDING_REGISTRAR, A.REQUEST_REVISION_AS_REGISTRAR, C.ACT_AS_REGISTRAR,
                   S.NEEDS_REVISION, requires_reason=True),
]

# Build lookup tables for efficient access
VALID_ACTIONS: Dict[ProposalStatus, Set[WorkflowAction]] = {}
TRANSITION_TARGETS: Dict[Tuple[ProposalStatus, WorkflowAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    key = (rule.from_status, rule.action)
    if key in TRANSITION_TARGETS:
        raise RuntimeError(f"Duplicate transition rule for {key}")
    VALID_ACTIONS.setdefault(rule.from_status, set()).add(rule.action)
    TRANSITION_TARGETS[key] = rule


# Actions that belong to an approver round; their records expose who said what
APPROVER_ROUND_ACTIONS: FrozenSet[WorkflowAction] = frozenset({
    A.ASSIGN_APPROVERS,
    A.APPROVE_AS_APPROVER,
    A.REJECT_AS_APPROVER,
    A.REQUEST_REVISION_AS_APPROVER,
})


def get_transition_rule(
    from_status: ProposalStatus, action: WorkflowAction
) -> Optional[TransitionRule]:
    """Get the transition rule for a status/action combination."""
    return TRANSITION_TARGETS.get((from_status, action))

"""Capability evaluation for proposal actors.

Every capability is one row of a policy table with two predicates:

- an *actor* predicate: is this user the creator / assignee / an admin /
  a pending approver / the registrar?
- a *state* predicate: does the proposal's status (and round flags) allow
  the capability right now?

A capability is granted only when both hold. Keeping the two apart lets the
workflow engine tell "wrong person" (Unauthorized) from "wrong moment"
(InvalidTransition) without re-deriving either condition.

Evaluation is pure: no I/O, no mutation, safe to call concurrently.
"""

from enum import Enum
from typing import Callable, Dict, FrozenSet, NamedTuple, Optional, Union

from ..ledger import ApprovalStepLedger
from ..models import Proposal, ProposalStatus
from .roles import APPROVAL_DETAIL_ROLES, UserRole, parse_role


class Capability(str, Enum):
    """Things an actor may be allowed to do with a proposal."""

    SUBMIT = "submit"
    EDIT = "edit"
    RESUBMIT = "resubmit"
    ACT_AS_SUPERIOR = "act_as_superior"
    ACT_AS_ADMIN = "act_as_admin"
    ASSIGN_APPROVERS = "assign_approvers"
    ACT_AS_APPROVER = "act_as_approver"
    SEND_TO_REGISTRAR = "send_to_registrar"
    ACT_AS_REGISTRAR = "act_as_registrar"
    VIEW_APPROVAL_DETAILS = "view_approval_details"


class Decision(str, Enum):
    """Outcome of checking one capability."""

    ALLOWED = "allowed"
    DENIED_ACTOR = "denied_actor"   # actor lacks the role/relationship
    DENIED_STATE = "denied_state"   # actor qualifies but the status does not allow it


ActorPredicate = Callable[[Proposal, str, UserRole], bool]
StatePredicate = Callable[[Proposal], bool]


class PolicyRule(NamedTuple):
    """Actor and state predicates for one capability."""
    actor: ActorPredicate
    state: StatePredicate


EDITABLE_STATUSES = frozenset({
    ProposalStatus.DRAFT,
    ProposalStatus.NEEDS_REVISION,
    ProposalStatus.PENDING_SUPERIOR,
})


def _is_creator(p: Proposal, actor_id: str, role: UserRole) -> bool:
    return actor_id == p.created_by


def _is_assignee(p: Proposal, actor_id: str, role: UserRole) -> bool:
    return actor_id == p.assigned_to


def _is_admin(p: Proposal, actor_id: str, role: UserRole) -> bool:
    return role == UserRole.ADMIN


def _is_registrar(p: Proposal, actor_id: str, role: UserRole) -> bool:
    return role == UserRole.REGISTRAR


def _is_pending_approver(p: Proposal, actor_id: str, role: UserRole) -> bool:
    return actor_id in p.pending_approvers


def _sees_approval_details(p: Proposal, actor_id: str, role: UserRole) -> bool:
    return role in APPROVAL_DETAIL_ROLES


def _status_is(*statuses: ProposalStatus) -> StatePredicate:
    allowed = frozenset(statuses)
    return lambda p: p.status in allowed


class PermissionEvaluator:
    """
    Answers capability questions for ``(proposal, actor_id, actor_role)``.

    Usage:
        evaluator = PermissionEvaluator()
        if evaluator.can_act_as_superior(proposal, user.id, user.role):
            ...
    """

    def __init__(self, ledger: Optional[ApprovalStepLedger] = None):
        self.ledger = ledger or ApprovalStepLedger()
        self._policy: Dict[Capability, PolicyRule] = {
            Capability.SUBMIT: PolicyRule(
                _is_creator, _status_is(ProposalStatus.DRAFT)
            ),
            Capability.EDIT: PolicyRule(
                _is_creator, lambda p: p.status in EDITABLE_STATUSES
            ),
            Capability.RESUBMIT: PolicyRule(
                _is_creator, _status_is(ProposalStatus.NEEDS_REVISION)
            ),
            Capability.ACT_AS_SUPERIOR: PolicyRule(
                _is_assignee, _status_is(ProposalStatus.PENDING_SUPERIOR)
            ),
            Capability.ACT_AS_ADMIN: PolicyRule(
                _is_admin, _status_is(ProposalStatus.PENDING_ADMIN)
            ),
            Capability.ASSIGN_APPROVERS: PolicyRule(
                _is_admin, self._approvers_assignable
            ),
            Capability.ACT_AS_APPROVER: PolicyRule(
                _is_pending_approver, self._round_open
            ),
            Capability.SEND_TO_REGISTRAR: PolicyRule(
                _is_admin, self._round_complete
            ),
            Capability.ACT_AS_REGISTRAR: PolicyRule(
                _is_registrar, _status_is(ProposalStatus.PENDING_REGISTRAR)
            ),
            Capability.VIEW_APPROVAL_DETAILS: PolicyRule(
                _sees_approval_details, lambda p: True
            ),
        }

    # ------------------------------------------------------------------
    # State predicates that depend on the approver round

    @staticmethod
    def _approvers_assignable(p: Proposal) -> bool:
        return p.status == ProposalStatus.PENDING_APPROVERS and (
            not p.approvers_assigned or p.needs_reassignment
        )

    @staticmethod
    def _round_open(p: Proposal) -> bool:
        # An invalidated round stays closed until the admin reassigns
        return p.status == ProposalStatus.PENDING_APPROVERS and not p.needs_reassignment

    def _round_complete(self, p: Proposal) -> bool:
        return (
            p.status == ProposalStatus.PENDING_APPROVERS
            and p.approvers_assigned
            and not p.needs_reassignment
            and self.ledger.all_steps_settled(p)
        )

    # ------------------------------------------------------------------
    # Generic checks

    def check(
        self,
        capability: Capability,
        proposal: Proposal,
        actor_id: str,
        actor_role: Union[UserRole, str],
    ) -> Decision:
        """Evaluate one capability, reporting which side denied it."""
        rule = self._policy[capability]
        if not rule.actor(proposal, actor_id, _coerce_role(actor_role)):
            return Decision.DENIED_ACTOR
        if not rule.state(proposal):
            return Decision.DENIED_STATE
        return Decision.ALLOWED

    def allows(
        self,
        capability: Capability,
        proposal: Proposal,
        actor_id: str,
        actor_role: Union[UserRole, str],
    ) -> bool:
        return self.check(capability, proposal, actor_id, actor_role) is Decision.ALLOWED

    def capabilities(
        self,
        proposal: Proposal,
        actor_id: str,
        actor_role: Union[UserRole, str],
    ) -> FrozenSet[Capability]:
        """Every capability the actor currently holds on the proposal."""
        return frozenset(
            c for c in Capability if self.allows(c, proposal, actor_id, actor_role)
        )

    # ------------------------------------------------------------------
    # Named capability queries

    def can_submit(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.SUBMIT, proposal, actor_id, actor_role)

    def can_edit(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.EDIT, proposal, actor_id, actor_role)

    def can_resubmit(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.RESUBMIT, proposal, actor_id, actor_role)

    def can_act_as_superior(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.ACT_AS_SUPERIOR, proposal, actor_id, actor_role)

    def can_act_as_admin(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.ACT_AS_ADMIN, proposal, actor_id, actor_role)

    def can_assign_approvers(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.ASSIGN_APPROVERS, proposal, actor_id, actor_role)

    def can_act_as_approver(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.ACT_AS_APPROVER, proposal, actor_id, actor_role)

    def can_send_to_registrar(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.SEND_TO_REGISTRAR, proposal, actor_id, actor_role)

    def can_act_as_registrar(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.ACT_AS_REGISTRAR, proposal, actor_id, actor_role)

    def can_view_approval_details(self, proposal, actor_id, actor_role) -> bool:
        return self.allows(Capability.VIEW_APPROVAL_DETAILS, proposal, actor_id, actor_role)


def _coerce_role(role: Union[UserRole, str]) -> UserRole:
    if isinstance(role, UserRole):
        return role
    return parse_role(role)

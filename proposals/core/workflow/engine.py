"""Proposal workflow engine.

Orchestrates guarded status transitions. Each action is one
read-modify-write of a single proposal:

1. load the proposal from the store (``ProposalNotFoundError``)
2. refuse anything on a terminal proposal (``TerminalStateError``)
3. resolve the actor through the user directory (``UnauthorizedError``)
4. look the action up in the transition table (``InvalidTransitionError``)
5. ask the permission evaluator; a failing actor predicate is
   ``UnauthorizedError``, a failing state predicate ``InvalidTransitionError``
6. validate the payload (``ProposalValidationError``)
7. apply the effect, append a history record, write back with a version
   check (``ConflictError``)

Nothing is written unless every step succeeds. The engine never retries.
"""

from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from proposals.common.logger import get_logger
from proposals.store.base import ProposalStore

from ..directory import User, UserDirectory
from ..errors import (
    InvalidTransitionError,
    ProposalNotFoundError,
    ProposalValidationError,
    TerminalStateError,
    UnauthorizedError,
    WorkflowError,
)
from ..ledger import ApprovalStepLedger
from ..models import (
    EDITABLE_FIELDS,
    Proposal,
    ProposalStatus,
    ProposalType,
    StepStatus,
    TransitionRecord,
    utcnow,
)
from ..permissions import Capability, Decision, PermissionEvaluator
from .states import WorkflowAction, get_transition_rule

logger = get_logger(__name__)

# Capabilities that mean "this proposal is waiting on you"
ACTIONABLE_CAPABILITIES: FrozenSet[Capability] = frozenset({
    Capability.SUBMIT,
    Capability.RESUBMIT,
    Capability.ACT_AS_SUPERIOR,
    Capability.ACT_AS_ADMIN,
    Capability.ASSIGN_APPROVERS,
    Capability.ACT_AS_APPROVER,
    Capability.SEND_TO_REGISTRAR,
    Capability.ACT_AS_REGISTRAR,
})

EDIT_ACTION = "edit"


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


def validate_details(proposal: Proposal) -> None:
    """Check title and the type-specific descriptive fields."""
    if not proposal.title or not proposal.title.strip():
        raise ProposalValidationError("Title is required", proposal.id)
    if proposal.type == ProposalType.BUDGET and not _clean(proposal.budget):
        raise ProposalValidationError("Budget proposals require a budget", proposal.id)
    if proposal.type == ProposalType.TIMELINE and not _clean(proposal.timeline):
        raise ProposalValidationError("Timeline proposals require a timeline", proposal.id)
    if proposal.type == ProposalType.CUSTOM and not proposal.field_values:
        raise ProposalValidationError(
            "Custom proposals require at least one field value", proposal.id
        )


class WorkflowEngine:
    """
    Runs the proposal approval pipeline.

    Collaborators are injected so the engine can run against any store and
    any identity source:

        engine = WorkflowEngine(InMemoryProposalStore(), directory)
        p = engine.create_proposal("u-creator", "New lab", assigned_to="u-boss")
        engine.submit(p.id, "u-creator")
    """

    def __init__(
        self,
        store: ProposalStore,
        directory: UserDirectory,
        *,
        evaluator: Optional[PermissionEvaluator] = None,
        ledger: Optional[ApprovalStepLedger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the engine.

        Args:
            store: ProposalStore used for every read and write
            directory: UserDirectory resolving actor ids to users
            evaluator: Permission evaluator (default shares ``ledger``)
            ledger: Approval step ledger
            clock: Callable returning the current aware datetime
        """
        self.store = store
        self.directory = directory
        self.ledger = ledger or ApprovalStepLedger()
        self.evaluator = evaluator or PermissionEvaluator(self.ledger)
        self._clock = clock or utcnow
        self._effects: Dict[WorkflowAction, Callable[..., None]] = {
            WorkflowAction.SUBMIT: self._no_effect,
            WorkflowAction.APPROVE: self._no_effect,
            WorkflowAction.REJECT: self._effect_reject,
            WorkflowAction.REQUEST_REVISION: self._effect_request_revision,
            WorkflowAction.RESUBMIT: self._no_effect,
            WorkflowAction.ASSIGN_APPROVERS: self._effect_assign_approvers,
            WorkflowAction.APPROVE_AS_APPROVER: self._effect_approver_approve,
            WorkflowAction.REJECT_AS_APPROVER: self._effect_approver_reject,
            WorkflowAction.REQUEST_REVISION_AS_APPROVER: self._effect_approver_revision,
            WorkflowAction.ASSIGN_TO_REGISTRAR: self._no_effect,
            WorkflowAction.APPROVE_AS_REGISTRAR: self._no_effect,
            WorkflowAction.REJECT_AS_REGISTRAR: self._effect_registrar_reject,
            WorkflowAction.REQUEST_REVISION_AS_REGISTRAR: self._effect_registrar_revision,
        }

    # ------------------------------------------------------------------
    # Loading helpers

    def _load(self, proposal_id: str) -> Proposal:
        proposal = self.store.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    def _resolve_actor(self, actor_id: str, proposal_id: Optional[str] = None) -> User:
        actor = self.directory.get_user(actor_id) if actor_id else None
        if actor is None:
            raise UnauthorizedError(f"Unknown actor {actor_id!r}", proposal_id)
        return actor

    def _record(
        self,
        proposal: Proposal,
        action: str,
        from_status: ProposalStatus,
        actor: User,
        comment: Optional[str],
        now: datetime,
    ) -> None:
        proposal.history.append(
            TransitionRecord(
                action=action,
                from_status=from_status,
                to_status=proposal.status,
                actor_id=actor.id,
                actor_name=actor.name,
                comment=comment,
                timestamp=now,
            )
        )
        proposal.updated_at = now

    # ------------------------------------------------------------------
    # Core transition

    def perform(
        self,
        proposal_id: str,
        action: WorkflowAction,
        actor_id: str,
        *,
        comment: Optional[str] = None,
        reason: Optional[str] = None,
        user_ids: Optional[Iterable[str]] = None,
    ) -> Proposal:
        """
        Perform a workflow action.

        Args:
            proposal_id: Proposal to act on
            action: The action to perform
            actor_id: User performing the action
            comment: Optional comment (approvals)
            reason: Reason text, required by rejections and revision requests
            user_ids: Approver ids for ``ASSIGN_APPROVERS``

        Returns:
            The updated, persisted proposal

        Raises:
            WorkflowError: One of its subclasses when any guard fails
        """
        try:
            proposal = self._load(proposal_id)
            if proposal.is_terminal:
                raise TerminalStateError(
                    f"Proposal {proposal_id} is closed ({proposal.status.value})",
                    proposal_id,
                )
            actor = self._resolve_actor(actor_id, proposal_id)

            rule = get_transition_rule(proposal.status, action)
            if rule is None:
                raise InvalidTransitionError(
                    f"Cannot perform {action.value} from status {proposal.status.value}",
                    proposal.status.value,
                    action.value,
                    proposal_id,
                )

            decision = self.evaluator.check(rule.capability, proposal, actor.id, actor.role)
            if decision is Decision.DENIED_ACTOR:
                raise UnauthorizedError(
                    f"User {actor.id} may not {action.value} proposal {proposal_id}",
                    proposal_id,
                )
            if decision is Decision.DENIED_STATE:
                raise InvalidTransitionError(
                    f"Cannot perform {action.value} on proposal {proposal_id} in its current state",
                    proposal.status.value,
                    action.value,
                    proposal_id,
                )

            reason = _clean(reason)
            if rule.requires_reason and not reason:
                raise ProposalValidationError(
                    f"Action {action.value} requires a reason", proposal_id
                )

            now = self._clock()
            from_status = proposal.status
            self._effects[action](
                proposal,
                actor=actor,
                rule=rule,
                comment=_clean(comment),
                reason=reason,
                user_ids=user_ids,
                now=now,
            )
            proposal.status = rule.to_status
            self._record(proposal, action.value, from_status, actor, reason or _clean(comment), now)

            stored = self.store.put(proposal)
        except WorkflowError as e:
            logger.warning(f"{action.value} on proposal {proposal_id} by {actor_id} refused: [{e.code}] {e}")
            raise

        logger.info(
            f"{action.value} on proposal {proposal_id} by {actor_id}: "
            f"{from_status.value} -> {stored.status.value}"
        )
        return stored

    # ------------------------------------------------------------------
    # Effects (run on the loaded copy before it is written back)

    def _no_effect(self, proposal: Proposal, **_: Any) -> None:
        return None

    def _effect_reject(self, proposal: Proposal, *, reason: str, **_: Any) -> None:
        proposal.rejection_reason = reason
        proposal.rejected_by_registrar = False

    def _effect_request_revision(self, proposal: Proposal, *, reason: str, **_: Any) -> None:
        proposal.rejection_reason = reason

    def _effect_assign_approvers(
        self, proposal: Proposal, *, user_ids: Optional[Iterable[str]], now: datetime, **_: Any
    ) -> None:
        ids: List[str] = []
        for uid in user_ids or []:
            uid = (uid or "").strip()
            if uid and uid not in ids:
                ids.append(uid)
        if not ids:
            raise ProposalValidationError("At least one approver is required", proposal.id)

        users = []
        unknown = []
        for uid in ids:
            user = self.directory.get_user(uid)
            if user is None:
                unknown.append(uid)
            else:
                users.append(user)
        if unknown:
            raise ProposalValidationError(
                f"Unknown approver ids: {', '.join(unknown)}", proposal.id
            )

        self.ledger.open_round(proposal, users, now)

    def _effect_approver_approve(
        self, proposal: Proposal, *, actor: User, comment: Optional[str], now: datetime, **_: Any
    ) -> None:
        self.ledger.record_response(proposal, actor.id, StepStatus.APPROVED, comment, now)

    def _effect_approver_reject(
        self, proposal: Proposal, *, actor: User, reason: str, now: datetime, **_: Any
    ) -> None:
        # Recorded only; an individual rejection does not veto the round
        self.ledger.record_response(proposal, actor.id, StepStatus.REJECTED, reason, now)

    def _effect_approver_revision(
        self, proposal: Proposal, *, actor: User, reason: str, now: datetime, **_: Any
    ) -> None:
        self.ledger.record_response(proposal, actor.id, StepStatus.RESUBMIT, reason, now)
        self.ledger.invalidate_round(proposal)
        proposal.rejection_reason = reason

    def _effect_registrar_reject(self, proposal: Proposal, *, reason: str, **_: Any) -> None:
        proposal.rejection_reason = reason
        proposal.rejected_by_registrar = True

    def _effect_registrar_revision(self, proposal: Proposal, *, reason: str, **_: Any) -> None:
        proposal.rejection_reason = reason
        self.ledger.invalidate_round(proposal)

    # ------------------------------------------------------------------
    # Named actions

    def submit(self, proposal_id: str, actor_id: str) -> Proposal:
        return self.perform(proposal_id, WorkflowAction.SUBMIT, actor_id)

    def approve(self, proposal_id: str, actor_id: str, comment: Optional[str] = None) -> Proposal:
        """Approve at the superior or admin stage, whichever is current."""
        return self.perform(proposal_id, WorkflowAction.APPROVE, actor_id, comment=comment)

    def reject(self, proposal_id: str, actor_id: str, reason: str) -> Proposal:
        return self.perform(proposal_id, WorkflowAction.REJECT, actor_id, reason=reason)

    def request_revision(self, proposal_id: str, actor_id: str, reason: str) -> Proposal:
        return self.perform(proposal_id, WorkflowAction.REQUEST_REVISION, actor_id, reason=reason)

    def resubmit(self, proposal_id: str, actor_id: str) -> Proposal:
        return self.perform(proposal_id, WorkflowAction.RESUBMIT, actor_id)

    def assign_approvers(self, proposal_id: str, actor_id: str, user_ids: Iterable[str]) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.ASSIGN_APPROVERS, actor_id, user_ids=list(user_ids or [])
        )

    def approve_as_approver(
        self, proposal_id: str, actor_id: str, comment: Optional[str] = None
    ) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.APPROVE_AS_APPROVER, actor_id, comment=comment
        )

    def reject_as_approver(self, proposal_id: str, actor_id: str, reason: str) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.REJECT_AS_APPROVER, actor_id, reason=reason
        )

    def request_revision_as_approver(self, proposal_id: str, actor_id: str, reason: str) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.REQUEST_REVISION_AS_APPROVER, actor_id, reason=reason
        )

    def assign_to_registrar(self, proposal_id: str, actor_id: str) -> Proposal:
        return self.perform(proposal_id, WorkflowAction.ASSIGN_TO_REGISTRAR, actor_id)

    def approve_as_registrar(
        self, proposal_id: str, actor_id: str, comment: Optional[str] = None
    ) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.APPROVE_AS_REGISTRAR, actor_id, comment=comment
        )

    def reject_as_registrar(self, proposal_id: str, actor_id: str, reason: str) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.REJECT_AS_REGISTRAR, actor_id, reason=reason
        )

    def request_revision_as_registrar(self, proposal_id: str, actor_id: str, reason: str) -> Proposal:
        return self.perform(
            proposal_id, WorkflowAction.REQUEST_REVISION_AS_REGISTRAR, actor_id, reason=reason
        )

    # ------------------------------------------------------------------
    # Creation and editing

    def create_proposal(
        self,
        actor_id: str,
        title: str,
        *,
        assigned_to: str,
        description: str = "",
        type: ProposalType = ProposalType.GENERAL,
        budget: Optional[str] = None,
        timeline: Optional[str] = None,
        justification: Optional[str] = None,
        department: Optional[str] = None,
        field_values: Optional[Dict[str, Any]] = None,
    ) -> Proposal:
        """
        Create a DRAFT proposal owned by ``actor_id``.

        Raises:
            UnauthorizedError: If the creator is not in the directory
            ProposalValidationError: If the superior is unknown or details are incomplete
        """
        creator = self._resolve_actor(actor_id)
        superior = self.directory.get_user(assigned_to) if assigned_to else None
        if superior is None:
            raise ProposalValidationError(f"Unknown superior {assigned_to!r}")

        try:
            proposal_type = ProposalType(type)
        except ValueError:
            raise ProposalValidationError(f"Unknown proposal type {type!r}") from None

        now = self._clock()
        proposal = Proposal(
            title=(title or "").strip(),
            description=description or "",
            type=proposal_type,
            budget=_clean(budget),
            timeline=_clean(timeline),
            justification=_clean(justification),
            department=_clean(department),
            field_values=dict(field_values or {}),
            created_by=creator.id,
            created_by_name=creator.name,
            assigned_to=superior.id,
            assigned_to_name=superior.name,
            created_at=now,
            updated_at=now,
        )
        validate_details(proposal)

        stored = self.store.add(proposal)
        logger.info(f"Proposal {stored.id} created by {creator.id}, superior {superior.id}")
        return stored

    def update_proposal(self, proposal_id: str, actor_id: str, changes: Dict[str, Any]) -> Proposal:
        """
        Edit descriptive fields while the creator still owns the proposal.

        Only ``EDITABLE_FIELDS`` may change; status, parties and approver
        state are never touched by an edit.
        """
        proposal = self._load(proposal_id)
        if proposal.is_terminal:
            raise TerminalStateError(f"Proposal {proposal_id} is closed", proposal_id)
        actor = self._resolve_actor(actor_id, proposal_id)

        decision = self.evaluator.check(Capability.EDIT, proposal, actor.id, actor.role)
        if decision is Decision.DENIED_ACTOR:
            raise UnauthorizedError(f"Only the creator may edit proposal {proposal_id}", proposal_id)
        if decision is Decision.DENIED_STATE:
            raise InvalidTransitionError(
                f"Proposal {proposal_id} cannot be edited in status {proposal.status.value}",
                proposal.status.value,
                EDIT_ACTION,
                proposal_id,
            )

        unknown = sorted(set(changes) - EDITABLE_FIELDS)
        if unknown:
            raise ProposalValidationError(
                f"Fields cannot be edited: {', '.join(unknown)}", proposal_id
            )
        if not changes:
            return proposal

        data = proposal.model_dump()
        data.update(changes)
        try:
            updated = Proposal.model_validate(data)
        except ValueError as e:
            raise ProposalValidationError(str(e), proposal_id) from e
        validate_details(updated)

        now = self._clock()
        self._record(updated, EDIT_ACTION, proposal.status, actor, None, now)
        stored = self.store.put(updated)
        logger.info(f"Proposal {proposal_id} edited by {actor.id}: {', '.join(sorted(changes))}")
        return stored

    # ------------------------------------------------------------------
    # Queries

    def get_proposal(self, proposal_id: str) -> Proposal:
        return self._load(proposal_id)

    def list_proposals(
        self,
        *,
        status: Optional[ProposalStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Proposal]:
        return self.store.list(status=status, created_by=created_by)

    def list_actionable(self, actor_id: str) -> List[Proposal]:
        """Proposals currently waiting on ``actor_id``."""
        actor = self._resolve_actor(actor_id)
        return [
            p for p in self.store.list()
            if self.evaluator.capabilities(p, actor.id, actor.role) & ACTIONABLE_CAPABILITIES
        ]

    def available_actions(self, proposal_id: str, actor_id: str) -> FrozenSet[Capability]:
        proposal = self._load(proposal_id)
        actor = self.directory.get_user(actor_id)
        if actor is None or proposal.is_terminal:
            return frozenset()
        return self.evaluator.capabilities(proposal, actor.id, actor.role)

    def progress(self, proposal_id: str) -> float:
        return self.ledger.progress(self._load(proposal_id))

    def pending_approver_ids(self, proposal_id: str) -> List[str]:
        return self.ledger.pending_approver_ids(self._load(proposal_id))

    def all_responded(self, proposal_id: str) -> bool:
        return self.ledger.all_responded(self._load(proposal_id))

    def can_resubmit(self, proposal_id: str, actor_id: str) -> bool:
        proposal = self._load(proposal_id)
        actor = self.directory.get_user(actor_id)
        if actor is None:
            return False
        return self.evaluator.can_resubmit(proposal, actor.id, actor.role)

    def approver_candidates(self, query: Optional[str] = None) -> List[User]:
        """Directory users matching ``query`` by name, for approver selection."""
        return self.directory.search(query)


__all__ = [
    "WorkflowEngine",
    "ACTIONABLE_CAPABILITIES",
    "validate_details",
]

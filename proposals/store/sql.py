"""SQLAlchemy implementation of the proposal store.

Concurrency control is optimistic: the root row is updated with
``WHERE id = :id AND version = :read_version``. When no row matches, a
concurrent writer got there first and the whole write is rolled back.
"""

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from proposals.common.logger import get_logger
from proposals.core.errors import ConflictError, ProposalNotFoundError
from proposals.core.models import (
    ApprovalStep,
    Proposal,
    ProposalStatus,
    TransitionRecord,
)
from proposals.db.models import (
    ApprovalStepRecord,
    ProposalHistoryRecord,
    ProposalRecord,
)

from .base import ProposalStore

logger = get_logger(__name__)

# Scalar fields copied one-to-one between Proposal and ProposalRecord
_SCALAR_FIELDS = (
    "title",
    "description",
    "budget",
    "timeline",
    "justification",
    "department",
    "field_values",
    "created_by",
    "created_by_name",
    "assigned_to",
    "assigned_to_name",
    "approvers",
    "pending_approvers",
    "approvers_assigned",
    "needs_reassignment",
    "approval_round",
    "rejection_reason",
    "rejected_by_registrar",
    "comments",
    "created_at",
    "updated_at",
)


class SqlProposalStore(ProposalStore):
    """Persist proposals with SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Mapping helpers
    @staticmethod
    def _scalar_values(proposal: Proposal) -> dict:
        values = {name: getattr(proposal, name) for name in _SCALAR_FIELDS}
        values["status"] = proposal.status.value
        values["type"] = proposal.type.value
        values["approvers"] = list(proposal.approvers)
        values["pending_approvers"] = list(proposal.pending_approvers)
        values["field_values"] = dict(proposal.field_values)
        values["comments"] = list(proposal.comments)
        return values

    @staticmethod
    def _step_record(proposal_id: str, position: int, step: ApprovalStep) -> ApprovalStepRecord:
        return ApprovalStepRecord(
            id=step.id,
            proposal_id=proposal_id,
            position=position,
            round=step.round,
            user_id=step.user_id,
            user_name=step.user_name,
            user_role=step.user_role,
            status=step.status.value,
            comment=step.comment,
            timestamp=step.timestamp,
        )

    @staticmethod
    def _history_record(
        proposal_id: str, position: int, entry: TransitionRecord
    ) -> ProposalHistoryRecord:
        return ProposalHistoryRecord(
            id=entry.id,
            proposal_id=proposal_id,
            position=position,
            action=entry.action,
            from_status=entry.from_status.value,
            to_status=entry.to_status.value,
            actor_id=entry.actor_id,
            actor_name=entry.actor_name,
            comment=entry.comment,
            timestamp=entry.timestamp,
        )

    @staticmethod
    def _to_model(record: ProposalRecord) -> Proposal:
        data = {name: getattr(record, name) for name in _SCALAR_FIELDS}
        return Proposal(
            id=record.id,
            status=record.status,
            type=record.type,
            version=record.version,
            approval_steps=[
                ApprovalStep(
                    id=s.id,
                    round=s.round,
                    user_id=s.user_id,
                    user_name=s.user_name,
                    user_role=s.user_role,
                    status=s.status,
                    comment=s.comment,
                    timestamp=s.timestamp,
                )
                for s in record.steps
            ],
            history=[
                TransitionRecord(
                    id=h.id,
                    action=h.action,
                    from_status=h.from_status,
                    to_status=h.to_status,
                    actor_id=h.actor_id,
                    actor_name=h.actor_name,
                    comment=h.comment,
                    timestamp=h.timestamp,
                )
                for h in record.history
            ],
            **data,
        )

    # ------------------------------------------------------------------
    # Store API
    def get(self, proposal_id: str) -> Optional[Proposal]:
        with self._session_factory() as session:
            record = session.get(ProposalRecord, proposal_id)
            return self._to_model(record) if record else None

    def add(self, proposal: Proposal) -> Proposal:
        with self._session_factory() as session:
            if session.get(ProposalRecord, proposal.id) is not None:
                raise ConflictError(f"Proposal {proposal.id} already exists", proposal.id)

            record = ProposalRecord(id=proposal.id, version=1, **self._scalar_values(proposal))
            record.steps = [
                self._step_record(proposal.id, i, s)
                for i, s in enumerate(proposal.approval_steps)
            ]
            record.history = [
                self._history_record(proposal.id, i, h)
                for i, h in enumerate(proposal.history)
            ]
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(f"Proposal {proposal.id} already exists", proposal.id) from e

        return proposal.model_copy(update={"version": 1}, deep=True)

    def put(self, proposal: Proposal) -> Proposal:
        new_version = proposal.version + 1
        with self._session_factory() as session:
            result = session.execute(
                update(ProposalRecord)
                .where(
                    ProposalRecord.id == proposal.id,
                    ProposalRecord.version == proposal.version,
                )
                .values(version=new_version, **self._scalar_values(proposal))
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                exists = session.get(ProposalRecord, proposal.id) is not None
                session.rollback()
                if not exists:
                    raise ProposalNotFoundError(proposal.id)
                logger.warning(
                    f"Version conflict on proposal {proposal.id} (read version {proposal.version})"
                )
                raise ConflictError(
                    f"Proposal {proposal.id} was modified concurrently", proposal.id
                )

            # Steps are settled in place within a round; merge by id
            for position, step in enumerate(proposal.approval_steps):
                session.merge(self._step_record(proposal.id, position, step))

            # History is append-only; insert only entries not stored yet
            known = set(
                session.scalars(
                    select(ProposalHistoryRecord.id).where(
                        ProposalHistoryRecord.proposal_id == proposal.id
                    )
                )
            )
            for position, entry in enumerate(proposal.history):
                if entry.id not in known:
                    session.add(self._history_record(proposal.id, position, entry))

            session.commit()

        return proposal.model_copy(update={"version": new_version}, deep=True)

    def list(
        self,
        *,
        status: Optional[ProposalStatus] = None,
        created_by: Optional[str] = None,
    ) -> List[Proposal]:
        with self._session_factory() as session:
            query = select(ProposalRecord)
            if status is not None:
                query = query.where(ProposalRecord.status == status.value)
            if created_by is not None:
                query = query.where(ProposalRecord.created_by == created_by)
            query = query.order_by(ProposalRecord.created_at.asc())
            return [self._to_model(r) for r in session.scalars(query).all()]

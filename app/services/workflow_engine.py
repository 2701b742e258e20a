"""
Workflow Engine — moves a subject record through its workflow's nodes.

State machine per record:

    NOT_REQUIRED ──initialize──▶ PENDING ──cast_vote*──▶ APPROVED | REJECTED

Every public function takes a SubjectAdapter so tickets and reprint
requests share one implementation.  The record's position travels as an
explicit WorkflowPointer; it is written back through the adapter in the
same transaction as the vote rows, and each mutating call commits once.

Each initialize opens a new run (``approval_run`` + 1).  Vote rows belong to
one run, so a re-initialised record is never judged by an earlier run's
decisions.  A node is evaluated against the approvers assigned to it now;
``sync_node_approvers`` brings paused records in line after the approver
set or the policy of a node changes.

cast_vote locks the record row (SELECT ... FOR UPDATE) before reading the
pointer so two approvers voting at the same node cannot both see an
incomplete node and advance twice, or slip past a rejection.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from sqlalchemy import func, select

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from app.models import db
from app.models.approval import VOTE_ACTIONS, VOTE_APPROVED, VOTE_REJECTED
from app.models.subject import APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED
from app.models.workflow import Workflow, WorkflowNode
from app.services import approval_ledger as ledger
from app.services import workflow_service
from app.services.subject_adapters import ADAPTERS, SubjectAdapter, WorkflowPointer, get_adapter
from app.services.user_service import get_user
from app.utils.helpers import db_commit_or_raise, parse_int

logger = logging.getLogger(__name__)


def _log_extra(adapter: SubjectAdapter, subject_id: int, pointer: WorkflowPointer, **kw) -> dict:
    extra = {
        "subject_type": adapter.subject_type,
        "subject_id": subject_id,
        "workflow_id": pointer.workflow_id,
        "node_order": pointer.current_node_order,
        "approval_status": pointer.approval_status,
    }
    extra.update(kw)
    return extra


def _node_status(adapter: SubjectAdapter, record, pointer: WorkflowPointer, node: WorkflowNode):
    votes = ledger.votes_for(adapter.subject_type, record.id, pointer.run, node.id)
    return ledger.evaluate_assigned(
        votes, workflow_service.user_ids_for_node(node.id), node.approval_type,
    )


# ═════════════════════════════════════════════════════════════════════════════
# INITIALIZE
# ═════════════════════════════════════════════════════════════════════════════


def initialize(adapter: SubjectAdapter, subject_id: int, workflow_id) -> dict:
    """Attach ``workflow_id`` to a record and open votes at its first node.

    All preconditions are checked before anything is written.  A record
    already PENDING is refused; a record in a terminal state starts a
    fresh run.
    """
    workflow_id = parse_int(workflow_id, "workflow_id")
    workflow = db.session.get(Workflow, workflow_id)
    if workflow is None:
        raise NotFoundError(resource="Workflow", resource_id=workflow_id)
    if not workflow.is_active:
        raise PreconditionError("Workflow is not active")

    first = workflow_service.first_node(workflow_id)
    if first is None:
        raise PreconditionError("Workflow has no nodes")
    approver_ids = workflow_service.user_ids_for_node(first.id)
    if not approver_ids:
        raise PreconditionError("First node has no assigned users")

    record = adapter.load(subject_id, lock=True)
    previous = adapter.get_pointer(record)
    if previous.approval_status == APPROVAL_PENDING:
        raise PreconditionError(f"{adapter.label} is already pending approval")

    pointer = WorkflowPointer(
        workflow_id=workflow_id,
        current_node_order=first.node_order,
        approval_status=APPROVAL_PENDING,
        run=previous.run + 1,
    )
    adapter.set_pointer(record, pointer)
    votes = ledger.create_votes_for_node(adapter.subject_type, record.id, pointer.run, first, approver_ids)
    db_commit_or_raise(adapter.label, "id", subject_id)

    logger.info(
        "Workflow initialized (run %d)", pointer.run,
        extra=_log_extra(adapter, record.id, pointer, node_id=first.id),
    )
    return {
        adapter.key: adapter.serialize(record),
        "current_node": first.to_dict(include_users=True),
        "pending_approvals": [v.to_dict() for v in votes],
    }


# ═════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class VoteOutcome:
    """What a single vote did to the record."""

    record: object
    node_status: ledger.NodeStatus
    message: str
    final_status: str | None = None
    next_node: WorkflowNode | None = None

    def to_dict(self, adapter: SubjectAdapter) -> dict:
        d = {
            "approval_recorded": True,
            "node_status": self.node_status.to_dict(),
            "message": self.message,
        }
        if self.next_node is not None:
            d["moved_to_next_node"] = True
            d["next_node"] = self.next_node.to_dict(include_users=True)
        if self.final_status is not None:
            d[adapter.status_key] = self.final_status
        d[adapter.key] = adapter.serialize(self.record)
        return d


def _settle(adapter: SubjectAdapter, record, pointer: WorkflowPointer, node: WorkflowNode,
            outcome: VoteOutcome) -> WorkflowPointer:
    """Apply a completed node: reject, advance, or finish.  No commit."""
    ledger.supersede_pending(adapter.subject_type, record.id, pointer.run, node.id)

    if outcome.node_status.node_status == VOTE_REJECTED:
        pointer = dataclasses.replace(pointer, approval_status=APPROVAL_REJECTED)
        outcome.final_status = APPROVAL_REJECTED
        outcome.message = f"{adapter.label} has been rejected"

    elif outcome.node_status.node_status == VOTE_APPROVED:
        nxt = workflow_service.next_node(pointer.workflow_id, node.node_order)
        if nxt is None:
            pointer = dataclasses.replace(pointer, approval_status=APPROVAL_APPROVED)
            outcome.final_status = APPROVAL_APPROVED
            outcome.message = f"{adapter.label} has been fully approved"
        else:
            pointer = dataclasses.replace(pointer, current_node_order=nxt.node_order)
            approver_ids = workflow_service.user_ids_for_node(nxt.id)
            ledger.create_votes_for_node(adapter.subject_type, record.id, pointer.run, nxt, approver_ids)
            outcome.next_node = nxt
            outcome.message = f"Moved to next approval stage: {nxt.name}"
            if not approver_ids:
                logger.warning(
                    "Advanced to node with no approvers; record is stalled",
                    extra=_log_extra(adapter, record.id, pointer, node_id=nxt.id),
                )

    adapter.set_pointer(record, pointer)
    return pointer


def _log_transition(adapter: SubjectAdapter, record, pointer: WorkflowPointer, node: WorkflowNode,
                    outcome: VoteOutcome) -> None:
    if outcome.final_status:
        logger.info(
            "Approval finished: %s", outcome.final_status,
            extra=_log_extra(adapter, record.id, pointer, node_id=node.id),
        )
    elif outcome.next_node is not None:
        logger.info(
            "Advanced to next node",
            extra=_log_extra(adapter, record.id, pointer, node_id=outcome.next_node.id),
        )


# ═════════════════════════════════════════════════════════════════════════════
# CAST VOTE
# ═════════════════════════════════════════════════════════════════════════════


def _parse_action(action) -> str:
    status = VOTE_ACTIONS.get(action.upper()) if isinstance(action, str) else None
    if status is None:
        raise ValidationError("action must be APPROVE or REJECT", details={"action": "invalid"})
    return status


def cast_vote(adapter: SubjectAdapter, subject_id: int, user_id, action,
              comments: str | None = None, node_id=None) -> VoteOutcome:
    """Record one approver's decision and apply the resulting transition."""
    user_id = parse_int(user_id, "user_id")
    vote_status = _parse_action(action)
    node_id = parse_int(node_id, "node_id", required=False)
    get_user(user_id)

    record = adapter.load(subject_id, lock=True)
    pointer = adapter.get_pointer(record)

    if pointer.workflow_id is None:
        raise PreconditionError(f"{adapter.label} has no workflow assigned")
    if pointer.approval_status != APPROVAL_PENDING:
        raise PreconditionError(f"{adapter.label} is already {pointer.approval_status}")

    node = workflow_service.node_at(pointer.workflow_id, pointer.current_node_order)
    if node is None:
        raise PreconditionError("Current workflow node not found")
    if node_id is not None and node_id != node.id:
        raise PreconditionError(
            f"{adapter.label} is no longer at node {node_id}",
            details={"current_node_id": node.id},
        )
    if not workflow_service.is_user_in_node(node.id, user_id):
        raise AuthorizationError(
            f"You are not authorized to approve this {adapter.noun} at current stage"
        )

    # ── all checks passed: write ─────────────────────────────────────────
    ledger.record_vote(adapter.subject_type, record.id, pointer.run, node, user_id, vote_status, comments)
    status = _node_status(adapter, record, pointer, node)
    logger.info(
        "Vote recorded",
        extra=_log_extra(adapter, record.id, pointer, node_id=node.id, user_id=user_id),
    )

    outcome = VoteOutcome(
        record=record,
        node_status=status,
        message=f"Approval recorded. Waiting for {status.pending} more approval(s)",
    )
    if status.is_complete:
        pointer = _settle(adapter, record, pointer, node, outcome)

    db_commit_or_raise(adapter.label, "id", subject_id)
    _log_transition(adapter, record, pointer, node, outcome)
    return outcome


# ═════════════════════════════════════════════════════════════════════════════
# APPROVER CHANGES
# ═════════════════════════════════════════════════════════════════════════════


def sync_node_approvers(node: WorkflowNode, added=(), removed=()) -> int:
    """Bring records paused on ``node`` in line with its current approvers.

    Runs inside the caller's transaction (no commit).  Added approvers get a
    PENDING row, removed approvers' PENDING rows are SUPERSEDED, and the
    node is re-evaluated: a node that is now complete is settled exactly as
    if the last vote had just been cast.  Returns the number of records
    whose node was settled.
    """
    added, removed = list(added), list(removed)
    settled = []
    for adapter in ADAPTERS.values():
        for record in adapter.paused_at(node):
            pointer = adapter.get_pointer(record)
            if added:
                ledger.create_votes_for_node(adapter.subject_type, record.id, pointer.run, node, added)
            if removed:
                ledger.supersede_pending(adapter.subject_type, record.id, pointer.run, node.id, removed)

            status = _node_status(adapter, record, pointer, node)
            if not status.is_complete:
                continue
            outcome = VoteOutcome(record=record, node_status=status, message="")
            pointer = _settle(adapter, record, pointer, node, outcome)
            settled.append((adapter, record, pointer, outcome))

    db.session.flush()
    for adapter, record, pointer, outcome in settled:
        logger.info(
            "Node settled after approver change",
            extra=_log_extra(adapter, record.id, pointer, node_id=node.id),
        )
        _log_transition(adapter, record, pointer, node, outcome)
    return len(settled)


# ═════════════════════════════════════════════════════════════════════════════
# READS
# ═════════════════════════════════════════════════════════════════════════════


def approval_status(adapter: SubjectAdapter, subject_id: int) -> dict:
    """Pointer, live status of the current node, this run's votes and the history.

    ``all_approvals`` covers the current (or latest) run; ``approval_history``
    keeps the decisions of every run.
    """
    record = adapter.load(subject_id)
    pointer = adapter.get_pointer(record)

    current_node = None
    if pointer.workflow_id is not None and pointer.approval_status == APPROVAL_PENDING:
        node = workflow_service.node_at(pointer.workflow_id, pointer.current_node_order)
        if node is not None:
            current_node = node.to_dict(include_users=True)
            current_node["status"] = _node_status(adapter, record, pointer, node).to_dict()

    return {
        adapter.key: record.pointer_dict(),
        "current_node": current_node,
        "all_approvals": [
            v.to_dict() for v in ledger.all_for(adapter.subject_type, record.id, run=pointer.run)
        ],
        "approval_history": [v.to_dict() for v in ledger.history_for(adapter.subject_type, record.id)],
    }


def _with_node_info(adapter: SubjectAdapter, record) -> dict:
    d = adapter.serialize(record)
    node = None
    if record.workflow_id is not None and record.current_node_order is not None:
        node = workflow_service.node_at(record.workflow_id, record.current_node_order)
    workflow = db.session.get(Workflow, record.workflow_id) if record.workflow_id else None
    d["workflow_name"] = workflow.name if workflow else None
    d["current_node_id"] = node.id if node else None
    d["current_node_name"] = node.name if node else None
    d["current_node_approval_type"] = node.approval_type if node else None
    return d


def list_pending_records(adapter: SubjectAdapter, user_id=None, limit: int = 20, offset: int = 0):
    """PENDING records of one type, optionally only those awaiting ``user_id``.

    Returns (items, pagination).
    """
    model = adapter.model
    user_id = parse_int(user_id, "userId", required=False)
    if user_id is not None:
        stmt = ledger.pending_for_user_query(model, adapter.subject_type, user_id)
    else:
        stmt = select(model).where(model.approval_status == APPROVAL_PENDING)

    total = db.session.scalar(select(func.count()).select_from(stmt.subquery()))
    records = db.session.scalars(
        stmt.order_by(model.created_at.desc(), model.id.desc()).limit(limit).offset(offset)
    ).all()
    items = [_with_node_info(adapter, r) for r in records]
    return items, {"limit": limit, "offset": offset, "total": total}


def pending_for_user(user_id, subject_type: str | None = None) -> list[dict]:
    """Every record, across subject types, waiting on ``user_id``'s vote."""
    user_id = parse_int(user_id, "userId")
    adapters = [get_adapter(subject_type)] if subject_type else list(ADAPTERS.values())

    result = []
    for adapter in adapters:
        stmt = ledger.pending_for_user_query(adapter.model, adapter.subject_type, user_id)
        for record in db.session.scalars(stmt.order_by(adapter.model.created_at.desc())).all():
            item = _with_node_info(adapter, record)
            item["subject_type"] = adapter.subject_type
            result.append(item)
    return result

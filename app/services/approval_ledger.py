"""
Approval ledger — vote rows per (subject, run, node, approver) and node evaluation.

Everything here works inside the caller's transaction: nothing commits.
The workflow engine owns the commit so a vote, its evaluation and the
pointer move land together.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, select

from app.models import db
from app.models.approval import (
    VOTE_APPROVED,
    VOTE_PENDING,
    VOTE_REJECTED,
    VOTE_SUPERSEDED,
    ApprovalVote,
)
from app.models.subject import APPROVAL_PENDING
from app.models.workflow import WorkflowNode


@dataclass(frozen=True)
class NodeStatus:
    """Result of evaluating the votes cast at one node visit."""

    is_complete: bool
    node_status: str | None
    pending: int
    approved: int
    rejected: int
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


# ═════════════════════════════════════════════════════════════════════════════
# Evaluation
# ═════════════════════════════════════════════════════════════════════════════


def evaluate_node(statuses, approval_type: str) -> NodeStatus:
    """Decide whether a node visit is complete.

    ``statuses`` holds the vote status of every approver at the node.
    SUPERSEDED entries are ignored.  Under ANY a node closes on its first
    decisive vote, so at most one decisive status is ever present.

    ANY:  complete on the first APPROVED or REJECTED vote.
    ALL:  complete+REJECTED on any REJECTED vote, complete+APPROVED only
          when every vote is APPROVED.
    """
    live = [s for s in statuses if s != VOTE_SUPERSEDED]
    approved = sum(1 for s in live if s == VOTE_APPROVED)
    rejected = sum(1 for s in live if s == VOTE_REJECTED)
    pending = sum(1 for s in live if s == VOTE_PENDING)
    total = len(live)

    def _status(is_complete, node_status):
        return NodeStatus(is_complete, node_status, pending, approved, rejected, total)

    if approval_type == "ANY":
        for s in live:
            if s in (VOTE_APPROVED, VOTE_REJECTED):
                return _status(True, s)
        return _status(False, None)

    if rejected:
        return _status(True, VOTE_REJECTED)
    if total and approved == total:
        return _status(True, VOTE_APPROVED)
    return _status(False, None)


def evaluate_assigned(votes, assigned_user_ids, approval_type: str) -> NodeStatus:
    """Evaluate a node visit against the approvers assigned to the node now.

    Every assigned approver counts once: their row's status, or PENDING when
    they have no row yet (added after the record entered the node) or only
    a SUPERSEDED one (removed and re-added).  Rows of users no longer
    assigned are ignored.
    """
    by_user = {v.user_id: v.status for v in votes}
    statuses = []
    for uid in assigned_user_ids:
        status = by_user.get(uid, VOTE_PENDING)
        statuses.append(VOTE_PENDING if status == VOTE_SUPERSEDED else status)
    return evaluate_node(statuses, approval_type)


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════


def _row(subject_type: str, subject_id: int, run: int, node_id: int, user_id: int) -> ApprovalVote | None:
    return ApprovalVote.query.filter_by(
        subject_type=subject_type, subject_id=subject_id, run_number=run, node_id=node_id, user_id=user_id,
    ).first()


def create_votes_for_node(subject_type: str, subject_id: int, run: int, node: WorkflowNode,
                          user_ids) -> list[ApprovalVote]:
    """Open one PENDING row per approver at ``node`` for this run.

    A user who already has a row keeps it; a SUPERSEDED row (approver taken
    off the node and put back) is reopened.  Decisions are never reset.
    """
    existing = {
        v.user_id: v
        for v in votes_for(subject_type, subject_id, run, node.id)
    }
    rows = []
    for uid in user_ids:
        vote = existing.get(uid)
        if vote is None:
            vote = ApprovalVote(
                subject_type=subject_type,
                subject_id=subject_id,
                run_number=run,
                node_id=node.id,
                node_name=node.name,
                node_order=node.node_order,
                user_id=uid,
                status=VOTE_PENDING,
            )
            db.session.add(vote)
        elif vote.status == VOTE_SUPERSEDED:
            vote.status = VOTE_PENDING
        rows.append(vote)
    db.session.flush()
    return rows


def record_vote(subject_type: str, subject_id: int, run: int, node: WorkflowNode, user_id: int,
                status: str, comments: str | None = None) -> ApprovalVote:
    """Write a decision onto the approver's row; re-voting overwrites."""
    vote = _row(subject_type, subject_id, run, node.id, user_id)
    if vote is None:
        vote = ApprovalVote(
            subject_type=subject_type,
            subject_id=subject_id,
            run_number=run,
            node_id=node.id,
            node_name=node.name,
            node_order=node.node_order,
            user_id=user_id,
        )
        db.session.add(vote)
    vote.status = status
    vote.comments = comments
    vote.action_at = datetime.now(timezone.utc)
    db.session.flush()
    return vote


def supersede_pending(subject_type: str, subject_id: int, run: int, node_id: int,
                      user_ids=None) -> int:
    """Close PENDING rows at a node: all of them, or only those of ``user_ids``."""
    q = ApprovalVote.query.filter_by(
        subject_type=subject_type, subject_id=subject_id, run_number=run, node_id=node_id,
        status=VOTE_PENDING,
    )
    if user_ids is not None:
        q = q.filter(ApprovalVote.user_id.in_(list(user_ids)))
    rows = q.all()
    for vote in rows:
        vote.status = VOTE_SUPERSEDED
    db.session.flush()
    return len(rows)


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def votes_for(subject_type: str, subject_id: int, run: int, node_id: int) -> list[ApprovalVote]:
    return (
        ApprovalVote.query.filter_by(
            subject_type=subject_type, subject_id=subject_id, run_number=run, node_id=node_id,
        )
        .order_by(ApprovalVote.id)
        .all()
    )


def all_for(subject_type: str, subject_id: int, run: int | None = None) -> list[ApprovalVote]:
    """Vote rows of a record by run, node order, approver; ``run`` narrows to one run."""
    q = ApprovalVote.query.filter(
        ApprovalVote.subject_type == subject_type, ApprovalVote.subject_id == subject_id,
    )
    if run is not None:
        q = q.filter(ApprovalVote.run_number == run)
    return q.order_by(ApprovalVote.run_number, ApprovalVote.node_order, ApprovalVote.user_id).all()


def history_for(subject_type: str, subject_id: int) -> list[ApprovalVote]:
    """Decided votes (APPROVED / REJECTED) of every run, ordered by action time."""
    return (
        ApprovalVote.query.filter(
            ApprovalVote.subject_type == subject_type,
            ApprovalVote.subject_id == subject_id,
            ApprovalVote.status.in_((VOTE_APPROVED, VOTE_REJECTED)),
        )
        .order_by(ApprovalVote.run_number, ApprovalVote.action_at, ApprovalVote.id)
        .all()
    )


def user_has_votes(user_id: int) -> bool:
    return ApprovalVote.query.filter_by(user_id=user_id).first() is not None


def pending_for_user_query(model, subject_type: str, user_id: int):
    """Select records of ``model`` waiting on ``user_id`` at their current node.

    Joins on the record's current node and current run so rows left at
    passed nodes or in earlier runs never resurface.
    """
    return (
        select(model)
        .join(
            WorkflowNode,
            and_(
                WorkflowNode.workflow_id == model.workflow_id,
                WorkflowNode.node_order == model.current_node_order,
            ),
        )
        .join(
            ApprovalVote,
            and_(
                ApprovalVote.subject_type == subject_type,
                ApprovalVote.subject_id == model.id,
                ApprovalVote.run_number == model.approval_run,
                ApprovalVote.node_id == WorkflowNode.id,
            ),
        )
        .where(
            model.approval_status == APPROVAL_PENDING,
            ApprovalVote.user_id == user_id,
            ApprovalVote.status == VOTE_PENDING,
        )
        .distinct()
    )

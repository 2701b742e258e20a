"""
Approval ledger model — one vote row per (subject, run, node, approver).

Polymorphic FK pattern:
    subject_type + subject_id together identify the record being routed
    (a ticket or a reprint request).  Each subject model owns its votes
    through an ORM relationship with delete cascade.

run_number ties a row to one workflow run of its record; re-initialising a
terminal record starts run N+1 and the rows of earlier runs stay untouched
as history.  node_name / node_order are copied from the node when the row
is opened so the trail survives the node being deleted later
(node_id → NULL).  Users with vote rows cannot be deleted.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────

VOTE_PENDING = "PENDING"
VOTE_APPROVED = "APPROVED"
VOTE_REJECTED = "REJECTED"
# Row closed without a decision: the node was decided before this approver
# voted, or the approver was taken off the node mid-run.
VOTE_SUPERSEDED = "SUPERSEDED"

VOTE_STATUSES = {VOTE_PENDING, VOTE_APPROVED, VOTE_REJECTED, VOTE_SUPERSEDED}

VOTE_ACTIONS = {"APPROVE": VOTE_APPROVED, "REJECT": VOTE_REJECTED}


class ApprovalVote(db.Model):
    __tablename__ = "approval_votes"

    id = db.Column(db.Integer, primary_key=True)
    subject_type = db.Column(
        db.String(30),
        nullable=False,
        comment="ticket | reprint_request",
    )
    subject_id = db.Column(db.Integer, nullable=False)
    run_number = db.Column(db.Integer, nullable=False, default=1)
    node_id = db.Column(
        db.Integer, db.ForeignKey("workflow_nodes.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    node_name = db.Column(db.String(255))
    node_order = db.Column(db.Integer)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default=VOTE_PENDING, index=True)
    comments = db.Column(db.Text)
    action_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "subject_type", "subject_id", "run_number", "node_id", "user_id", name="uq_approval_vote",
        ),
        db.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'SUPERSEDED')",
            name="ck_approval_vote_status",
        ),
        db.Index("ix_approval_votes_subject", "subject_type", "subject_id", "run_number"),
    )

    node = db.relationship("WorkflowNode")
    user = db.relationship("User")

    def to_dict(self):
        d = {
            "id": self.id,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "run_number": self.run_number,
            "node_id": self.node_id,
            "node_name": self.node_name,
            "node_order": self.node_order,
            "user_id": self.user_id,
            "status": self.status,
            "comments": self.comments,
            "action_at": self.action_at.isoformat() if self.action_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.user:
            d["first_name"] = self.user.first_name
            d["last_name"] = self.user.last_name
            d["username"] = self.user.username
        return d

    def __repr__(self):
        return (
            f"<ApprovalVote {self.subject_type}/{self.subject_id} run={self.run_number} "
            f"node={self.node_id} user={self.user_id} {self.status}>"
        )

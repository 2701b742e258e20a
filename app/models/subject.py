"""
Subject records — the artifacts routed through an approval workflow.

Models:
    - Ticket:          support / work ticket
    - ReprintRequest:  request to reprint a ticket document

Both carry the same workflow pointer via SubjectRecordMixin:
    workflow_id         → workflows.id (NULL when no workflow is attached)
    current_node_order  → node_order of the node the record is paused on
    approval_status     → PENDING | APPROVED | REJECTED | NOT_REQUIRED
    approval_run        → number of the current / latest workflow run (0 = never routed)
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────

APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"
APPROVAL_NOT_REQUIRED = "NOT_REQUIRED"

APPROVAL_STATUSES = {
    APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_NOT_REQUIRED,
}

TERMINAL_APPROVAL_STATUSES = {APPROVAL_APPROVED, APPROVAL_REJECTED}

TICKET_STATUSES = {"open", "in_progress", "resolved", "closed"}

TICKET_PRIORITIES = {"low", "medium", "high", "urgent"}

REPRINT_STATUSES = {"requested", "printed", "cancelled"}


class SubjectRecordMixin:
    """Workflow pointer columns shared by every subject record table."""

    @declared_attr
    def workflow_id(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("workflows.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )

    @declared_attr
    def created_by(cls):
        return db.Column(
            db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        )

    current_node_order = db.Column(db.Integer, nullable=True)
    approval_status = db.Column(
        db.String(20), nullable=False, default=APPROVAL_NOT_REQUIRED, index=True,
    )
    approval_run = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def pointer_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "current_node_order": self.current_node_order,
            "approval_status": self.approval_status,
            "approval_run": self.approval_run,
        }


class Ticket(SubjectRecordMixin, db.Model):
    __tablename__ = "tickets"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    priority = db.Column(db.String(20), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="open")

    __table_args__ = (
        db.CheckConstraint(
            "approval_status IN ('PENDING', 'APPROVED', 'REJECTED', 'NOT_REQUIRED')",
            name="ck_tickets_approval_status",
        ),
    )

    votes = db.relationship(
        "ApprovalVote",
        primaryjoin="and_(ApprovalVote.subject_type == 'ticket', "
                    "foreign(ApprovalVote.subject_id) == Ticket.id)",
        cascade="all",
        overlaps="votes",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "workflow_id": self.workflow_id,
            "current_node_order": self.current_node_order,
            "approval_status": self.approval_status,
            "approval_run": self.approval_run,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Ticket #{self.id} {self.approval_status}>"


class ReprintRequest(SubjectRecordMixin, db.Model):
    __tablename__ = "reprint_requests"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer, db.ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    reason = db.Column(db.Text, nullable=False)
    copies = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(20), nullable=False, default="requested")

    __table_args__ = (
        db.CheckConstraint(
            "approval_status IN ('PENDING', 'APPROVED', 'REJECTED', 'NOT_REQUIRED')",
            name="ck_reprint_requests_approval_status",
        ),
    )

    votes = db.relationship(
        "ApprovalVote",
        primaryjoin="and_(ApprovalVote.subject_type == 'reprint_request', "
                    "foreign(ApprovalVote.subject_id) == ReprintRequest.id)",
        cascade="all",
        overlaps="votes",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "reason": self.reason,
            "copies": self.copies,
            "status": self.status,
            "workflow_id": self.workflow_id,
            "current_node_order": self.current_node_order,
            "approval_status": self.approval_status,
            "approval_run": self.approval_run,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ReprintRequest #{self.id} {self.approval_status}>"

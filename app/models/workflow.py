"""
Workflow definition models.

Models:
    - Workflow:          named, linear approval route (soft-disabled via is_active)
    - WorkflowNode:      one ordered stage of a workflow with an ALL / ANY policy
    - WorkflowNodeUser:  approver assignment (node ↔ user, many-to-many)

Architecture ref:
    Workflow ──1:N──▶ WorkflowNode ──1:N──▶ WorkflowNodeUser ──N:1──▶ User

node_order is a sparse integer: unique within a workflow, gaps allowed.
The first node is MIN(node_order); the node after order N is
MIN(node_order) WHERE node_order > N.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────

APPROVAL_TYPES = {"ALL", "ANY"}

DEFAULT_APPROVAL_TYPE = "ALL"


class Workflow(db.Model):
    __tablename__ = "workflows"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    nodes = db.relationship(
        "WorkflowNode",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowNode.node_order",
    )
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self, include_nodes=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "node_count": len(self.nodes),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_nodes:
            d["nodes"] = [n.to_dict(include_users=True) for n in self.nodes]
        return d

    def __repr__(self):
        return f"<Workflow #{self.id} {self.name}>"


class WorkflowNode(db.Model):
    __tablename__ = "workflow_nodes"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    node_order = db.Column(db.Integer, nullable=False)
    approval_type = db.Column(db.String(10), nullable=False, default=DEFAULT_APPROVAL_TYPE)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("workflow_id", "node_order", name="uq_workflow_node_order"),
        db.CheckConstraint("approval_type IN ('ALL', 'ANY')", name="ck_workflow_node_approval_type"),
        db.Index("ix_workflow_nodes_order", "workflow_id", "node_order"),
    )

    workflow = db.relationship("Workflow", back_populates="nodes")
    assignments = db.relationship(
        "WorkflowNodeUser",
        back_populates="node",
        cascade="all, delete-orphan",
    )

    @property
    def user_ids(self):
        return [a.user_id for a in self.assignments]

    def to_dict(self, include_users=False):
        d = {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "name": self.name,
            "node_order": self.node_order,
            "approval_type": self.approval_type,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_users:
            d["users"] = sorted(
                (a.user.to_brief() for a in self.assignments if a.user),
                key=lambda u: (u["first_name"] or "", u["user_id"]),
            )
        return d

    def __repr__(self):
        return f"<WorkflowNode #{self.id} wf={self.workflow_id} order={self.node_order} {self.approval_type}>"


class WorkflowNodeUser(db.Model):
    __tablename__ = "workflow_node_users"

    id = db.Column(db.Integer, primary_key=True)
    node_id = db.Column(
        db.Integer, db.ForeignKey("workflow_nodes.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("node_id", "user_id", name="uq_workflow_node_user"),
    )

    node = db.relationship("WorkflowNode", back_populates="assignments")
    user = db.relationship("User")

    def to_dict(self):
        d = {
            "id": self.id,
            "node_id": self.node_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.user:
            d.update(self.user.to_brief())
        else:
            d["user_id"] = self.user_id
        return d

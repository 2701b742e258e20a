"""initial_approval_schema

Creates the approval workflow schema:
  - users / auth_sessions          — identity store + revocable tokens
  - roles / permissions / role_permissions — role catalog and permission grants
  - workflows / workflow_nodes     — linear approval routes and their stages
  - workflow_node_users            — approver assignments
  - tickets / reprint_requests     — subject records carrying the workflow pointer
  - approval_votes                 — one vote row per (subject, run, node, approver)

Tables created conditionally so the revision can be stamped onto a
database that already received them via db.create_all().

Revision ID: a1f3c9e2b7d4
Revises:
Create Date: 2026-10-19 09:12:40.118305
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1f3c9e2b7d4'
down_revision = None
branch_labels = None
depends_on = None


def _pointer_columns():
    return [
        sa.Column("workflow_id", sa.Integer(), nullable=True),
        sa.Column("current_node_order", sa.Integer(), nullable=True),
        sa.Column("approval_status", sa.String(length=20), nullable=False,
                  server_default="NOT_REQUIRED",
                  comment="PENDING | APPROVED | REJECTED | NOT_REQUIRED"),
        sa.Column("approval_run", sa.Integer(), nullable=False, server_default="0",
                  comment="Workflow run counter; votes carry the run they belong to"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("first_name", sa.String(length=255), nullable=False),
            sa.Column("last_name", sa.String(length=255), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("phone", sa.String(length=20), nullable=True),
            sa.Column("role", sa.String(length=50), nullable=False, server_default="user"),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
            sa.Column("department", sa.String(length=255), nullable=True),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.CheckConstraint("role IN ('user', 'trainer', 'admin')", name="ck_users_role"),
            sa.CheckConstraint(
                "status IN ('active', 'inactive', 'suspended')", name="ck_users_status",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
            sa.UniqueConstraint("email"),
        )

    # ── Auth sessions ─────────────────────────────────────────────────────
    if "auth_sessions" not in existing:
        op.create_table(
            "auth_sessions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("token_hash", sa.String(length=64), nullable=False,
                      comment="SHA-256 of the issued access token"),
            sa.Column("ip_address", sa.String(length=45), nullable=True),
            sa.Column("user_agent", sa.String(length=500), nullable=True),
            sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("last_used_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("token_hash"),
        )
        op.create_index("ix_auth_sessions_user_id", "auth_sessions", ["user_id"])

    # ── Roles & permissions ───────────────────────────────────────────────
    if "roles" not in existing:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )
        op.create_index("ix_roles_is_active", "roles", ["is_active"])

    if "permissions" not in existing:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True, comment="NULL = category"),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["parent_id"], ["permissions.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )
        op.create_index("ix_permissions_parent_id", "permissions", ["parent_id"])

    if "role_permissions" not in existing:
        op.create_table(
            "role_permissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=False),
            sa.Column("permission_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
        )
        op.create_index("ix_role_permissions_role_id", "role_permissions", ["role_id"])
        op.create_index("ix_role_permissions_permission_id", "role_permissions", ["permission_id"])

    # ── Workflows ─────────────────────────────────────────────────────────
    if "workflows" not in existing:
        op.create_table(
            "workflows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_workflows_is_active", "workflows", ["is_active"])

    if "workflow_nodes" not in existing:
        op.create_table(
            "workflow_nodes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workflow_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("node_order", sa.Integer(), nullable=False,
                      comment="Sparse; unique within a workflow"),
            sa.Column("approval_type", sa.String(length=10), nullable=False,
                      server_default="ALL", comment="ALL | ANY"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.CheckConstraint(
                "approval_type IN ('ALL', 'ANY')", name="ck_workflow_node_approval_type",
            ),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("workflow_id", "node_order", name="uq_workflow_node_order"),
        )
        op.create_index("ix_workflow_nodes_workflow_id", "workflow_nodes", ["workflow_id"])
        op.create_index("ix_workflow_nodes_order", "workflow_nodes", ["workflow_id", "node_order"])

    if "workflow_node_users" not in existing:
        op.create_table(
            "workflow_node_users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("node_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["node_id"], ["workflow_nodes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("node_id", "user_id", name="uq_workflow_node_user"),
        )
        op.create_index("ix_workflow_node_users_node_id", "workflow_node_users", ["node_id"])
        op.create_index("ix_workflow_node_users_user_id", "workflow_node_users", ["user_id"])

    # ── Subject records ───────────────────────────────────────────────────
    if "tickets" not in existing:
        op.create_table(
            "tickets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
            *_pointer_columns(),
            sa.CheckConstraint(
                "approval_status IN ('PENDING', 'APPROVED', 'REJECTED', 'NOT_REQUIRED')",
                name="ck_tickets_approval_status",
            ),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tickets_workflow_id", "tickets", ["workflow_id"])
        op.create_index("ix_tickets_approval_status", "tickets", ["approval_status"])

    if "reprint_requests" not in existing:
        op.create_table(
            "reprint_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("ticket_id", sa.Integer(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("copies", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="requested"),
            *_pointer_columns(),
            sa.CheckConstraint(
                "approval_status IN ('PENDING', 'APPROVED', 'REJECTED', 'NOT_REQUIRED')",
                name="ck_reprint_requests_approval_status",
            ),
            sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["workflow_id"], ["workflows.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_reprint_requests_ticket_id", "reprint_requests", ["ticket_id"])
        op.create_index("ix_reprint_requests_workflow_id", "reprint_requests", ["workflow_id"])
        op.create_index(
            "ix_reprint_requests_approval_status", "reprint_requests", ["approval_status"],
        )

    # ── Approval votes ────────────────────────────────────────────────────
    if "approval_votes" not in existing:
        op.create_table(
            "approval_votes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("subject_type", sa.String(length=30), nullable=False,
                      comment="ticket | reprint_request"),
            sa.Column("subject_id", sa.Integer(), nullable=False),
            sa.Column("run_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("node_id", sa.Integer(), nullable=True),
            sa.Column("node_name", sa.String(length=255), nullable=True),
            sa.Column("node_order", sa.Integer(), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("action_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.CheckConstraint(
                "status IN ('PENDING', 'APPROVED', 'REJECTED', 'SUPERSEDED')",
                name="ck_approval_vote_status",
            ),
            sa.ForeignKeyConstraint(["node_id"], ["workflow_nodes.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "subject_type", "subject_id", "run_number", "node_id", "user_id",
                name="uq_approval_vote",
            ),
        )
        op.create_index(
            "ix_approval_votes_subject", "approval_votes", ["subject_type", "subject_id", "run_number"],
        )
        op.create_index("ix_approval_votes_node_id", "approval_votes", ["node_id"])
        op.create_index("ix_approval_votes_user_id", "approval_votes", ["user_id"])
        op.create_index("ix_approval_votes_status", "approval_votes", ["status"])


def downgrade():
    for table in (
        "approval_votes",
        "reprint_requests",
        "tickets",
        "workflow_node_users",
        "workflow_nodes",
        "workflows",
        "role_permissions",
        "permissions",
        "roles",
        "auth_sessions",
        "users",
    ):
        op.drop_table(table)

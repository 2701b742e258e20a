"""
Workflow Definition Service — workflows, ordered nodes and approver sets.

Rules:
    - node_order is sparse; "first" and "next" are MIN() lookups.
    - Structural edits (add node, change node_order, delete node, reorder,
      delete workflow) are refused while any subject record is PENDING on
      the workflow.  Renames, approval_type changes and approver edits
      are always allowed; the last two re-sync records paused on the node
      (workflow_engine.sync_node_approvers) in the same commit.
    - Validation runs before the first write; each public function
      commits once.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from app.core.exceptions import ConflictError, NotFoundError, PreconditionError, ValidationError
from app.models import db
from app.models.workflow import (
    APPROVAL_TYPES,
    DEFAULT_APPROVAL_TYPE,
    Workflow,
    WorkflowNode,
    WorkflowNodeUser,
)
from app.services.subject_adapters import ADAPTERS
from app.services.user_service import ensure_users_exist
from app.utils.helpers import db_commit_or_raise, get_or_404, parse_int

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _clean_name(value, field="name") -> str:
    name = (value or "").strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return name


def _clean_approval_type(value) -> str:
    approval_type = (value or DEFAULT_APPROVAL_TYPE)
    approval_type = approval_type.upper() if isinstance(approval_type, str) else approval_type
    if approval_type not in APPROVAL_TYPES:
        raise ValidationError(
            f"approval_type must be one of {sorted(APPROVAL_TYPES)}",
            details={"approval_type": "invalid"},
        )
    return approval_type


def _clean_order(value, required=False) -> int | None:
    order = parse_int(value, "node_order", required=required)
    if order is not None and order < 1:
        raise ValidationError("node_order must be a positive integer", details={"node_order": "invalid"})
    return order


def _in_flight_count(workflow_id: int) -> int:
    return sum(a.pending_count(workflow_id) for a in ADAPTERS.values())


def _guard_structure(workflow: Workflow, operation: str) -> None:
    """Refuse structural edits while records are paused on ``workflow``."""
    in_flight = _in_flight_count(workflow.id)
    if in_flight:
        raise PreconditionError(
            f"Cannot {operation}: {in_flight} record(s) are pending approval on this workflow",
            details={"in_flight": in_flight},
        )


def _order_taken(workflow_id: int, node_order: int, exclude_node_id: int | None = None) -> bool:
    q = WorkflowNode.query.filter_by(workflow_id=workflow_id, node_order=node_order)
    if exclude_node_id is not None:
        q = q.filter(WorkflowNode.id != exclude_node_id)
    return q.first() is not None


def _sync_paused(node: WorkflowNode, added=(), removed=()) -> None:
    # engine imports this module at load time
    from app.services.workflow_engine import sync_node_approvers

    settled = sync_node_approvers(node, added=added, removed=removed)
    if settled:
        logger.info(
            "Approver change settled %d paused record(s)", settled,
            extra={"workflow_id": node.workflow_id, "node_id": node.id},
        )


def _get_node_in_workflow(workflow_id: int, node_id: int) -> WorkflowNode:
    node = db.session.get(WorkflowNode, node_id)
    if node is None or node.workflow_id != workflow_id:
        raise NotFoundError(resource="Node", resource_id=node_id)
    return node


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOWS
# ═════════════════════════════════════════════════════════════════════════════


def get_workflow(workflow_id: int) -> Workflow:
    return get_or_404(Workflow, workflow_id, "Workflow")


def list_workflows(active_only: bool = False):
    """Return a query over workflows, newest first."""
    q = Workflow.query
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Workflow.created_at.desc(), Workflow.id.desc())


def create_workflow(data: dict, created_by: int | None = None) -> Workflow:
    """Create a workflow. Body: { name, description?, is_active? }"""
    name = _clean_name(data.get("name"))
    workflow = Workflow(
        name=name,
        description=data.get("description"),
        is_active=data.get("is_active") is not False,
        created_by=created_by,
    )
    db.session.add(workflow)
    db_commit_or_raise("Workflow", "name", name)
    logger.info("Workflow created", extra={"workflow_id": workflow.id})
    return workflow


def update_workflow(workflow_id: int, data: dict) -> Workflow:
    """Partial update of name / description / is_active."""
    workflow = get_workflow(workflow_id)
    if "name" in data and data["name"] is not None:
        workflow.name = _clean_name(data["name"])
    if "description" in data and data["description"] is not None:
        workflow.description = data["description"]
    if "is_active" in data and data["is_active"] is not None:
        workflow.is_active = bool(data["is_active"])
    db_commit_or_raise("Workflow", "id", workflow_id)
    return workflow


def delete_workflow(workflow_id: int) -> None:
    """Delete a workflow with its nodes and assignments."""
    workflow = get_workflow(workflow_id)
    _guard_structure(workflow, "delete workflow")
    db.session.delete(workflow)
    db_commit_or_raise("Workflow", "id", workflow_id)
    logger.info("Workflow deleted", extra={"workflow_id": workflow_id})


# ═════════════════════════════════════════════════════════════════════════════
# NODES
# ═════════════════════════════════════════════════════════════════════════════


def list_nodes(workflow_id: int) -> list[WorkflowNode]:
    get_workflow(workflow_id)
    return WorkflowNode.query.filter_by(workflow_id=workflow_id).order_by(WorkflowNode.node_order).all()


def max_node_order(workflow_id: int) -> int:
    return db.session.scalar(
        select(func.coalesce(func.max(WorkflowNode.node_order), 0)).where(
            WorkflowNode.workflow_id == workflow_id
        )
    )


def first_node(workflow_id: int) -> WorkflowNode | None:
    """Node with the minimum node_order, or None for an empty workflow."""
    return (
        WorkflowNode.query.filter_by(workflow_id=workflow_id)
        .order_by(WorkflowNode.node_order.asc())
        .first()
    )


def next_node(workflow_id: int, node_order: int) -> WorkflowNode | None:
    """Node with the minimum node_order strictly greater than ``node_order``."""
    return (
        WorkflowNode.query.filter(
            WorkflowNode.workflow_id == workflow_id,
            WorkflowNode.node_order > node_order,
        )
        .order_by(WorkflowNode.node_order.asc())
        .first()
    )


def node_at(workflow_id: int, node_order: int) -> WorkflowNode | None:
    return WorkflowNode.query.filter_by(workflow_id=workflow_id, node_order=node_order).first()


def add_node(workflow_id: int, data: dict) -> WorkflowNode:
    """Append a node.

    Body: { name, node_order?, approval_type?, description?, user_ids? }

    node_order defaults to MAX(node_order) + 1; approval_type to ALL.
    """
    workflow = get_workflow(workflow_id)
    name = _clean_name(data.get("name"), "Node name")
    approval_type = _clean_approval_type(data.get("approval_type"))
    node_order = _clean_order(data.get("node_order"))
    user_ids = ensure_users_exist(data.get("user_ids"))

    _guard_structure(workflow, "add node")
    if node_order is None:
        node_order = max_node_order(workflow_id) + 1
    elif _order_taken(workflow_id, node_order):
        raise ConflictError("Node", "node_order", node_order)

    node = WorkflowNode(
        workflow_id=workflow_id,
        name=name,
        node_order=node_order,
        approval_type=approval_type,
        description=data.get("description"),
    )
    db.session.add(node)
    db.session.flush()
    for uid in user_ids:
        db.session.add(WorkflowNodeUser(node_id=node.id, user_id=uid))
    db_commit_or_raise("Node", "node_order", node_order)
    logger.info(
        "Node added",
        extra={"workflow_id": workflow_id, "node_id": node.id, "node_order": node_order},
    )
    return node


def update_node(workflow_id: int, node_id: int, data: dict) -> WorkflowNode:
    """Partial update of name / node_order / approval_type / description."""
    node = _get_node_in_workflow(workflow_id, node_id)

    new_order = _clean_order(data.get("node_order"))
    if new_order is not None and new_order != node.node_order:
        _guard_structure(node.workflow, "change node order")
        if _order_taken(workflow_id, new_order, exclude_node_id=node.id):
            raise ConflictError("Node", "node_order", new_order)

    if "name" in data and data["name"] is not None:
        node.name = _clean_name(data["name"], "Node name")
    policy_changed = False
    if "approval_type" in data and data["approval_type"] is not None:
        approval_type = _clean_approval_type(data["approval_type"])
        policy_changed = approval_type != node.approval_type
        node.approval_type = approval_type
    if "description" in data and data["description"] is not None:
        node.description = data["description"]
    if new_order is not None:
        node.node_order = new_order
    if policy_changed:
        db.session.flush()
        _sync_paused(node)

    db_commit_or_raise("Node", "node_order", node.node_order)
    return node


def delete_node(workflow_id: int, node_id: int) -> None:
    node = _get_node_in_workflow(workflow_id, node_id)
    _guard_structure(node.workflow, "delete node")
    db.session.delete(node)
    db_commit_or_raise("Node", "id", node_id)
    logger.info("Node deleted", extra={"workflow_id": workflow_id, "node_id": node_id})


def reorder_nodes(workflow_id: int, node_orders) -> list[WorkflowNode]:
    """Apply a bulk reorder. Body: { node_orders: [{id, node_order}, ...] }

    Every id must belong to the workflow and the resulting set of orders
    (moved plus untouched nodes) must be unique.  Writes go through a
    negative staging value first so the (workflow_id, node_order) unique
    constraint never sees a transient duplicate.
    """
    workflow = get_workflow(workflow_id)
    if not isinstance(node_orders, list):
        raise ValidationError("node_orders array is required", details={"node_orders": "required"})

    nodes = {n.id: n for n in workflow.nodes}
    moves: dict[int, int] = {}
    for entry in node_orders:
        if not isinstance(entry, dict):
            raise ValidationError("node_orders entries must be objects {id, node_order}")
        nid = parse_int(entry.get("id"), "id")
        order = _clean_order(entry.get("node_order"), required=True)
        if nid not in nodes:
            raise NotFoundError(resource="Node", resource_id=nid)
        if nid in moves:
            raise ValidationError(f"Node {nid} appears more than once in node_orders")
        moves[nid] = order

    final = {nid: moves.get(nid, n.node_order) for nid, n in nodes.items()}
    if len(set(final.values())) != len(final):
        raise ValidationError(
            "node_order values must be unique within the workflow",
            details={"node_orders": "duplicate"},
        )

    changed = {nid: order for nid, order in moves.items() if nodes[nid].node_order != order}
    if changed:
        _guard_structure(workflow, "reorder nodes")
        for nid in changed:
            nodes[nid].node_order = -nid
        db.session.flush()
        for nid, order in changed.items():
            nodes[nid].node_order = order
        db_commit_or_raise("Node", "node_order")
        logger.info("Nodes reordered", extra={"workflow_id": workflow_id})

    return list_nodes(workflow_id)


# ═════════════════════════════════════════════════════════════════════════════
# APPROVER ASSIGNMENTS
# ═════════════════════════════════════════════════════════════════════════════


def get_node(node_id: int) -> WorkflowNode:
    return get_or_404(WorkflowNode, node_id, "Node")


def list_node_users(node_id: int) -> list[WorkflowNodeUser]:
    node = get_node(node_id)
    return sorted(
        node.assignments,
        key=lambda a: ((a.user.first_name if a.user else "") or "", a.user_id),
    )


def user_ids_for_node(node_id: int) -> list[int]:
    return [
        row.user_id
        for row in WorkflowNodeUser.query.filter_by(node_id=node_id).order_by(WorkflowNodeUser.id).all()
    ]


def is_user_in_node(node_id: int, user_id: int) -> bool:
    return WorkflowNodeUser.query.filter_by(node_id=node_id, user_id=user_id).first() is not None


def add_users_to_node(node_id: int, user_ids) -> list[WorkflowNodeUser]:
    """Add approvers; users already assigned are skipped."""
    node = get_node(node_id)
    if not isinstance(user_ids, list) or not user_ids:
        raise ValidationError("user_ids array is required", details={"user_ids": "required"})
    ids = ensure_users_exist(user_ids)
    existing = set(user_ids_for_node(node_id))
    added = [uid for uid in ids if uid not in existing]
    for uid in added:
        db.session.add(WorkflowNodeUser(node_id=node_id, user_id=uid))
    if added:
        db.session.flush()
        _sync_paused(node, added=added)
    db_commit_or_raise("WorkflowNodeUser", "user_id")
    db.session.expire_all()
    return list_node_users(node_id)


def set_node_users(node_id: int, user_ids) -> list[WorkflowNodeUser]:
    """Replace the approver set of a node (empty list clears it)."""
    node = get_node(node_id)
    if user_ids is None:
        user_ids = []
    if not isinstance(user_ids, list):
        raise ValidationError("user_ids must be an array", details={"user_ids": "invalid"})
    ids = ensure_users_exist(user_ids)
    existing = set(user_ids_for_node(node_id))
    removed = existing - set(ids)
    added = [uid for uid in ids if uid not in existing]

    if removed:
        WorkflowNodeUser.query.filter(
            WorkflowNodeUser.node_id == node_id,
            WorkflowNodeUser.user_id.in_(removed),
        ).delete(synchronize_session=False)
    for uid in added:
        db.session.add(WorkflowNodeUser(node_id=node_id, user_id=uid))
    if added or removed:
        db.session.flush()
        _sync_paused(node, added=added, removed=removed)
    db_commit_or_raise("WorkflowNodeUser", "user_id")
    db.session.expire_all()
    return list_node_users(node_id)


def remove_user_from_node(node_id: int, user_id: int) -> None:
    node = get_node(node_id)
    row = WorkflowNodeUser.query.filter_by(node_id=node_id, user_id=user_id).first()
    if row is None:
        raise NotFoundError(resource="Node user", resource_id=user_id)
    db.session.delete(row)
    db.session.flush()
    _sync_paused(node, removed=[user_id])
    db_commit_or_raise("WorkflowNodeUser", "user_id", user_id)

"""
Workflow Definition Blueprint — workflows, nodes and node approvers.

Endpoints:
    GET    /api/v1/workflows                              – list (?active=true, limit, offset)
    POST   /api/v1/workflows                              – create workflow
    GET    /api/v1/workflows/<wid>                        – workflow with nodes + approvers
    PUT    /api/v1/workflows/<wid>                        – update workflow
    DELETE /api/v1/workflows/<wid>                        – delete workflow

    GET    /api/v1/workflows/<wid>/nodes                  – ordered nodes
    POST   /api/v1/workflows/<wid>/nodes                  – append node
    PUT    /api/v1/workflows/<wid>/nodes/reorder          – bulk reorder
    PUT    /api/v1/workflows/<wid>/nodes/<nid>            – update node
    DELETE /api/v1/workflows/<wid>/nodes/<nid>            – delete node

    GET    /api/v1/nodes/<nid>/users                      – node approvers
    POST   /api/v1/nodes/<nid>/users                      – add approvers
    PUT    /api/v1/nodes/<nid>/users                      – replace approvers
    DELETE /api/v1/nodes/<nid>/users/<uid>                – remove approver

Layer contract:
    - Blueprint: parse input, call workflow_service, return JSON.
    - Writes to workflows / nodes / assignments require the admin role
      when the auth gate is on.
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.jwt_auth import require_role
from app.services import workflow_service
from app.utils.helpers import paginate_query

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOWS
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows", methods=["GET"])
def list_workflows():
    active_only = request.args.get("active") == "true"
    workflows, page = paginate_query(workflow_service.list_workflows(active_only=active_only))
    return jsonify({"items": [w.to_dict() for w in workflows], **page})


@workflow_bp.route("/workflows", methods=["POST"])
@require_role("admin")
def create_workflow():
    """Body: { name, description?, is_active? }"""
    data = request.get_json(silent=True) or {}
    workflow = workflow_service.create_workflow(data, created_by=g.get("current_user_id"))
    return jsonify(workflow.to_dict(include_nodes=True)), 201


@workflow_bp.route("/workflows/<int:wid>", methods=["GET"])
def get_workflow(wid):
    return jsonify(workflow_service.get_workflow(wid).to_dict(include_nodes=True))


@workflow_bp.route("/workflows/<int:wid>", methods=["PUT"])
@require_role("admin")
def update_workflow(wid):
    data = request.get_json(silent=True) or {}
    return jsonify(workflow_service.update_workflow(wid, data).to_dict(include_nodes=True))


@workflow_bp.route("/workflows/<int:wid>", methods=["DELETE"])
@require_role("admin")
def delete_workflow(wid):
    workflow_service.delete_workflow(wid)
    return jsonify({"deleted": True, "message": "Workflow deleted successfully"})


# ═════════════════════════════════════════════════════════════════════════════
# NODES
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows/<int:wid>/nodes", methods=["GET"])
def list_nodes(wid):
    return jsonify([n.to_dict(include_users=True) for n in workflow_service.list_nodes(wid)])


@workflow_bp.route("/workflows/<int:wid>/nodes", methods=["POST"])
@require_role("admin")
def add_node(wid):
    """Body: { name, node_order?, approval_type?, description?, user_ids? }"""
    data = request.get_json(silent=True) or {}
    node = workflow_service.add_node(wid, data)
    return jsonify(node.to_dict(include_users=True)), 201


@workflow_bp.route("/workflows/<int:wid>/nodes/reorder", methods=["PUT"])
@require_role("admin")
def reorder_nodes(wid):
    """Body: { node_orders: [{id, node_order}, ...] }"""
    data = request.get_json(silent=True) or {}
    nodes = workflow_service.reorder_nodes(wid, data.get("node_orders"))
    return jsonify([n.to_dict(include_users=True) for n in nodes])


@workflow_bp.route("/workflows/<int:wid>/nodes/<int:nid>", methods=["PUT"])
@require_role("admin")
def update_node(wid, nid):
    data = request.get_json(silent=True) or {}
    node = workflow_service.update_node(wid, nid, data)
    return jsonify(node.to_dict(include_users=True))


@workflow_bp.route("/workflows/<int:wid>/nodes/<int:nid>", methods=["DELETE"])
@require_role("admin")
def delete_node(wid, nid):
    workflow_service.delete_node(wid, nid)
    return jsonify({"deleted": True, "message": "Node deleted successfully"})


# ═════════════════════════════════════════════════════════════════════════════
# NODE APPROVERS
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/nodes/<int:nid>/users", methods=["GET"])
def list_node_users(nid):
    return jsonify([a.to_dict() for a in workflow_service.list_node_users(nid)])


@workflow_bp.route("/nodes/<int:nid>/users", methods=["POST"])
@require_role("admin")
def add_node_users(nid):
    """Body: { user_ids: [int] } — users already assigned are skipped."""
    data = request.get_json(silent=True) or {}
    rows = workflow_service.add_users_to_node(nid, data.get("user_ids"))
    return jsonify([a.to_dict() for a in rows]), 201


@workflow_bp.route("/nodes/<int:nid>/users", methods=["PUT"])
@require_role("admin")
def set_node_users(nid):
    """Body: { user_ids: [int] } — replaces the approver set."""
    data = request.get_json(silent=True) or {}
    rows = workflow_service.set_node_users(nid, data.get("user_ids"))
    return jsonify([a.to_dict() for a in rows])


@workflow_bp.route("/nodes/<int:nid>/users/<int:uid>", methods=["DELETE"])
@require_role("admin")
def remove_node_user(nid, uid):
    workflow_service.remove_user_from_node(nid, uid)
    return jsonify({"deleted": True, "message": "User removed from node"})

"""
Approval Blueprint — drives tickets and reprint requests through workflows.

Routes (each registered for /tickets and /reprint-requests):
  POST   /<subject>/<sid>/workflow          – attach a workflow (initialize)
  POST   /<subject>/<sid>/approve           – cast APPROVE / REJECT
  GET    /<subject>/<sid>/approvals         – pointer, current node, votes, history
  GET    /<subject>/pending-approval        – PENDING records (?userId, limit, offset)

  GET    /approvals/pending                 – everything awaiting a user's vote
                                              (?userId, subject_type)
"""

from flask import Blueprint, g, jsonify, request

from app.core.exceptions import AuthorizationError, ValidationError
from app.middleware.jwt_auth import auth_enabled
from app.services import workflow_engine
from app.services.subject_adapters import get_adapter
from app.utils.helpers import page_args

approval_bp = Blueprint("approval", __name__, url_prefix="/api/v1")

PENDING_DEFAULT_LIMIT = 20
PENDING_MAX_LIMIT = 100


# ── helpers ──────────────────────────────────────────────────────────────


def _acting_user_id(data):
    """Resolve the voter: body ``user_id``, else the authenticated user.

    With the auth gate on, only admins may vote on someone else's behalf.
    """
    user_id = data.get("user_id") or g.get("current_user_id")
    if user_id is None:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    if (
        auth_enabled()
        and str(user_id) != str(g.get("current_user_id"))
        and g.get("current_user_role") != "admin"
    ):
        raise AuthorizationError("Cannot vote on behalf of another user")
    return user_id


# ═════════════════════════════════════════════════════════════════════════════
# PER-RECORD ROUTES
# ═════════════════════════════════════════════════════════════════════════════


@approval_bp.route("/tickets/<int:sid>/workflow", methods=["POST"], defaults={"subject_type": "ticket"})
@approval_bp.route(
    "/reprint-requests/<int:sid>/workflow", methods=["POST"], defaults={"subject_type": "reprint_request"},
)
def initialize_workflow(sid, subject_type):
    """Body: { workflow_id }"""
    data = request.get_json(silent=True) or {}
    result = workflow_engine.initialize(get_adapter(subject_type), sid, data.get("workflow_id"))
    result["message"] = "Workflow initialized successfully"
    return jsonify(result)


@approval_bp.route("/tickets/<int:sid>/approve", methods=["POST"], defaults={"subject_type": "ticket"})
@approval_bp.route(
    "/reprint-requests/<int:sid>/approve", methods=["POST"], defaults={"subject_type": "reprint_request"},
)
def cast_vote(sid, subject_type):
    """Body: { user_id?, action: APPROVE|REJECT, comments?, node_id? }

    ``node_id`` is optional; when given, the vote is refused if the record
    has already moved past that node.
    """
    data = request.get_json(silent=True) or {}
    adapter = get_adapter(subject_type)
    outcome = workflow_engine.cast_vote(
        adapter,
        sid,
        _acting_user_id(data),
        data.get("action"),
        comments=data.get("comments"),
        node_id=data.get("node_id"),
    )
    return jsonify(outcome.to_dict(adapter))


@approval_bp.route("/tickets/<int:sid>/approvals", methods=["GET"], defaults={"subject_type": "ticket"})
@approval_bp.route(
    "/reprint-requests/<int:sid>/approvals", methods=["GET"], defaults={"subject_type": "reprint_request"},
)
def approval_status(sid, subject_type):
    return jsonify(workflow_engine.approval_status(get_adapter(subject_type), sid))


# ═════════════════════════════════════════════════════════════════════════════
# QUEUES
# ═════════════════════════════════════════════════════════════════════════════


@approval_bp.route("/tickets/pending-approval", methods=["GET"], defaults={"subject_type": "ticket"})
@approval_bp.route(
    "/reprint-requests/pending-approval", methods=["GET"], defaults={"subject_type": "reprint_request"},
)
def pending_records(subject_type):
    """Dashboard list of PENDING records; ``userId`` narrows to that approver."""
    limit, offset = page_args(PENDING_DEFAULT_LIMIT, PENDING_MAX_LIMIT)
    items, page = workflow_engine.list_pending_records(
        get_adapter(subject_type),
        user_id=request.args.get("userId"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": items, **page})


@approval_bp.route("/approvals/pending", methods=["GET"])
def pending_for_user():
    user_id = request.args.get("userId") or g.get("current_user_id")
    if not user_id:
        raise ValidationError("userId is required", details={"userId": "required"})
    items = workflow_engine.pending_for_user(user_id, request.args.get("subject_type"))
    return jsonify({"items": items, "total": len(items)})

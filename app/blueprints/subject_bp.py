"""
Subject Records Blueprint — ticket and reprint request CRUD.

Routes:
  GET    /api/v1/tickets                    – list (?status, approval_status, limit, offset)
  POST   /api/v1/tickets                    – create
  GET    /api/v1/tickets/<id>               – detail
  PUT    /api/v1/tickets/<id>               – update
  DELETE /api/v1/tickets/<id>               – delete (votes cascade)

  GET    /api/v1/reprint-requests           – list (?status, approval_status, ticket_id)
  POST   /api/v1/reprint-requests           – create
  GET    /api/v1/reprint-requests/<id>      – detail
  PUT    /api/v1/reprint-requests/<id>      – update
  DELETE /api/v1/reprint-requests/<id>      – delete (votes cascade)

Approval routes for both record types live in approval_bp.
"""

from flask import Blueprint, g, jsonify, request

from app.services import subject_service
from app.utils.helpers import paginate_query

subject_bp = Blueprint("subject", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# TICKETS
# ═════════════════════════════════════════════════════════════════════════════


@subject_bp.route("/tickets", methods=["GET"])
def list_tickets():
    q = subject_service.list_tickets(
        status=request.args.get("status"),
        approval_status=request.args.get("approval_status"),
    )
    tickets, page = paginate_query(q)
    return jsonify({"items": [t.to_dict() for t in tickets], **page})


@subject_bp.route("/tickets", methods=["POST"])
def create_ticket():
    """Body: { title, description?, priority? }"""
    data = request.get_json(silent=True) or {}
    ticket = subject_service.create_ticket(data, created_by=g.get("current_user_id"))
    return jsonify(ticket.to_dict()), 201


@subject_bp.route("/tickets/<int:tid>", methods=["GET"])
def get_ticket(tid):
    return jsonify(subject_service.get_ticket(tid).to_dict())


@subject_bp.route("/tickets/<int:tid>", methods=["PUT"])
def update_ticket(tid):
    data = request.get_json(silent=True) or {}
    return jsonify(subject_service.update_ticket(tid, data).to_dict())


@subject_bp.route("/tickets/<int:tid>", methods=["DELETE"])
def delete_ticket(tid):
    subject_service.delete_ticket(tid)
    return jsonify({"deleted": True})


# ═════════════════════════════════════════════════════════════════════════════
# REPRINT REQUESTS
# ═════════════════════════════════════════════════════════════════════════════


@subject_bp.route("/reprint-requests", methods=["GET"])
def list_reprint_requests():
    q = subject_service.list_reprint_requests(
        status=request.args.get("status"),
        approval_status=request.args.get("approval_status"),
        ticket_id=request.args.get("ticket_id"),
    )
    items, page = paginate_query(q)
    return jsonify({"items": [r.to_dict() for r in items], **page})


@subject_bp.route("/reprint-requests", methods=["POST"])
def create_reprint_request():
    """Body: { reason, ticket_id?, copies? }"""
    data = request.get_json(silent=True) or {}
    req = subject_service.create_reprint_request(data, created_by=g.get("current_user_id"))
    return jsonify(req.to_dict()), 201


@subject_bp.route("/reprint-requests/<int:rid>", methods=["GET"])
def get_reprint_request(rid):
    return jsonify(subject_service.get_reprint_request(rid).to_dict())


@subject_bp.route("/reprint-requests/<int:rid>", methods=["PUT"])
def update_reprint_request(rid):
    data = request.get_json(silent=True) or {}
    return jsonify(subject_service.update_reprint_request(rid, data).to_dict())


@subject_bp.route("/reprint-requests/<int:rid>", methods=["DELETE"])
def delete_reprint_request(rid):
    subject_service.delete_reprint_request(rid)
    return jsonify({"deleted": True})

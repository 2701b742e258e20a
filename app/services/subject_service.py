"""
Subject record CRUD — tickets and reprint requests.

The workflow pointer columns (workflow_id, current_node_order,
approval_status, approval_run) belong to the workflow engine and are never
written from here; a record is created NOT_REQUIRED and only the engine moves it.
"""

import logging

from app.core.exceptions import PreconditionError, ValidationError
from app.models import db
from app.models.subject import (
    APPROVAL_PENDING,
    REPRINT_STATUSES,
    TICKET_PRIORITIES,
    TICKET_STATUSES,
    ReprintRequest,
    Ticket,
)
from app.utils.helpers import db_commit_or_raise, get_or_404, parse_int

logger = logging.getLogger(__name__)


def _check_choice(field, value, allowed):
    if value not in allowed:
        raise ValidationError(f"{field} must be one of {sorted(allowed)}", details={field: "invalid"})


def _required_text(data, field):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value.strip()


# ═════════════════════════════════════════════════════════════════════════════
# TICKETS
# ═════════════════════════════════════════════════════════════════════════════


def get_ticket(ticket_id: int) -> Ticket:
    return get_or_404(Ticket, ticket_id, "Ticket")


def list_tickets(status=None, approval_status=None):
    q = Ticket.query
    if status:
        q = q.filter_by(status=status)
    if approval_status:
        q = q.filter_by(approval_status=approval_status.upper())
    return q.order_by(Ticket.created_at.desc(), Ticket.id.desc())


def create_ticket(data: dict, created_by=None) -> Ticket:
    title = _required_text(data, "title")
    priority = data.get("priority") or "medium"
    _check_choice("priority", priority, TICKET_PRIORITIES)

    ticket = Ticket(
        title=title,
        description=data.get("description"),
        priority=priority,
        created_by=created_by,
    )
    db.session.add(ticket)
    db_commit_or_raise("Ticket")
    logger.info("Ticket created", extra={"subject_type": "ticket", "subject_id": ticket.id})
    return ticket


def update_ticket(ticket_id: int, data: dict) -> Ticket:
    ticket = get_ticket(ticket_id)
    if data.get("title") is not None:
        ticket.title = _required_text(data, "title")
    if data.get("description") is not None:
        ticket.description = data["description"]
    if data.get("priority") is not None:
        _check_choice("priority", data["priority"], TICKET_PRIORITIES)
        ticket.priority = data["priority"]
    if data.get("status") is not None:
        _check_choice("status", data["status"], TICKET_STATUSES)
        ticket.status = data["status"]
    db_commit_or_raise("Ticket", "id", ticket_id)
    return ticket


def delete_ticket(ticket_id: int) -> None:
    """Delete a ticket; its approval votes go with it."""
    ticket = get_ticket(ticket_id)
    db.session.delete(ticket)
    db_commit_or_raise("Ticket", "id", ticket_id)


# ═════════════════════════════════════════════════════════════════════════════
# REPRINT REQUESTS
# ═════════════════════════════════════════════════════════════════════════════


def get_reprint_request(request_id: int) -> ReprintRequest:
    return get_or_404(ReprintRequest, request_id, "Reprint request")


def list_reprint_requests(status=None, approval_status=None, ticket_id=None):
    q = ReprintRequest.query
    if status:
        q = q.filter_by(status=status)
    if approval_status:
        q = q.filter_by(approval_status=approval_status.upper())
    if ticket_id is not None:
        q = q.filter_by(ticket_id=parse_int(ticket_id, "ticket_id"))
    return q.order_by(ReprintRequest.created_at.desc(), ReprintRequest.id.desc())


def _parse_copies(value):
    copies = parse_int(value, "copies", required=False)
    if copies is None:
        return 1
    if copies < 1:
        raise ValidationError("copies must be at least 1", details={"copies": "invalid"})
    return copies


def create_reprint_request(data: dict, created_by=None) -> ReprintRequest:
    reason = _required_text(data, "reason")
    ticket_id = parse_int(data.get("ticket_id"), "ticket_id", required=False)
    if ticket_id is not None:
        get_ticket(ticket_id)

    req = ReprintRequest(
        ticket_id=ticket_id,
        reason=reason,
        copies=_parse_copies(data.get("copies")),
        created_by=created_by,
    )
    db.session.add(req)
    db_commit_or_raise("Reprint request")
    logger.info(
        "Reprint request created", extra={"subject_type": "reprint_request", "subject_id": req.id},
    )
    return req


def update_reprint_request(request_id: int, data: dict) -> ReprintRequest:
    req = get_reprint_request(request_id)
    if data.get("reason") is not None:
        req.reason = _required_text(data, "reason")
    if data.get("copies") is not None:
        req.copies = _parse_copies(data["copies"])
    if data.get("status") is not None:
        _check_choice("status", data["status"], REPRINT_STATUSES)
        if data["status"] == "printed" and req.approval_status == APPROVAL_PENDING:
            raise PreconditionError("Reprint request is still pending approval")
        req.status = data["status"]
    db_commit_or_raise("Reprint request", "id", request_id)
    return req


def delete_reprint_request(request_id: int) -> None:
    req = get_reprint_request(request_id)
    db.session.delete(req)
    db_commit_or_raise("Reprint request", "id", request_id)

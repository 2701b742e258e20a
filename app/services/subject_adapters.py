"""
Subject record adapters — the engine's only path into a routed record.

The workflow engine is generic over the subject type.  Each adapter exposes
the same small capability set:

    load(subject_id, lock=False)   fetch the record (optionally FOR UPDATE)
    get_pointer(record)            -> WorkflowPointer
    set_pointer(record, pointer)   write the pointer back (no commit)
    serialize(record)              full JSON shape of the record
    paused_at(node)                PENDING records sitting on ``node`` (locked)

Tickets and reprint requests differ only in model, label and response key.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.subject import APPROVAL_PENDING, ReprintRequest, Ticket


@dataclass(frozen=True)
class WorkflowPointer:
    """Where a subject record sits in its workflow run."""

    workflow_id: int | None
    current_node_order: int | None
    approval_status: str
    run: int = 0

    def to_dict(self) -> dict:
        return {
            "workflow_id": self.workflow_id,
            "current_node_order": self.current_node_order,
            "approval_status": self.approval_status,
            "approval_run": self.run,
        }


class SubjectAdapter:
    """Base adapter; subclasses only set the class attributes."""

    model = None
    subject_type = ""
    label = ""
    # Response key for the record (e.g. "ticket", "reprint_request")
    key = ""
    # Response key carrying a terminal approval status
    status_key = ""
    noun = ""

    def load(self, subject_id: int, lock: bool = False):
        stmt = select(self.model).where(self.model.id == subject_id)
        if lock:
            # Row lock serialises concurrent votes on the same record
            stmt = stmt.with_for_update()
        record = db.session.execute(stmt).scalar_one_or_none()
        if record is None:
            raise NotFoundError(resource=self.label, resource_id=subject_id)
        return record

    def get_pointer(self, record) -> WorkflowPointer:
        return WorkflowPointer(
            workflow_id=record.workflow_id,
            current_node_order=record.current_node_order,
            approval_status=record.approval_status,
            run=record.approval_run or 0,
        )

    def set_pointer(self, record, pointer: WorkflowPointer) -> None:
        record.workflow_id = pointer.workflow_id
        record.current_node_order = pointer.current_node_order
        record.approval_status = pointer.approval_status
        record.approval_run = pointer.run

    def serialize(self, record) -> dict:
        return record.to_dict()

    def paused_at(self, node) -> list:
        """PENDING records whose pointer sits on ``node``, row-locked in id order."""
        stmt = (
            select(self.model)
            .where(
                self.model.workflow_id == node.workflow_id,
                self.model.current_node_order == node.node_order,
                self.model.approval_status == APPROVAL_PENDING,
            )
            .order_by(self.model.id)
            .with_for_update()
        )
        return list(db.session.scalars(stmt).all())

    def pending_count(self, workflow_id: int | None = None) -> int:
        """Records of this type currently PENDING, optionally on one workflow."""
        stmt = select(func.count(self.model.id)).where(self.model.approval_status == APPROVAL_PENDING)
        if workflow_id is not None:
            stmt = stmt.where(self.model.workflow_id == workflow_id)
        return db.session.scalar(stmt)


class TicketAdapter(SubjectAdapter):
    model = Ticket
    subject_type = "ticket"
    label = "Ticket"
    key = "ticket"
    status_key = "ticket_status"
    noun = "ticket"


class ReprintRequestAdapter(SubjectAdapter):
    model = ReprintRequest
    subject_type = "reprint_request"
    label = "Reprint request"
    key = "reprint_request"
    status_key = "request_status"
    noun = "request"


ADAPTERS: dict[str, SubjectAdapter] = {
    TicketAdapter.subject_type: TicketAdapter(),
    ReprintRequestAdapter.subject_type: ReprintRequestAdapter(),
}

SUBJECT_TYPES = frozenset(ADAPTERS)


def get_adapter(subject_type: str) -> SubjectAdapter:
    try:
        return ADAPTERS[subject_type]
    except KeyError:
        raise ValidationError(
            f"subject_type must be one of {sorted(SUBJECT_TYPES)}",
            details={"subject_type": "invalid"},
        ) from None

"""Shared utility functions for services and blueprints.

get_or_404:          fetch-by-PK or raise NotFoundError
db_commit_or_raise:  commit with IntegrityError / SQLAlchemyError mapping
parse_int:           lenient int coercion for ids coming from JSON / query strings
paginate_query:      limit/offset pagination from the request query string
"""
import logging

from flask import request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.models import db

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError.

        workflow = get_or_404(Workflow, workflow_id)
    """
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_int(value, field, required=True):
    """Coerce ``value`` to int, raising ValidationError naming ``field``.

    Booleans are rejected even though they are ints in Python.
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"}) from None


def page_args(default_limit=50, max_limit=500):
    """Read ``limit`` / ``offset`` from the query string; returns (limit, offset).

    limit  — max items (default_limit when missing or invalid, clamped to 1..max_limit)
    offset — starting position (default 0)
    """
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def paginate_query(query, default_limit=50, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Returns:
        (items_list, pagination_dict)
    """
    total = query.count()
    limit, offset = page_args(default_limit, max_limit)
    items = query.limit(limit).offset(offset).all()
    return items, {"limit": limit, "offset": offset, "total": total}


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_raise(resource="Record", field="id", value=None):
    """Commit the current SQLAlchemy session or raise a service exception.

    IntegrityError  → ConflictError(resource, field, value)
    SQLAlchemyError → PersistenceError (detail logged, not returned)

    The session is rolled back before raising so the caller never sees a
    half-written transaction.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError(resource, field, value) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise PersistenceError("Database error") from exc

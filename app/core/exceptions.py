"""
Service-wide exception hierarchy.

Services raise these; ``app.utils.errors.register_error_handlers`` maps each
type to one HTTP status so blueprints never build error tuples for domain
failures themselves.

Usage:
    from app.core.exceptions import NotFoundError, PreconditionError

    raise NotFoundError(resource="Workflow", resource_id=42)
    raise PreconditionError("Workflow is not active")
"""


class ServiceError(Exception):
    """Base class for every error raised by the service layer."""

    status_code = 400
    code = "ERR_VALIDATION_INVALID"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(ServiceError):
    """Raised when a workflow, node, subject record or user does not exist.

    Args:
        resource: Human-readable model name (e.g. "Workflow", "Ticket").
        resource_id: The PK that was looked up.
    """

    status_code = 404
    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ValidationError(ServiceError):
    """Raised for missing or malformed input (missing field, bad enum value).

    Args:
        message: Human-readable explanation; names the offending field.
        details: Optional field-level breakdown.
    """

    status_code = 400
    code = "ERR_VALIDATION_INVALID"


class PreconditionError(ServiceError):
    """Raised when well-formed input hits a state that forbids the operation.

    Examples: inactive workflow, workflow with no nodes, first node with no
    approvers, record already APPROVED/REJECTED, vote on a node the record
    has already left.
    """

    status_code = 400
    code = "ERR_PRECONDITION"


class AuthenticationError(ServiceError):
    """Raised when credentials or a bearer token are missing or invalid."""

    status_code = 401
    code = "ERR_UNAUTHORIZED"


class AuthorizationError(ServiceError):
    """Raised when the caller is known but not allowed to act.

    The engine raises it when a voter is not an assigned approver of the
    record's current node.
    """

    status_code = 403
    code = "ERR_FORBIDDEN"


class ConflictError(ServiceError):
    """Raised when a write would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    status_code = 409
    code = "ERR_CONFLICT_DUPLICATE"

    def __init__(self, resource: str, field: str, value=None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PersistenceError(ServiceError):
    """Raised when the database rejects a write for a non-business reason.

    The message is logged server-side; clients only see a generic 500.
    """

    status_code = 500
    code = "ERR_DATABASE"

class AppError(Exception):
    """Base class for all application exceptions.

    ``code`` is a short machine-readable tag (``missing-field``,
    ``not-found:course``, ``conflict:room`` ...) that clients switch on.
    """

    def __init__(self, message: str, status_code: int = 500, code: str = "error", details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised when a request is missing required fields or carries malformed ones."""

    def __init__(self, message: str, *, fields: list[str] | None = None, code: str = "invalid-field"):
        super().__init__(message, status_code=422, code=code, details={"fields": fields or []})
        self.fields = fields or []


class MissingFieldError(ValidationError):
    def __init__(self, fields: list[str]):
        super().__init__(
            f"Missing required field(s): {', '.join(fields)}",
            fields=fields,
            code="missing-field",
        )


class NotFoundError(AppError):
    """Raised when a requested or referenced resource does not exist."""

    def __init__(self, entity: str, resource_id: str | None, message: str | None = None):
        super().__init__(
            message or f"{entity.capitalize()} with id {resource_id} not found",
            status_code=404,
            code=f"not-found:{entity}",
            details={"entity": entity, "id": resource_id},
        )
        self.entity = entity
        self.resource_id = resource_id


class ConflictError(AppError):
    """Raised when a booking would double-book a room or a faculty member."""

    def __init__(self, resource: str, conflicting_id: str, *, day: str | None = None, resource_id: str | None = None):
        label = "Room" if resource == "room" else "Faculty member"
        when = f" on {day}" if day else ""
        super().__init__(
            f"{label} is already booked{when} during this time slot",
            status_code=409,
            code=f"conflict:{resource}",
            details={
                "resource": resource,
                "resourceId": resource_id,
                "conflictingScheduleId": conflicting_id,
            },
        )
        self.resource = resource
        self.conflicting_id = conflicting_id


class AuthorizationError(AppError):
    """Raised when the caller's role or ownership does not permit the operation."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403, code="forbidden")


class DuplicateError(AppError):
    """Raised when a create or rename would repeat a unique catalog value."""

    def __init__(self, entity: str, message: str):
        super().__init__(message, status_code=409, code=f"duplicate:{entity}", details={"entity": entity})
        self.entity = entity

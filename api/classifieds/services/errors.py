class ServiceError(Exception):
    """Base service error."""


class ValidationError(ServiceError):
    """Raised when a required field is missing or malformed."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])


class UnauthorizedError(ServiceError):
    """Raised when the caller is anonymous, lacks the role, or does not own the resource."""


class NotFoundError(ServiceError):
    """Raised when the referenced entity does not exist."""


class ConflictError(ServiceError):
    """Raised when a write collides with an existing name or reference."""


class UpstreamError(ServiceError):
    """Raised when the database or the image host fails."""

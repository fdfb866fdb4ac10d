"""
Custom Exception Hierarchy

Every failure the analysis pipeline reports to a caller is one of these
types. Each carries a machine-readable code, the HTTP status it maps to and
structured details for the error response.
"""
from typing import Any


class SkinAnalysisError(Exception):
    """Base exception for all skin analysis errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class RequestValidationError(SkinAnalysisError):
    """Required request fields are missing."""

    status_code = 400

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(
            message=message,
            code="BAD_REQUEST",
            details={"fields": fields or []},
        )
        self.fields = fields or []


class ConfigurationError(SkinAnalysisError):
    """The service is missing configuration it needs to run an analysis."""

    def __init__(self, message: str = "API configuration error"):
        super().__init__(message=message, code="CONFIGURATION_ERROR")


class RateLimitExceededError(SkinAnalysisError):
    """The doctor has used up the monthly analysis quota."""

    status_code = 429

    def __init__(self, current_count: int, limit: int):
        super().__init__(
            message=(
                f"You have reached the monthly limit of {limit} skin analyses. "
                f"Current usage: {current_count}/{limit}"
            ),
            code="RATE_LIMIT_EXCEEDED",
            details={"current_count": current_count, "limit": limit},
        )
        self.current_count = current_count
        self.limit = limit


class ResourceNotFoundError(SkinAnalysisError):
    """A referenced resource does not exist."""

    status_code = 404

    def __init__(self, message: str, resource: str = "unknown"):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource},
        )
        self.resource = resource


class MissingPhotoError(SkinAnalysisError):
    """The photo session has no frontal photo."""

    status_code = 400

    def __init__(self, message: str = "Frontal photo is required for analysis"):
        super().__init__(message=message, code="MISSING_PHOTO")


class PhotoResolutionError(SkinAnalysisError):
    """A stored photo could not be turned into a signed URL."""

    def __init__(self, message: str = "Failed to access frontal photo", angle: str = "frontal"):
        super().__init__(
            message=message,
            code="PHOTO_RESOLUTION_ERROR",
            details={"angle": angle},
        )
        self.angle = angle


class DiagnosticApiError(SkinAnalysisError):
    """The external diagnostic API failed, returned non-2xx or timed out."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(
            message=message,
            code="DIAGNOSTIC_API_ERROR",
            details={"upstream_status": status} if status is not None else None,
        )
        self.status = status


class PersistenceError(SkinAnalysisError):
    """The store rejected a write."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            details={"operation": operation},
        )
        self.operation = operation

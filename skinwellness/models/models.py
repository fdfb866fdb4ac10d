"""
Pydantic models for API request/response validation.

Request bodies use the camelCase field names existing clients send.
Required identifiers are checked by the analysis service rather than the
schema, so a missing field yields the service's 400 error body.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from skinwellness.models.analysis_models import (
    CamelModel,
    ParameterDetail,
    ParameterScoreConfig,
    PatientAttributes,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AnalyzeRequest(CamelModel):
    """
    Request to analyze a photo session.

    Attributes:
        photo_session_id: Photo session to analyze.
        doctor_id: Requesting doctor.
        clinical_session_id: Optional clinical session to link the result to.
    """
    photo_session_id: str | None = Field(default=None, description="Photo session ID")
    doctor_id: str | None = Field(default=None, description="Doctor ID")
    clinical_session_id: str | None = Field(default=None, description="Clinical session ID")


class AnalyzeResponse(CamelModel):
    """Successful analysis; duration is the SkinXS call time in milliseconds."""
    success: bool = True
    diagnostic_id: str
    duration: int = Field(..., ge=0, description="API call duration in ms")


class NotFoundStatus(BaseModel):
    status: str = "not_found"


class ParameterCatalogEntry(CamelModel):
    """Catalog entry of one parameter as served by the API."""
    key: str
    label: str
    config: ParameterScoreConfig


class ValidationRequest(CamelModel):
    """
    Doctor-validated version of a completed analysis.

    Attributes:
        photo_session_id: Photo session whose analysis is validated.
        doctor_id: Validating doctor.
        validated_details: Edited parameter details per category id.
        validated_attributes: Corrected patient attributes, if reviewed.
        validated_overview_text: Edited overview text.
        priority_face_concerns: Concerns the doctor prioritized for the face.
        priority_additional_concerns: Other prioritized concerns.
        concerns_manually_edited: Whether the doctor edited the concerns.
    """
    photo_session_id: str = Field(..., min_length=1)
    doctor_id: str = Field(..., min_length=1)
    validated_details: dict[str, list[ParameterDetail]] = Field(default_factory=dict)
    validated_attributes: PatientAttributes | None = None
    validated_overview_text: str = ""
    priority_face_concerns: list[str] = Field(default_factory=list)
    priority_additional_concerns: list[str] = Field(default_factory=list)
    concerns_manually_edited: bool = False


class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=_utc_now, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")


class ErrorResponse(BaseModel):
    """
    Standardized error response.

    Attributes:
        error: Error type/code.
        message: Human-readable error message.
        details: Additional error details.
        request_id: Request ID for tracing.
    """
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(default=None, description="Additional details")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utc_now, description="Error timestamp")

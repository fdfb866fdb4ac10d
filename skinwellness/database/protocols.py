"""
Interfaces of the external collaborators the analysis pipeline depends on.

The orchestrator only talks to these protocols; SupabaseStore and
SkinXSClient are the production implementations, tests use in-memory fakes.
"""

from typing import Any, Protocol

from skinwellness.models.analysis_models import (
    AnalysisRecord,
    ParsedAnalysisResult,
    PhotoSession,
    PhotoUrls,
    RateLimitStatus,
)
from skinwellness.models.validation_models import SkinAnalysisValidation, ValidatedDiagnostic


class PhotoSessionStore(Protocol):
    async def get_photo_session(self, photo_session_id: str) -> PhotoSession | None:
        """Return the photo session, or None if it does not exist."""
        ...


class SignedUrlResolver(Protocol):
    async def get_signed_url(self, path_or_url: str) -> str | None:
        """Return a time-limited URL for a stored photo, or None on failure."""
        ...


class RateLimitStore(Protocol):
    async def check_rate_limit(self, doctor_id: str) -> RateLimitStatus:
        ...

    async def increment_usage(self, doctor_id: str) -> int:
        """Atomically increment this month's counter; returns the new count."""
        ...


class AnalysisRecordStore(Protocol):
    async def save_pending_analysis(
        self,
        photo_session_id: str,
        patient_id: str,
        doctor_id: str,
        clinical_session_id: str | None = None,
    ) -> bool:
        ...

    async def save_analysis_result(
        self,
        photo_session_id: str,
        patient_id: str,
        doctor_id: str,
        result: ParsedAnalysisResult,
        clinical_session_id: str | None = None,
    ) -> bool:
        ...

    async def save_failed_analysis(self, photo_session_id: str, error_message: str) -> bool:
        ...

    async def get_analysis_record(self, photo_session_id: str) -> AnalysisRecord | None:
        ...


class ValidationStore(Protocol):
    async def save_validated_diagnostic(self, data: ValidatedDiagnostic) -> SkinAnalysisValidation | None:
        ...

    async def get_validated_diagnostic(self, photo_session_id: str) -> SkinAnalysisValidation | None:
        ...

    async def delete_validated_diagnostic(self, photo_session_id: str) -> bool:
        ...


class AnalysisStore(PhotoSessionStore, SignedUrlResolver, RateLimitStore, AnalysisRecordStore, Protocol):
    """Everything the orchestrator needs from the data store."""


class DiagnosticApiClient(Protocol):
    async def call_diagnostic_api(self, photos: PhotoUrls, api_key: str, language: str = "en") -> dict[str, Any]:
        """
        Submit photos for analysis and return the decoded JSON body.

        Raises:
            DiagnosticApiError: On download failure or a non-2xx response.
        """
        ...

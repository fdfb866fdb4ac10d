"""
Rate-limited skin analysis orchestration.

Runs one analysis per request through a fixed sequence of persisted steps:

    rate-limit check -> usage increment -> photo session lookup ->
    pending record -> photo URL signing -> SkinXS call -> mapping ->
    completed record

Once the pending record exists, every failure is written back as a failed
record before the error is raised, so a polling client never sees an
analysis stuck in pending.
"""

import asyncio
import time

from skinwellness.config.config import Settings, get_settings
from skinwellness.config.logging_config import (
    bind_analysis_context,
    bind_analysis_stage,
    get_logger,
)
from skinwellness.database.protocols import AnalysisStore, DiagnosticApiClient
from skinwellness.exceptions import (
    ConfigurationError,
    DiagnosticApiError,
    MissingPhotoError,
    PersistenceError,
    PhotoResolutionError,
    RateLimitExceededError,
    RequestValidationError,
    ResourceNotFoundError,
    SkinAnalysisError,
)
from skinwellness.models.analysis_models import (
    AnalysisOutcome,
    AnalysisState,
    AnalysisStatus,
    PhotoSession,
    PhotoUrls,
)
from skinwellness.services.response_mapper import parse_api_response, result_from_record

logger = get_logger(__name__)

PENDING_FAILURE_MESSAGE = "Failed to save pending analysis"
FRONTAL_URL_FAILURE_MESSAGE = "Failed to get frontal photo URL"
SAVE_FAILURE_MESSAGE = "Failed to save analysis result"


class SkinAnalysisService:
    """
    Orchestrates SkinXS analyses for photo sessions.

    Holds no per-analysis state: usage counts and records live in the store
    and are read fresh on every call.
    """

    def __init__(
        self,
        store: AnalysisStore,
        diagnostic_client: DiagnosticApiClient,
        settings: Settings | None = None,
    ):
        self.store = store
        self.diagnostic_client = diagnostic_client
        self.settings = settings or get_settings()

    # =========================================================================
    # Analysis
    # =========================================================================

    async def run_analysis(
        self,
        photo_session_id: str,
        doctor_id: str,
        clinical_session_id: str | None = None,
    ) -> AnalysisOutcome:
        """
        Run a full analysis for a photo session.

        Args:
            photo_session_id: Photo session to analyze.
            doctor_id: Requesting doctor; quota is counted against them.
            clinical_session_id: Optional clinical session to link the result to.

        Returns:
            AnalysisOutcome with the diagnostic id and API call duration.

        Raises:
            RequestValidationError: Required identifiers missing.
            ConfigurationError: SkinXS API key not configured.
            RateLimitExceededError: Monthly quota used up (no side effects).
            ResourceNotFoundError: Photo session does not exist.
            MissingPhotoError: Session has no frontal photo.
            PhotoResolutionError: Frontal photo could not be signed.
            DiagnosticApiError: SkinXS failed or timed out.
            PersistenceError: The pending or completed record could not be stored.
        """
        missing = [
            name
            for name, value in (("photoSessionId", photo_session_id), ("doctorId", doctor_id))
            if not value
        ]
        if missing:
            logger.warning("Missing required fields", fields=missing)
            raise RequestValidationError("Missing required fields: photoSessionId, doctorId", fields=missing)

        api_key = self.settings.skinxs_api_key
        if not api_key:
            logger.error("SkinXS API key not configured")
            raise ConfigurationError("API configuration error")

        bind_analysis_context(photo_session_id, doctor_id)

        bind_analysis_stage("rate_limit_check")
        rate_limit = await self.store.check_rate_limit(doctor_id)
        if not rate_limit.within_limit:
            logger.warning(
                "Rate limit exceeded",
                current_count=rate_limit.current_count,
                limit=rate_limit.limit,
            )
            raise RateLimitExceededError(rate_limit.current_count, rate_limit.limit)

        # Counted before any downstream work so retries of slow calls still consume quota
        bind_analysis_stage("usage_increment")
        usage = await self.store.increment_usage(doctor_id)
        logger.debug("Usage incremented", usage=usage)

        bind_analysis_stage("photo_session_lookup")
        photo_session = await self.store.get_photo_session(photo_session_id)
        if photo_session is None:
            logger.warning("Photo session not found")
            raise ResourceNotFoundError("Photo session not found", resource="photo_session")

        if not photo_session.frontal_photo_url:
            logger.warning("Photo session has no frontal photo")
            raise MissingPhotoError()

        # No SkinXS call without a pending record for pollers to follow
        bind_analysis_stage("pending")
        pending_saved = await self.store.save_pending_analysis(
            photo_session_id,
            photo_session.patient_id,
            doctor_id,
            clinical_session_id,
        )
        if not pending_saved:
            logger.error("Pending analysis record was not stored")
            raise PersistenceError(PENDING_FAILURE_MESSAGE, operation="save_pending_analysis")

        bind_analysis_stage("photo_resolution")
        photos = await self._resolve_photos(photo_session)

        bind_analysis_stage("api_call")
        logger.info("Starting analysis", photo_count=1 + bool(photos.left_profile) + bool(photos.right_profile))
        start_time = time.perf_counter()
        raw_response = await self._call_diagnostic_api(photo_session_id, photos, api_key)
        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info("SkinXS API call completed", duration_ms=duration_ms)

        bind_analysis_stage("mapping")
        parsed = parse_api_response(raw_response)

        bind_analysis_stage("persist_result")
        try:
            saved = await self.store.save_analysis_result(
                photo_session_id,
                photo_session.patient_id,
                doctor_id,
                parsed,
                clinical_session_id,
            )
        except PersistenceError as e:
            logger.error("Result save raised", error=e.message)
            saved = False

        if not saved:
            await self._record_failure(photo_session_id, SAVE_FAILURE_MESSAGE)
            raise PersistenceError(SAVE_FAILURE_MESSAGE, operation="save_analysis_result")

        logger.info("Analysis saved", diagnostic_id=parsed.diagnostic_id)
        return AnalysisOutcome(diagnostic_id=parsed.diagnostic_id, duration_ms=duration_ms)

    async def _resolve_photos(self, photo_session: PhotoSession) -> PhotoUrls:
        """Sign all available angles concurrently; only the frontal one is required."""
        frontal_url, left_url, right_url = await asyncio.gather(
            self._sign(photo_session.frontal_photo_url, "frontal"),
            self._sign(photo_session.left_profile_photo_url, "left_profile"),
            self._sign(photo_session.right_profile_photo_url, "right_profile"),
        )

        if not frontal_url:
            await self._record_failure(photo_session.id, FRONTAL_URL_FAILURE_MESSAGE)
            raise PhotoResolutionError("Failed to access frontal photo", angle="frontal")

        return PhotoUrls(frontal=frontal_url, left_profile=left_url, right_profile=right_url)

    async def _sign(self, path_or_url: str | None, angle: str) -> str | None:
        if not path_or_url:
            return None
        try:
            signed = await self.store.get_signed_url(path_or_url)
        except SkinAnalysisError as e:
            logger.warning("Photo signing raised", angle=angle, error=e.message)
            return None
        if not signed:
            logger.warning("Photo could not be signed", angle=angle)
        return signed

    async def _call_diagnostic_api(self, photo_session_id: str, photos: PhotoUrls, api_key: str) -> object:
        timeout = self.settings.skinxs_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.diagnostic_client.call_diagnostic_api(photos, api_key, self.settings.skinxs_language),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            message = f"SkinXS API call timed out after {timeout:g} seconds"
            logger.error("API call timed out", timeout_seconds=timeout)
            await self._record_failure(photo_session_id, message)
            raise DiagnosticApiError(message) from None
        except DiagnosticApiError as e:
            logger.error("API call failed", error=e.message)
            await self._record_failure(photo_session_id, e.message)
            raise
        except Exception as e:
            message = str(e) or "Unknown API error"
            logger.error("API call failed", error=message, error_type=type(e).__name__)
            await self._record_failure(photo_session_id, message)
            raise DiagnosticApiError(message) from e

    async def _record_failure(self, photo_session_id: str, error_message: str) -> None:
        """Write the failed terminal state; a failing write is logged, the original error still raises."""
        try:
            recorded = await self.store.save_failed_analysis(photo_session_id, error_message)
        except PersistenceError as e:
            logger.error("Failed to record analysis failure", error=e.message)
            return
        if not recorded:
            logger.error("Failed to record analysis failure", error_message=error_message)

    # =========================================================================
    # Polling
    # =========================================================================

    async def get_analysis_result(self, photo_session_id: str) -> AnalysisStatus | None:
        """
        Current persisted state of a photo session's analysis.

        Returns:
            AnalysisStatus for pending, failed and completed records; None
            when no analysis exists for the session.
        """
        record = await self.store.get_analysis_record(photo_session_id)
        if record is None:
            return None

        if record.status == AnalysisState.PENDING:
            return AnalysisStatus(status=AnalysisState.PENDING)

        if record.status == AnalysisState.FAILED:
            return AnalysisStatus(
                status=AnalysisState.FAILED,
                error_message=record.error_message or "Analysis failed",
            )

        return AnalysisStatus(
            status=AnalysisState.COMPLETED,
            result=result_from_record(record.columns),
            skin_analysis_id=record.id,
        )

"""
Supabase REST data store.

Talks to the PostgREST and storage endpoints of a Supabase project with the
service role key (server-side, bypasses row level security). Covers photo
sessions, signed photo URLs, monthly usage counters, analysis records and
doctor validations.

All requests share one httpx.AsyncClient owned by the store; call aclose()
on shutdown.
"""

import re
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError

from skinwellness.config.config import Settings, get_settings
from skinwellness.config.logging_config import get_logger
from skinwellness.exceptions import PersistenceError
from skinwellness.models.analysis_models import (
    AnalysisRecord,
    AnalysisState,
    ParsedAnalysisResult,
    PhotoSession,
    RateLimitStatus,
)
from skinwellness.models.validation_models import SkinAnalysisValidation, ValidatedDiagnostic

logger = get_logger(__name__)

PHOTO_SESSIONS_TABLE = "photo_sessions"
ANALYSIS_RESULTS_TABLE = "skin_analysis_results"
USAGE_TABLE = "api_usage_logs"
VALIDATIONS_TABLE = "skin_analysis_validations"
INCREMENT_USAGE_RPC = "increment_api_usage"

# ParsedAnalysisResult fields persisted as skin_analysis_results columns
RESULT_COLUMNS = (
    "diagnostic_id",
    "api_language",
    "raw_response",
    "raw_response_translated",
    "gender",
    "age_group",
    "estimated_age",
    "ethnicity",
    "eye_color",
    "hair_color",
    "phototype",
    "skin_thickness",
    "skin_type",
    "skin_age",
    "skin_health_overview",
    "priority_concerns",
    "score_radiance",
    "score_smoothness",
    "score_redness",
    "score_hydration",
    "score_shine",
    "score_texture",
    "score_blemishes",
    "score_tone",
    "score_eye_contour",
    "score_neck_decollete",
    "parameter_scores",
    "image_quality_score",
    "image_quality_summary",
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def current_month_year() -> str:
    """Usage counter period, YYYY-MM in UTC."""
    return datetime.now(timezone.utc).strftime("%Y-%m")


class SupabaseStore:
    """
    Data store backed by the Supabase REST API.

    Args:
        base_url: Supabase project URL.
        service_key: Service role key.
        bucket: Storage bucket holding session photos.
        signed_url_expiry: Lifetime of signed photo URLs in seconds.
        analysis_limit: Monthly analyses allowed per doctor.
        usage_api_name: Counter key in api_usage_logs.
        timeout: Request timeout in seconds.
        client: Optional pre-built client (tests inject a MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        bucket: str = "patient-photos",
        signed_url_expiry: int = 3600,
        analysis_limit: int = 1000,
        usage_api_name: str = "skinxs_analysis",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.signed_url_expiry = signed_url_expiry
        self.analysis_limit = analysis_limit
        self.usage_api_name = usage_api_name
        self._path_pattern = re.compile(
            rf"/storage/v1/object/(?:sign|public)/{re.escape(bucket)}/(.+)"
        )
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
        }

    @classmethod
    def from_settings(cls, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> "SupabaseStore":
        settings = settings or get_settings()
        return cls(
            settings.supabase_url,
            settings.supabase_service_role_key,
            bucket=settings.photo_bucket,
            signed_url_expiry=settings.signed_url_expiry_seconds,
            analysis_limit=settings.analysis_limit_per_month,
            usage_api_name=settings.usage_api_name,
            timeout=settings.store_timeout_seconds,
            client=client,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # Request helpers
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if json is not None:
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer

        try:
            return await self._client.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error("Store request failed", operation=operation, error=str(e))
            raise PersistenceError(f"Store request failed: {operation}", operation=operation) from e

    def _rest(self, table: str) -> str:
        return f"/rest/v1/{table}"

    @staticmethod
    def _rows(response: httpx.Response) -> list[dict[str, Any]]:
        try:
            data = response.json()
        except ValueError:
            return []
        return [row for row in data if isinstance(row, dict)] if isinstance(data, list) else []

    # =========================================================================
    # Photo sessions and storage
    # =========================================================================

    async def get_photo_session(self, photo_session_id: str) -> PhotoSession | None:
        response = await self._request(
            "GET",
            self._rest(PHOTO_SESSIONS_TABLE),
            "get_photo_session",
            params={
                "id": f"eq.{photo_session_id}",
                "select": "id,patient_id,frontal_photo_url,left_profile_photo_url,right_profile_photo_url",
            },
        )
        if not response.is_success:
            logger.error("Failed to fetch photo session", status=response.status_code)
            return None

        rows = self._rows(response)
        if not rows:
            return None

        try:
            return PhotoSession.model_validate(rows[0])
        except ValidationError as e:
            logger.error("Malformed photo session row", error=str(e))
            return None

    def storage_path(self, path_or_url: str) -> str:
        """Extract the object path from a full storage URL; paths pass through."""
        if not path_or_url.startswith("http"):
            return path_or_url
        match = self._path_pattern.search(httpx.URL(path_or_url).path)
        return match.group(1) if match else path_or_url

    async def get_signed_url(self, path_or_url: str) -> str | None:
        """
        Create a signed URL for a photo in the bucket.

        Returns:
            Absolute signed URL, or None if signing failed.
        """
        path = self.storage_path(path_or_url)
        try:
            response = await self._request(
                "POST",
                f"/storage/v1/object/sign/{self.bucket}/{path}",
                "get_signed_url",
                json={"expiresIn": self.signed_url_expiry},
            )
        except PersistenceError:
            return None

        if not response.is_success:
            logger.error("Failed to get signed URL", status=response.status_code, body=response.text)
            return None

        try:
            signed = response.json().get("signedURL")
        except (ValueError, AttributeError):
            signed = None
        return f"{self.base_url}/storage/v1{signed}" if signed else None

    # =========================================================================
    # Rate limiting
    # =========================================================================

    async def check_rate_limit(self, doctor_id: str) -> RateLimitStatus:
        """
        Read the doctor's usage for the current month.

        A failed lookup fails open: the analysis is allowed and the failure
        is logged.
        """
        try:
            response = await self._request(
                "GET",
                self._rest(USAGE_TABLE),
                "check_rate_limit",
                params={
                    "doctor_id": f"eq.{doctor_id}",
                    "api_name": f"eq.{self.usage_api_name}",
                    "month_year": f"eq.{current_month_year()}",
                    "select": "request_count",
                },
            )
        except PersistenceError:
            response = None

        if response is None or not response.is_success:
            logger.warning("Rate limit lookup failed, allowing request")
            return RateLimitStatus(within_limit=True, current_count=0, limit=self.analysis_limit)

        rows = self._rows(response)
        count = rows[0].get("request_count") if rows else 0
        current_count = count if isinstance(count, int) and count > 0 else 0

        return RateLimitStatus(
            within_limit=current_count < self.analysis_limit,
            current_count=current_count,
            limit=self.analysis_limit,
        )

    async def increment_usage(self, doctor_id: str) -> int:
        """Increment the monthly counter server-side; 0 if the call failed."""
        try:
            response = await self._request(
                "POST",
                f"/rest/v1/rpc/{INCREMENT_USAGE_RPC}",
                "increment_usage",
                json={
                    "p_doctor_id": doctor_id,
                    "p_api_name": self.usage_api_name,
                    "p_month_year": current_month_year(),
                },
            )
        except PersistenceError:
            return 0

        if not response.is_success:
            logger.error("Failed to increment usage", status=response.status_code)
            return 0

        try:
            count = response.json()
        except ValueError:
            return 0
        return count if isinstance(count, int) else 0

    # =========================================================================
    # Analysis records
    # =========================================================================

    async def _delete_analysis(self, photo_session_id: str) -> None:
        await self._request(
            "DELETE",
            self._rest(ANALYSIS_RESULTS_TABLE),
            "delete_analysis",
            params={"photo_session_id": f"eq.{photo_session_id}"},
        )

    async def _insert_analysis(self, payload: dict[str, Any], operation: str) -> bool:
        response = await self._request(
            "POST",
            self._rest(ANALYSIS_RESULTS_TABLE),
            operation,
            json=payload,
            prefer="return=minimal",
        )
        if not response.is_success:
            logger.error("Failed to insert analysis record", operation=operation, status=response.status_code)
            return False
        return True

    async def _update_analysis(self, photo_session_id: str, payload: dict[str, Any], operation: str) -> int | None:
        """PATCH the session's record; returns the number of rows updated, None on error."""
        response = await self._request(
            "PATCH",
            self._rest(ANALYSIS_RESULTS_TABLE),
            operation,
            params={"photo_session_id": f"eq.{photo_session_id}", "select": "id"},
            json=payload,
            prefer="return=representation",
        )
        if not response.is_success:
            logger.error("Failed to update analysis record", operation=operation, status=response.status_code)
            return None
        return len(self._rows(response))

    async def save_pending_analysis(
        self,
        photo_session_id: str,
        patient_id: str,
        doctor_id: str,
        clinical_session_id: str | None = None,
    ) -> bool:
        """Replace any existing record for the session with a fresh pending one."""
        payload: dict[str, Any] = {
            "photo_session_id": photo_session_id,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "raw_response": {},
            "status": AnalysisState.PENDING.value,
        }
        if clinical_session_id:
            payload["clinical_session_id"] = clinical_session_id

        await self._delete_analysis(photo_session_id)
        return await self._insert_analysis(payload, "save_pending_analysis")

    async def save_analysis_result(
        self,
        photo_session_id: str,
        patient_id: str,
        doctor_id: str,
        result: ParsedAnalysisResult,
        clinical_session_id: str | None = None,
    ) -> bool:
        """Mark the session's record completed with the parsed result."""
        now = _utc_now_iso()
        payload: dict[str, Any] = {
            "photo_session_id": photo_session_id,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            **result.model_dump(mode="json", include=set(RESULT_COLUMNS)),
            "status": AnalysisState.COMPLETED.value,
            "error_message": None,
            "completed_at": now,
            "updated_at": now,
        }
        if clinical_session_id:
            payload["clinical_session_id"] = clinical_session_id

        updated = await self._update_analysis(photo_session_id, payload, "save_analysis_result")
        if updated is None:
            return False
        if updated == 0:
            return await self._insert_analysis(payload, "save_analysis_result")
        return True

    async def save_failed_analysis(self, photo_session_id: str, error_message: str) -> bool:
        """Mark the session's record failed with the error message."""
        updated = await self._update_analysis(
            photo_session_id,
            {
                "status": AnalysisState.FAILED.value,
                "error_message": error_message,
                "updated_at": _utc_now_iso(),
            },
            "save_failed_analysis",
        )
        if updated == 0:
            logger.warning("No analysis record to mark failed", photo_session_id=photo_session_id)
        return bool(updated)

    async def get_analysis_record(self, photo_session_id: str) -> AnalysisRecord | None:
        response = await self._request(
            "GET",
            self._rest(ANALYSIS_RESULTS_TABLE),
            "get_analysis_record",
            params={"photo_session_id": f"eq.{photo_session_id}", "select": "*"},
        )
        if not response.is_success:
            logger.error("Failed to get analysis record", status=response.status_code)
            return None

        rows = self._rows(response)
        if not rows:
            return None

        row = rows[0]
        raw_response = row.get("raw_response")
        try:
            return AnalysisRecord(
                id=str(row["id"]) if row.get("id") is not None else None,
                photo_session_id=row.get("photo_session_id") or photo_session_id,
                patient_id=row.get("patient_id"),
                doctor_id=row.get("doctor_id"),
                clinical_session_id=row.get("clinical_session_id"),
                status=row.get("status"),
                raw_response=raw_response if isinstance(raw_response, dict) else None,
                error_message=row.get("error_message"),
                diagnostic_id=row.get("diagnostic_id"),
                columns=row,
                created_at=row.get("created_at"),
                updated_at=row.get("updated_at"),
            )
        except ValidationError as e:
            logger.error("Malformed analysis record", error=str(e))
            raise PersistenceError("Stored analysis record is malformed", operation="get_analysis_record") from e

    # =========================================================================
    # Validations
    # =========================================================================

    @staticmethod
    def _validation_from_row(row: dict[str, Any]) -> SkinAnalysisValidation:
        return SkinAnalysisValidation(
            id=str(row.get("id")),
            skin_analysis_id=str(row.get("skin_analysis_id")),
            photo_session_id=row.get("photo_session_id"),
            doctor_id=row.get("doctor_id"),
            validated_scores=row.get("validated_scores") or [],
            validated_details=row.get("validated_details"),
            validated_attributes=row.get("validated_attributes"),
            validated_overview_text=row.get("validated_overview_text"),
            priority_face_concerns=row.get("priority_face_concerns") or [],
            priority_additional_concerns=row.get("priority_additional_concerns") or [],
            concerns_manually_edited=bool(row.get("concerns_manually_edited")),
            modifications=row.get("modifications"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def save_validated_diagnostic(self, data: ValidatedDiagnostic) -> SkinAnalysisValidation | None:
        """Upsert the validation for a photo session (one per session)."""
        record = data.model_dump(mode="json", by_alias=False)
        # Nested scores and details keep their camelCase shape
        record["validated_scores"] = [s.model_dump(mode="json", by_alias=True) for s in data.validated_scores]
        record["validated_details"] = {
            category_id: [d.model_dump(mode="json", by_alias=True) for d in details]
            for category_id, details in data.validated_details.items()
        }
        if data.validated_attributes is not None:
            record["validated_attributes"] = data.validated_attributes.model_dump(mode="json", by_alias=True)
        record["modifications"] = data.modifications.model_dump(mode="json", by_alias=True)
        record["updated_at"] = _utc_now_iso()

        response = await self._request(
            "POST",
            self._rest(VALIDATIONS_TABLE),
            "save_validated_diagnostic",
            params={"on_conflict": "photo_session_id"},
            json=record,
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not response.is_success:
            logger.error("Failed to save validation", status=response.status_code, body=response.text)
            return None

        rows = self._rows(response)
        if not rows:
            logger.error("No data returned from validation save")
            return None

        try:
            saved = self._validation_from_row(rows[0])
        except ValidationError as e:
            logger.error("Malformed validation row", error=str(e))
            raise PersistenceError("Stored validation is malformed", operation="save_validated_diagnostic") from e
        logger.info("Saved validation", validation_id=saved.id)
        return saved

    async def get_validated_diagnostic(self, photo_session_id: str) -> SkinAnalysisValidation | None:
        response = await self._request(
            "GET",
            self._rest(VALIDATIONS_TABLE),
            "get_validated_diagnostic",
            params={"photo_session_id": f"eq.{photo_session_id}", "select": "*"},
        )
        if not response.is_success:
            logger.error("Failed to fetch validation", status=response.status_code)
            return None

        rows = self._rows(response)
        if not rows:
            return None
        try:
            return self._validation_from_row(rows[0])
        except ValidationError as e:
            logger.error("Malformed validation row", error=str(e))
            raise PersistenceError("Stored validation is malformed", operation="get_validated_diagnostic") from e

    async def delete_validated_diagnostic(self, photo_session_id: str) -> bool:
        response = await self._request(
            "DELETE",
            self._rest(VALIDATIONS_TABLE),
            "delete_validated_diagnostic",
            params={"photo_session_id": f"eq.{photo_session_id}"},
        )
        if not response.is_success:
            logger.error("Failed to delete validation", status=response.status_code)
            return False

        logger.info("Deleted validation", photo_session_id=photo_session_id)
        return True

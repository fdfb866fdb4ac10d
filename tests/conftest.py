"""
Pytest Configuration and Fixtures

Shared fixtures for the skin analysis tests: an in-memory store standing in
for Supabase, a scripted SkinXS client, and a representative SkinXS payload.
"""
import asyncio
import copy
from typing import Any

import pytest

from skinwellness.config.config import Settings
from skinwellness.database.supabase_store import RESULT_COLUMNS
from skinwellness.models.analysis_models import (
    AnalysisRecord,
    AnalysisState,
    ParsedAnalysisResult,
    PhotoSession,
    PhotoUrls,
    RateLimitStatus,
)
from skinwellness.models.validation_models import SkinAnalysisValidation, ValidatedDiagnostic
from skinwellness.services.analysis_orchestrator import SkinAnalysisService
from skinwellness.services.validation_service import ValidationService


SAMPLE_SKINXS_RESPONSE: dict[str, Any] = {
    "diagnostic_id": "diag-123",
    "diagnostic_creation_date": "2024-05-01T10:00:00Z",
    "language": "en",
    "diagnostic": {
        "characteristics": {
            "gender": "Female",
            "age_group": "30-39",
            "estimated_age": 34,
            "ethnicity": "Caucasian",
            "eye_color": "Grey",
            "hair_color": "Brown",
            "phototype": 3,
            "skin_thickness": "Thick",
            "skin_type": "Combination",
            "skin_age": "36",
        },
        "characteristics_translated": {"gender": "Femme"},
        "summary": {
            "skin_health": "Overall healthy skin with mild redness.",
            "skin_concerns_priority": ["redness", "hydration"],
        },
        "scores": {
            "yellow": 8,
            "pink": 2,
            "red": 6.5,
            "blue": 4,
            "orange": 3,
            "grey": 2,
            "green": 1,
            "brown": 5,
            "eye": 3,
            "neck": 2,
        },
        "yellow": {
            "results_summary": "Slightly dull complexion.",
            "complexion": "Slight dullness.",
            "complexion_multichoices": 2,
            "tiredness": "Eyes look rested.",
            "tiredness_multichoices": 1,
            "sun_damage": "Noticeable sun spots.",
            "sun_damage_multichoices": 3,
        },
        "red": {
            "results_summary": "Mild redness on the cheeks.",
            "redness_present": "Noticeable redness around the nose.",
            "redness_present_multichoices": 3,
            "is_rosacea": "Not rosacea.",
            "is_rosacea_multichoices": 2,
            "is_psoriasis": "Not psoriasis.",
            "is_psoriasis_multichoices": 2,
        },
        "eye": {
            "results_summary": "Some fine lines.",
            "fine-lines_wrinkles": "Visible fine lines.",
            "fine-lines_wrinkles_multichoices": 2,
            "dark_circles": "Mild dark circles.",
            "dark_circles_multichoices": 2,
        },
        "image_quality": {
            "clear_image": "Yes",
            "lighting": "Good",
            "focus": "Sharp",
            "true_colors": "Yes",
            "background": "Neutral",
            "preparation": "Clean face",
            "results_summary": "Good quality photos.",
            "quality_score": 8.5,
            "tips_to_improve_quality": "None",
        },
    },
}


class InMemoryStore:
    """Store fake covering photo sessions, signing, quota, records and validations."""

    def __init__(self):
        self.calls: list[str] = []
        self.photo_sessions: dict[str, PhotoSession] = {}
        self.records: dict[str, dict[str, Any]] = {}
        self.validations: dict[str, dict[str, Any]] = {}
        self.usage: dict[str, int] = {}
        self.limit = 1000
        self.unsignable: set[str] = set()
        self.fail_pending_save = False
        self.fail_result_save = False
        self.sign_delay = 0.0
        self.signing_in_flight = 0
        self.max_signing_in_flight = 0
        self._next_id = 1

    def add_photo_session(
        self,
        photo_session_id: str = "ps-1",
        patient_id: str = "pt-1",
        frontal: str | None = "ps-1/frontal.jpg",
        left: str | None = None,
        right: str | None = None,
    ) -> PhotoSession:
        session = PhotoSession(
            id=photo_session_id,
            patient_id=patient_id,
            frontal_photo_url=frontal,
            left_profile_photo_url=left,
            right_profile_photo_url=right,
        )
        self.photo_sessions[photo_session_id] = session
        return session

    async def get_photo_session(self, photo_session_id: str) -> PhotoSession | None:
        self.calls.append("get_photo_session")
        return self.photo_sessions.get(photo_session_id)

    async def get_signed_url(self, path_or_url: str) -> str | None:
        self.calls.append(f"get_signed_url:{path_or_url}")
        self.signing_in_flight += 1
        self.max_signing_in_flight = max(self.max_signing_in_flight, self.signing_in_flight)
        try:
            await asyncio.sleep(self.sign_delay)
        finally:
            self.signing_in_flight -= 1
        if path_or_url in self.unsignable:
            return None
        return f"https://signed.test/{path_or_url}?token=abc"

    async def check_rate_limit(self, doctor_id: str) -> RateLimitStatus:
        self.calls.append("check_rate_limit")
        current = self.usage.get(doctor_id, 0)
        return RateLimitStatus(within_limit=current < self.limit, current_count=current, limit=self.limit)

    async def increment_usage(self, doctor_id: str) -> int:
        self.calls.append("increment_usage")
        self.usage[doctor_id] = self.usage.get(doctor_id, 0) + 1
        return self.usage[doctor_id]

    async def save_pending_analysis(self, photo_session_id, patient_id, doctor_id, clinical_session_id=None) -> bool:
        self.calls.append("save_pending_analysis")
        if self.fail_pending_save:
            return False
        self.records[photo_session_id] = {
            "id": f"rec-{self._next_id}",
            "photo_session_id": photo_session_id,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "clinical_session_id": clinical_session_id,
            "raw_response": {},
            "status": "pending",
        }
        self._next_id += 1
        return True

    async def save_analysis_result(
        self,
        photo_session_id: str,
        patient_id: str,
        doctor_id: str,
        result: ParsedAnalysisResult,
        clinical_session_id: str | None = None,
    ) -> bool:
        self.calls.append("save_analysis_result")
        if self.fail_result_save:
            return False
        record = self.records.setdefault(photo_session_id, {"id": f"rec-{self._next_id}"})
        record.update(result.model_dump(mode="json", include=set(RESULT_COLUMNS)))
        record.update({
            "photo_session_id": photo_session_id,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "status": "completed",
        })
        return True

    async def save_failed_analysis(self, photo_session_id: str, error_message: str) -> bool:
        self.calls.append("save_failed_analysis")
        record = self.records.get(photo_session_id)
        if record is None:
            return False
        record.update({"status": "failed", "error_message": error_message})
        return True

    async def get_analysis_record(self, photo_session_id: str) -> AnalysisRecord | None:
        row = self.records.get(photo_session_id)
        if row is None:
            return None
        return AnalysisRecord(
            id=row.get("id"),
            photo_session_id=photo_session_id,
            patient_id=row.get("patient_id"),
            doctor_id=row.get("doctor_id"),
            status=AnalysisState(row["status"]),
            raw_response=row.get("raw_response"),
            error_message=row.get("error_message"),
            diagnostic_id=row.get("diagnostic_id"),
            columns=copy.deepcopy(row),
        )

    async def save_validated_diagnostic(self, data: ValidatedDiagnostic) -> SkinAnalysisValidation | None:
        row = {"id": f"val-{data.photo_session_id}", **data.model_dump(mode="json")}
        self.validations[data.photo_session_id] = row
        return SkinAnalysisValidation.model_validate(row)

    async def get_validated_diagnostic(self, photo_session_id: str) -> SkinAnalysisValidation | None:
        row = self.validations.get(photo_session_id)
        return SkinAnalysisValidation.model_validate(row) if row else None

    async def delete_validated_diagnostic(self, photo_session_id: str) -> bool:
        self.validations.pop(photo_session_id, None)
        return True


class ScriptedDiagnosticClient:
    """SkinXS client fake returning a canned response or raising a canned error."""

    def __init__(self, response: Any = None):
        self.response = copy.deepcopy(SAMPLE_SKINXS_RESPONSE) if response is None else response
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[tuple[PhotoUrls, str, str]] = []

    async def call_diagnostic_api(self, photos: PhotoUrls, api_key: str, language: str = "en") -> Any:
        self.calls.append((photos, api_key, language))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings() -> Settings:
    """Settings with every external dependency configured."""
    return Settings(
        skinxs_api_key="test-skinxs-key",
        supabase_url="https://store.test",
        supabase_service_role_key="test-service-key",
        skinxs_timeout_seconds=5,
        analysis_limit_per_month=1000,
    )


@pytest.fixture
def sample_response() -> dict[str, Any]:
    """A fresh copy of the sample SkinXS response."""
    return copy.deepcopy(SAMPLE_SKINXS_RESPONSE)


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_photo_session()
    return store


@pytest.fixture
def diagnostic_client() -> ScriptedDiagnosticClient:
    return ScriptedDiagnosticClient()


@pytest.fixture
def analysis_service(store, diagnostic_client, settings) -> SkinAnalysisService:
    return SkinAnalysisService(store, diagnostic_client, settings)


@pytest.fixture
def validation_service(store, analysis_service) -> ValidationService:
    return ValidationService(store, analysis_service)

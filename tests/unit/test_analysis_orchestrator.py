"""
Unit Tests for the Rate-Limited Analysis Orchestrator

Runs the orchestrator against the in-memory store and scripted SkinXS
client from conftest.
"""
import pytest

from skinwellness.config.config import Settings
from skinwellness.exceptions import (
    ConfigurationError,
    DiagnosticApiError,
    MissingPhotoError,
    PersistenceError,
    PhotoResolutionError,
    RateLimitExceededError,
    RequestValidationError,
    ResourceNotFoundError,
)
from skinwellness.models.analysis_models import AnalysisState
from skinwellness.services.analysis_orchestrator import SkinAnalysisService


class TestSuccessfulAnalysis:
    """Happy path and the resulting polling state."""

    async def test_end_to_end(self, analysis_service, store, diagnostic_client):
        outcome = await analysis_service.run_analysis("ps-1", "dr-1")

        assert outcome.diagnostic_id == "diag-123"
        assert outcome.duration_ms >= 0

        status = await analysis_service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.COMPLETED
        assert status.result.category_scores["radiance"] == 8
        assert status.result.category_details["radiance"][0].key == "complexion"
        assert status.skin_analysis_id == "rec-1"

    async def test_step_order(self, analysis_service, store):
        await analysis_service.run_analysis("ps-1", "dr-1")

        steps = [call.split(":")[0] for call in store.calls]
        assert steps == [
            "check_rate_limit",
            "increment_usage",
            "get_photo_session",
            "save_pending_analysis",
            "get_signed_url",
            "save_analysis_result",
        ]

    async def test_usage_incremented_once(self, analysis_service, store):
        await analysis_service.run_analysis("ps-1", "dr-1")
        assert store.usage == {"dr-1": 1}

    async def test_api_receives_signed_frontal_only(self, analysis_service, diagnostic_client, settings):
        await analysis_service.run_analysis("ps-1", "dr-1")

        photos, api_key, language = diagnostic_client.calls[0]
        assert photos.frontal == "https://signed.test/ps-1/frontal.jpg?token=abc"
        assert photos.left_profile is None
        assert photos.right_profile is None
        assert api_key == settings.skinxs_api_key
        assert language == "en"

    async def test_clinical_session_is_linked(self, analysis_service, store):
        await analysis_service.run_analysis("ps-1", "dr-1", "cs-9")
        assert store.records["ps-1"]["clinical_session_id"] == "cs-9"

    async def test_profile_photos_signed_concurrently(self, analysis_service, store, diagnostic_client):
        store.add_photo_session(frontal="f.jpg", left="l.jpg", right="r.jpg")
        store.sign_delay = 0.01

        await analysis_service.run_analysis("ps-1", "dr-1")

        assert store.max_signing_in_flight == 3
        photos = diagnostic_client.calls[0][0]
        assert photos.left_profile.endswith("l.jpg?token=abc")
        assert photos.right_profile.endswith("r.jpg?token=abc")

    async def test_profile_signing_failure_is_tolerated(self, analysis_service, store, diagnostic_client):
        store.add_photo_session(frontal="f.jpg", left="l.jpg", right="r.jpg")
        store.unsignable = {"l.jpg"}

        await analysis_service.run_analysis("ps-1", "dr-1")

        photos = diagnostic_client.calls[0][0]
        assert photos.left_profile is None
        assert photos.right_profile is not None


class TestEarlyRejections:
    """Failures before the pending record exists."""

    @pytest.mark.parametrize("photo_session_id,doctor_id", [("", "dr-1"), ("ps-1", ""), (None, None)])
    async def test_missing_fields(self, analysis_service, store, photo_session_id, doctor_id):
        with pytest.raises(RequestValidationError):
            await analysis_service.run_analysis(photo_session_id, doctor_id)
        assert store.calls == []

    async def test_missing_api_key(self, store, diagnostic_client):
        service = SkinAnalysisService(store, diagnostic_client, Settings(skinxs_api_key=""))
        with pytest.raises(ConfigurationError):
            await service.run_analysis("ps-1", "dr-1")
        assert store.calls == []

    async def test_quota_gate_has_no_side_effects(self, analysis_service, store, diagnostic_client):
        store.usage["dr-1"] = 1000

        with pytest.raises(RateLimitExceededError) as exc_info:
            await analysis_service.run_analysis("ps-1", "dr-1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.current_count == 1000
        assert exc_info.value.limit == 1000
        assert "1000/1000" in exc_info.value.message
        assert store.calls == ["check_rate_limit"]
        assert store.usage["dr-1"] == 1000
        assert store.records == {}
        assert diagnostic_client.calls == []

    async def test_unknown_photo_session(self, analysis_service, store):
        with pytest.raises(ResourceNotFoundError):
            await analysis_service.run_analysis("ps-missing", "dr-1")

        assert store.usage["dr-1"] == 1
        assert store.records == {}
        assert await analysis_service.get_analysis_result("ps-missing") is None

    async def test_missing_frontal_photo(self, analysis_service, store, diagnostic_client):
        store.add_photo_session(frontal=None)

        with pytest.raises(MissingPhotoError) as exc_info:
            await analysis_service.run_analysis("ps-1", "dr-1")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Frontal photo is required for analysis"
        assert store.usage["dr-1"] == 1
        assert "save_pending_analysis" not in store.calls
        assert store.records == {}
        assert await analysis_service.get_analysis_result("ps-1") is None
        assert diagnostic_client.calls == []

    async def test_pending_write_failure_stops_before_api_call(self, analysis_service, store, diagnostic_client):
        store.fail_pending_save = True

        with pytest.raises(PersistenceError) as exc_info:
            await analysis_service.run_analysis("ps-1", "dr-1")

        assert exc_info.value.message == "Failed to save pending analysis"
        assert exc_info.value.status_code == 500
        assert diagnostic_client.calls == []
        assert store.calls[-1] == "save_pending_analysis"


class TestRecordedFailures:
    """Every failure after the pending write ends in a failed record."""

    async def test_frontal_signing_failure(self, analysis_service, store, diagnostic_client):
        store.unsignable = {"ps-1/frontal.jpg"}

        with pytest.raises(PhotoResolutionError):
            await analysis_service.run_analysis("ps-1", "dr-1")

        status = await analysis_service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.FAILED
        assert status.error_message == "Failed to get frontal photo URL"
        assert diagnostic_client.calls == []

    async def test_api_error_message_is_recorded_verbatim(self, analysis_service, diagnostic_client):
        diagnostic_client.error = DiagnosticApiError("SkinXS API error: 502 - Bad Gateway", status=502)

        with pytest.raises(DiagnosticApiError):
            await analysis_service.run_analysis("ps-1", "dr-1")

        status = await analysis_service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.FAILED
        assert status.error_message == "SkinXS API error: 502 - Bad Gateway"

    async def test_unexpected_client_error_is_recorded(self, analysis_service, diagnostic_client):
        diagnostic_client.error = RuntimeError("connection reset")

        with pytest.raises(DiagnosticApiError) as exc_info:
            await analysis_service.run_analysis("ps-1", "dr-1")

        assert exc_info.value.message == "connection reset"
        status = await analysis_service.get_analysis_result("ps-1")
        assert status.error_message == "connection reset"

    async def test_timeout_is_recorded_as_failed(self, store, diagnostic_client):
        settings = Settings(skinxs_api_key="key", skinxs_timeout_seconds=0.05)
        service = SkinAnalysisService(store, diagnostic_client, settings)
        diagnostic_client.delay = 1.0

        with pytest.raises(DiagnosticApiError) as exc_info:
            await service.run_analysis("ps-1", "dr-1")

        assert "timed out" in exc_info.value.message
        status = await service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.FAILED
        assert "timed out" in status.error_message

    async def test_result_save_failure(self, analysis_service, store):
        store.fail_result_save = True

        with pytest.raises(PersistenceError):
            await analysis_service.run_analysis("ps-1", "dr-1")

        status = await analysis_service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.FAILED
        assert status.error_message == "Failed to save analysis result"

    async def test_never_pending_after_failure(self, analysis_service, diagnostic_client):
        diagnostic_client.error = DiagnosticApiError("boom")

        with pytest.raises(DiagnosticApiError):
            await analysis_service.run_analysis("ps-1", "dr-1")

        for _ in range(3):
            status = await analysis_service.get_analysis_result("ps-1")
            assert status.status != AnalysisState.PENDING


class TestPolling:

    async def test_not_found(self, analysis_service):
        assert await analysis_service.get_analysis_result("nothing") is None

    async def test_pending(self, analysis_service, store):
        await store.save_pending_analysis("ps-1", "pt-1", "dr-1")
        status = await analysis_service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.PENDING
        assert status.result is None

    async def test_reanalysis_replaces_record(self, analysis_service, store, diagnostic_client):
        diagnostic_client.error = DiagnosticApiError("first attempt failed")
        with pytest.raises(DiagnosticApiError):
            await analysis_service.run_analysis("ps-1", "dr-1")

        diagnostic_client.error = None
        await analysis_service.run_analysis("ps-1", "dr-1")

        status = await analysis_service.get_analysis_result("ps-1")
        assert status.status == AnalysisState.COMPLETED
        assert store.usage["dr-1"] == 2

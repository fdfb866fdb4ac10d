"""
Unit Tests for the Supabase REST Store

Requests are answered by an httpx.MockTransport; tests assert on the
requests the store sends and how it reads the responses.
"""
import json

import httpx
import pytest

from skinwellness.database.supabase_store import SupabaseStore, current_month_year
from skinwellness.exceptions import PersistenceError
from skinwellness.models.analysis_models import AnalysisState
from skinwellness.services.response_mapper import parse_api_response

BASE_URL = "https://store.test"


def make_store(handler) -> tuple[SupabaseStore, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
    store = SupabaseStore(BASE_URL, "service-key", analysis_limit=3, client=client)
    return store, requests


class TestPhotoSessions:

    async def test_found(self):
        def handler(request):
            return httpx.Response(200, json=[{
                "id": "ps-1",
                "patient_id": "pt-1",
                "frontal_photo_url": "ps-1/frontal.jpg",
                "left_profile_photo_url": None,
                "right_profile_photo_url": None,
            }])

        store, requests = make_store(handler)
        session = await store.get_photo_session("ps-1")

        assert session.patient_id == "pt-1"
        assert requests[0].url.path == "/rest/v1/photo_sessions"
        assert requests[0].url.params["id"] == "eq.ps-1"
        assert requests[0].headers["apikey"] == "service-key"
        assert requests[0].headers["Authorization"] == "Bearer service-key"

    async def test_not_found(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=[]))
        assert await store.get_photo_session("ps-1") is None

    async def test_error_status_is_not_found(self):
        store, _ = make_store(lambda request: httpx.Response(500, text="boom"))
        assert await store.get_photo_session("ps-1") is None

    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        store, _ = make_store(handler)
        with pytest.raises(PersistenceError):
            await store.get_photo_session("ps-1")


class TestSignedUrls:

    async def test_signs_storage_path(self):
        def handler(request):
            return httpx.Response(200, json={"signedURL": "/object/sign/patient-photos/ps-1/f.jpg?token=t"})

        store, requests = make_store(handler)
        url = await store.get_signed_url("ps-1/f.jpg")

        assert url == f"{BASE_URL}/storage/v1/object/sign/patient-photos/ps-1/f.jpg?token=t"
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/storage/v1/object/sign/patient-photos/ps-1/f.jpg"
        assert json.loads(requests[0].content) == {"expiresIn": 3600}

    @pytest.mark.parametrize("full_url", [
        "https://store.test/storage/v1/object/public/patient-photos/ps-1/f.jpg",
        "https://store.test/storage/v1/object/sign/patient-photos/ps-1/f.jpg?token=old",
    ])
    def test_extracts_path_from_full_url(self, full_url):
        store, _ = make_store(lambda request: httpx.Response(200))
        assert store.storage_path(full_url) == "ps-1/f.jpg"

    async def test_failure_returns_none(self):
        store, _ = make_store(lambda request: httpx.Response(400, json={"error": "not found"}))
        assert await store.get_signed_url("ps-1/f.jpg") is None

    async def test_missing_signed_url_returns_none(self):
        store, _ = make_store(lambda request: httpx.Response(200, json={}))
        assert await store.get_signed_url("ps-1/f.jpg") is None


class TestRateLimit:

    async def test_within_limit(self):
        store, requests = make_store(lambda request: httpx.Response(200, json=[{"request_count": 2}]))
        status = await store.check_rate_limit("dr-1")

        assert status.within_limit is True
        assert status.current_count == 2
        assert status.limit == 3
        params = requests[0].url.params
        assert params["doctor_id"] == "eq.dr-1"
        assert params["api_name"] == "eq.skinxs_analysis"
        assert params["month_year"] == f"eq.{current_month_year()}"

    async def test_at_limit(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=[{"request_count": 3}]))
        status = await store.check_rate_limit("dr-1")
        assert status.within_limit is False

    async def test_no_usage_row(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=[]))
        status = await store.check_rate_limit("dr-1")
        assert status.within_limit is True
        assert status.current_count == 0

    async def test_lookup_failure_fails_open(self):
        store, _ = make_store(lambda request: httpx.Response(503))
        status = await store.check_rate_limit("dr-1")
        assert status.within_limit is True

    async def test_increment_uses_rpc(self):
        store, requests = make_store(lambda request: httpx.Response(200, json=4))
        count = await store.increment_usage("dr-1")

        assert count == 4
        assert requests[0].url.path == "/rest/v1/rpc/increment_api_usage"
        assert json.loads(requests[0].content) == {
            "p_doctor_id": "dr-1",
            "p_api_name": "skinxs_analysis",
            "p_month_year": current_month_year(),
        }

    async def test_increment_failure_returns_zero(self):
        store, _ = make_store(lambda request: httpx.Response(500))
        assert await store.increment_usage("dr-1") == 0


class TestAnalysisRecords:

    async def test_pending_replaces_existing_record(self):
        store, requests = make_store(lambda request: httpx.Response(201))
        assert await store.save_pending_analysis("ps-1", "pt-1", "dr-1", "cs-1") is True

        assert [r.method for r in requests] == ["DELETE", "POST"]
        assert requests[0].url.params["photo_session_id"] == "eq.ps-1"
        body = json.loads(requests[1].content)
        assert body["status"] == "pending"
        assert body["raw_response"] == {}
        assert body["clinical_session_id"] == "cs-1"

    async def test_result_updates_in_place(self, sample_response):
        store, requests = make_store(lambda request: httpx.Response(200, json=[{"id": "rec-1"}]))
        parsed = parse_api_response(sample_response)

        assert await store.save_analysis_result("ps-1", "pt-1", "dr-1", parsed) is True

        assert [r.method for r in requests] == ["PATCH"]
        body = json.loads(requests[0].content)
        assert body["status"] == "completed"
        assert body["score_radiance"] == 8
        assert body["diagnostic_id"] == "diag-123"
        assert body["parameter_scores"]["complexion"] == 2
        assert "category_details" not in body
        assert "clinical_session_id" not in body

    async def test_result_inserted_when_no_row(self, sample_response):
        def handler(request):
            if request.method == "PATCH":
                return httpx.Response(200, json=[])
            return httpx.Response(201)

        store, requests = make_store(handler)
        assert await store.save_analysis_result("ps-1", "pt-1", "dr-1", parse_api_response(sample_response)) is True
        assert [r.method for r in requests] == ["PATCH", "POST"]

    async def test_result_save_failure(self, sample_response):
        store, _ = make_store(lambda request: httpx.Response(400))
        assert await store.save_analysis_result("ps-1", "pt-1", "dr-1", parse_api_response(sample_response)) is False

    async def test_failed_status(self):
        store, requests = make_store(lambda request: httpx.Response(200, json=[{"id": "rec-1"}]))
        assert await store.save_failed_analysis("ps-1", "SkinXS API error: 500 - oops") is True

        body = json.loads(requests[0].content)
        assert body["status"] == "failed"
        assert body["error_message"] == "SkinXS API error: 500 - oops"

    async def test_failed_status_without_record_is_not_success(self):
        store, requests = make_store(lambda request: httpx.Response(200, json=[]))
        assert await store.save_failed_analysis("ps-1", "SkinXS API error: 500 - oops") is False
        assert [r.method for r in requests] == ["PATCH"]

    async def test_failed_status_error_response(self):
        store, _ = make_store(lambda request: httpx.Response(400))
        assert await store.save_failed_analysis("ps-1", "oops") is False

    async def test_get_record(self):
        row = {
            "id": "rec-1",
            "photo_session_id": "ps-1",
            "patient_id": "pt-1",
            "doctor_id": "dr-1",
            "status": "failed",
            "error_message": "oops",
            "raw_response": {},
            "created_at": "2024-05-01T10:00:00+00:00",
        }
        store, _ = make_store(lambda request: httpx.Response(200, json=[row]))
        record = await store.get_analysis_record("ps-1")

        assert record.status == AnalysisState.FAILED
        assert record.error_message == "oops"
        assert record.columns["id"] == "rec-1"

    async def test_get_missing_record(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=[]))
        assert await store.get_analysis_record("ps-1") is None

    async def test_malformed_record_raises(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=[{"id": 1, "status": "exploded"}]))
        with pytest.raises(PersistenceError):
            await store.get_analysis_record("ps-1")


class TestValidations:

    async def test_delete(self):
        store, requests = make_store(lambda request: httpx.Response(204))
        assert await store.delete_validated_diagnostic("ps-1") is True
        assert requests[0].method == "DELETE"
        assert requests[0].url.path == "/rest/v1/skin_analysis_validations"

    async def test_get_missing(self):
        store, _ = make_store(lambda request: httpx.Response(200, json=[]))
        assert await store.get_validated_diagnostic("ps-1") is None

"""
HTTP-level tests: status codes and response shapes of the failure,
verification and job routes, with the database and gateway swapped out
through dependency overrides.
"""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from argus.api import deps
from argus.connectors.meta.client import MetaAPIError
from argus.jobs.progress import JobProgressStore
from argus.main import app


class StubCredentials:
    def __init__(self, token="tok_123"):
        self.token = token

    def get_access_token(self, user_id):
        return self.token


HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def job_store():
    return JobProgressStore(retention_minutes=30)


@pytest.fixture
def overrides(tracker, gateway, job_store):
    app.dependency_overrides[deps.get_tracker] = lambda: tracker
    app.dependency_overrides[deps.get_credentials] = lambda: StubCredentials()
    app.dependency_overrides[deps.get_gateway_factory] = lambda: (lambda token: gateway)
    app.dependency_overrides[deps.get_job_store] = lambda: job_store
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    return TestClient(app)


class TestRetryRoute:
    def test_success(self, client, adset_failure, gateway):
        record = adset_failure()

        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["status"] == "recovered"
        assert body["result"]["adset_id"] == "adset_new"
        gateway.close.assert_awaited()

    def test_cascade_warning(self, client, adset_failure, gateway):
        record = adset_failure()
        gateway.create_ad.side_effect = MetaAPIError("Invalid creative", 400, 100)

        body = client.post(f"/failures/{record.id}/retry", headers=HEADERS).json()

        assert body["success"] is True
        assert "ad creation failed" in body["warning"]
        assert body["cascaded_failure_id"] is not None

    def test_executor_error(self, client, adset_failure, gateway):
        record = adset_failure()
        gateway.create_adset.side_effect = MetaAPIError("Service unavailable", 503)

        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)

        assert resp.status_code == 502
        assert resp.json() == {
            "success": False,
            "error": "Service unavailable",
            "retry_count": 1,
            "can_retry_again": True,
            "permanent_failure": False,
        }

    def test_max_retries(self, client, store, adset_failure):
        record = adset_failure()
        store.transition(record.id, ["failed"], retry_count=3)

        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)

        assert resp.status_code == 400
        body = resp.json()
        assert body["permanent_failure"] is True
        assert body["can_retry_again"] is False
        assert body["retry_count"] == 3

    def test_already_retrying(self, client, store, adset_failure):
        record = adset_failure()
        store.transition(record.id, ["failed"], status="retrying")

        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)

        assert resp.status_code == 409
        assert resp.json()["current_status"] == "retrying"

    def test_not_found_for_other_user(self, client, adset_failure):
        record = adset_failure(user_id="someone-else")
        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_missing_credentials(self, client, overrides, adset_failure):
        overrides[deps.get_credentials] = lambda: StubCredentials(token=None)
        record = adset_failure()

        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)

        assert resp.status_code == 401
        assert resp.json()["requires_reauth"] is True

    def test_unknown_record_without_credentials_is_not_found(self, client, overrides, gateway):
        overrides[deps.get_credentials] = lambda: StubCredentials(token=None)

        resp = client.post("/failures/999/retry", headers=HEADERS)

        assert resp.status_code == 404
        gateway.close.assert_not_awaited()

    def test_resolved_record_without_credentials_conflicts(
        self, client, overrides, store, adset_failure
    ):
        overrides[deps.get_credentials] = lambda: StubCredentials(token=None)
        record = adset_failure()
        store.transition(record.id, ["failed"], status="resolved")

        resp = client.post(f"/failures/{record.id}/retry", headers=HEADERS)

        assert resp.status_code == 409
        assert resp.json()["current_status"] == "resolved"

    def test_missing_user_header(self, client):
        assert client.get("/failures").status_code == 401


class TestFailureRoutes:
    def test_list_and_stats(self, client, store, adset_failure, ad_failure):
        recovered = adset_failure()
        adset_failure()
        adset_failure(campaign_id="cmp_2")
        ad_failure()
        store.transition(recovered.id, ["failed"], status="recovered")

        body = client.get("/failures", headers=HEADERS).json()
        assert body["count"] == 4
        assert all("can_retry" in f for f in body["failures"])

        stats = client.get("/failures/stats", headers=HEADERS).json()["stats"]
        assert stats["recovery_rate"] == "25.00"
        assert stats["by_entity_type"]["ad"] == 1

        campaign = client.get("/failures/campaign/cmp_2", headers=HEADERS).json()
        assert len(campaign["failures"]) == 1
        assert campaign["stats"]["total"] == 1

        pending = client.get("/failures/pending", headers=HEADERS).json()
        assert pending["count"] == 3

    def test_empty_stats(self, client):
        stats = client.get("/failures/stats", headers=HEADERS).json()["stats"]
        assert stats["total"] == 0
        assert stats["recovery_rate"] == 0

    def test_resolve_then_delete(self, client, adset_failure):
        record = adset_failure()

        resp = client.post(f"/failures/{record.id}/resolve", headers=HEADERS)
        assert resp.json()["failure"]["status"] == "resolved"
        assert resp.json()["failure"]["can_retry"] is False

        assert client.post(f"/failures/{record.id}/resolve", headers=HEADERS).status_code == 409
        assert client.delete(f"/failures/{record.id}", headers=HEADERS).status_code == 200
        assert client.get(f"/failures/{record.id}", headers=HEADERS).status_code == 404


class TestVerificationRoute:
    def test_verify_reports_mismatch(self, client, gateway, tracker):
        async def fetch(entity_id, fields):
            return {"id": entity_id, "name": "Wrong name", "status": "PAUSED", "objective": "OUTCOME_SALES"}

        gateway.fetch_entity.side_effect = fetch

        resp = client.post(
            "/verification",
            headers=HEADERS,
            json={
                "original_request": {
                    "campaign_name": "Spring Sale",
                    "objective": "OUTCOME_SALES",
                    "status": "PAUSED",
                },
                "created_entities": {"campaign_id": "cmp_1"},
                "auto_correct": False,
                "strategy_type": "strategy_150",
            },
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["passed"] is False
        assert body["total_mismatches"] == 1
        assert body["corrections"] == {"attempted": 0, "succeeded": 0, "failed": 0}
        assert len(body["failure_ids"]) == 1
        assert body["summary"]
        assert tracker.get_failure(body["failure_ids"][0], "user-1").strategy_type == "strategy_150"


class TestJobRoutes:
    @pytest.mark.asyncio
    async def test_duplication_job_lifecycle(self, overrides, gateway, job_store):
        gateway.fetch_entity.return_value = {
            "id": "ad_orig",
            "name": "Promo",
            "creative": {"object_story_id": "page_post_1"},
        }

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post(
                "/jobs/ad-duplication",
                headers=HEADERS,
                json={
                    "campaign_id": "cmp_1",
                    "original_ad_id": "ad_orig",
                    "ad_sets": [{"adset_id": "adset_1", "number_of_copies": 1}],
                },
            )
            assert resp.status_code == 200
            job_id = resp.json()["job_id"]

            for _ in range(200):
                job = (await client.get(f"/jobs/{job_id}", headers=HEADERS)).json()["job"]
                if job["status"] in ("completed", "error"):
                    break
                await asyncio.sleep(0.01)

            assert job["status"] == "completed"
            assert job["total_created"] == 1

            other = await client.get(f"/jobs/{job_id}", headers={"X-User-Id": "user-2"})
            assert other.status_code == 403

            listed = (await client.get("/jobs", headers=HEADERS)).json()["jobs"]
            assert [j["job_id"] for j in listed] == [job_id]

            assert (await client.delete(f"/jobs/{job_id}", headers=HEADERS)).status_code == 200
            assert (await client.get(f"/jobs/{job_id}", headers=HEADERS)).status_code == 404

    def test_invalid_copy_count_rejected(self, client):
        resp = client.post(
            "/jobs/ad-duplication",
            headers=HEADERS,
            json={
                "campaign_id": "cmp_1",
                "original_ad_id": "ad_orig",
                "ad_sets": [{"adset_id": "adset_1", "number_of_copies": 9}],
            },
        )
        assert resp.status_code == 422


class TestSystemRoutes:
    def test_health(self, client):
        assert client.get("/health").json()["service"] == "argus"

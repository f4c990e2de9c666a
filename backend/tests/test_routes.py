"""
API tests for the onboarding and admin routes (FastAPI TestClient).
"""
import pytest
from fastapi.testclient import TestClient

from conftest import REQUIRED_STEPS, VALID_STAGE_DATA
from villa_onboarding.database import get_db
from villa_onboarding.main import app
from villa_onboarding.routes.onboarding import get_session_factory

BASE = "/api/onboarding"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def villa(client):
    response = client.post(f"{BASE}/villa-42/start", json={"user_id": "owner-1"})
    assert response.status_code == 200
    return "villa-42"


def _submit(client, villa_id, step, data=None, completed=True, user="owner-1"):
    return client.put(
        f"{BASE}/{villa_id}/step",
        json={"step": step, "data": VALID_STAGE_DATA[step] if data is None else data, "completed": completed},
        headers={"user-id": user},
    )


# =============================================================================
# Onboarding routes
# =============================================================================


class TestOnboardingRoutes:

    def test_start_returns_progress(self, client):
        response = client.post(f"{BASE}/villa-1/start")
        body = response.json()

        assert response.status_code == 200
        assert body["villa_id"] == "villa-1"
        assert body["status"] == "NOT_STARTED"
        assert len(body["per_stage"]) == 10

    def test_start_twice_is_idempotent(self, client, villa):
        response = client.post(f"{BASE}/{villa}/start")
        assert response.status_code == 200
        assert response.json()["total_fields"] == sum(s["fields_total"] for s in response.json()["per_stage"])

    def test_unknown_villa_404(self, client):
        response = client.get(f"{BASE}/nobody")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_submit_step(self, client, villa):
        response = _submit(client, villa, 1)
        body = response.json()

        assert response.status_code == 200
        assert body["status"] == "COMPLETED"
        assert body["summary"]["current_step"] == 2

    def test_submit_invalid_step_422(self, client, villa):
        response = _submit(client, villa, 2, data={"owner_first_name": "Made"})
        body = response.json()

        assert response.status_code == 422
        assert body["error_code"] == "VALIDATION_FAILED"
        assert "owner_email" in body["errors"]

    def test_submit_step_with_client_timestamp(self, client, villa):
        response = client.put(
            f"{BASE}/{villa}/step",
            json={"step": 1, "data": {"villa_name": "Villa Serenity"}, "modified_at": "2026-03-01T09:30:00+08:00"},
        )
        assert response.status_code == 200

        fields = {f["field_name"]: f for f in client.get(f"{BASE}/{villa}/field-progress/1").json()}
        assert fields["villa_name"]["last_modified_at"].startswith("2026-03-01T01:30:00")

    def test_out_of_range_step_400(self, client, villa):
        response = client.put(f"{BASE}/{villa}/step", json={"step": 11, "data": {}})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_STAGE"

    def test_validate_preview(self, client, villa):
        _submit(client, villa, 3, data={"commission_rate": "abc"}, completed=False)
        response = client.get(f"{BASE}/{villa}/validate/3")
        body = response.json()

        assert response.status_code == 200
        assert body["is_valid"] is False
        assert "commission_rate" in body["errors"]

    def test_autosave_accepted_and_applied(self, client, villa):
        response = client.put(
            f"{BASE}/{villa}/field-progress/1/villa_name",
            json={"value": "Villa Serenity"},
            headers={"user-id": "owner-1"},
        )
        assert response.status_code == 202
        assert response.json()["accepted"] is True

        fields = client.get(f"{BASE}/{villa}/field-progress/1").json()
        by_name = {f["field_name"]: f for f in fields}
        assert by_name["villa_name"]["value"] == "Villa Serenity"
        assert by_name["villa_name"]["status"] == "COMPLETED"

    def test_autosave_unknown_field_400(self, client, villa):
        response = client.put(f"{BASE}/{villa}/field-progress/1/nope", json={"value": "x"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_FIELD"

    def test_skip_and_unskip_field(self, client, villa):
        response = client.post(
            f"{BASE}/{villa}/skip-field",
            json={"step": 1, "field_name": "description", "reason": "later", "category": "LATER"},
        )
        assert response.status_code == 200
        assert response.json()["fields_skipped"] == 1

        progress = client.get(f"{BASE}/{villa}").json()
        assert progress["active_skips"][0]["field_name"] == "description"

        response = client.post(f"{BASE}/{villa}/unskip-field", json={"step": 1, "field_name": "description"})
        assert response.json()["fields_skipped"] == 0

    def test_skip_bad_category_rejected(self, client, villa):
        response = client.post(
            f"{BASE}/{villa}/skip-field",
            json={"step": 1, "field_name": "description", "category": "BORED"},
        )
        assert response.status_code == 422

    def test_skip_and_unskip_step(self, client, villa):
        response = client.post(f"{BASE}/{villa}/skip-step", json={"step": 5, "category": "NOT_APPLICABLE"})
        assert response.json()["steps_skipped"] == 1

        response = client.post(f"{BASE}/{villa}/unskip-step", json={"step": 5})
        assert response.json()["steps_skipped"] == 0

    def test_submit_review(self, client, villa):
        response = client.post(f"{BASE}/{villa}/submit-review")
        assert response.json()["status"] == "PENDING_REVIEW"


# =============================================================================
# Admin routes
# =============================================================================


class TestAdminRoutes:

    def test_dashboard(self, client, villa):
        client.post(f"{BASE}/villa-other/start")
        _submit(client, "villa-other", 1)
        for step in REQUIRED_STEPS:
            assert _submit(client, villa, step).status_code == 200
        client.post(f"{BASE}/villa-other/skip-field", json={"step": 1, "field_name": "description"})

        body = client.get("/api/admin/dashboard").json()

        assert body["total_sessions"] == 2
        assert [s["villa_id"] for s in body["recently_completed"]] == [villa]
        assert [s["villa_id"] for s in body["sessions_in_progress"]] == ["villa-other"]
        assert body["completion_stats"]["total_completed"] == 1
        assert body["common_skipped_fields"][0]["field_name"] == "description"

    def test_audit_trail_and_verify(self, client, villa):
        _submit(client, villa, 1, user="owner-7")

        trail = client.get(f"/api/admin/audit/{villa}").json()
        actions = [e["action"] for e in trail]
        assert actions[0] == "SESSION_INITIALIZED"
        assert "STAGE_SUBMITTED" in actions
        assert any(e["actor"] == "owner-7" for e in trail)

        verify = client.get(f"/api/admin/audit/{villa}/verify").json()
        assert verify["valid"] is True

    def test_sessions_listing(self, client, villa):
        body = client.get("/api/admin/sessions").json()
        assert body["total"] == 1
        assert body["sessions"][0]["villa_id"] == villa

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

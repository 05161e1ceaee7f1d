"""
HTTP-level tests against the FastAPI app
"""
import base64

import pytest
from httpx import ASGITransport, AsyncClient

from examica.core.database import get_async_db
from examica.core.security import create_access_token
from examica.main import app

SESSIONS = "/api/v1/exam-sessions"


@pytest.fixture
async def client(services, session_factory):
    async def override_get_async_db():
        async with session_factory() as session:
            yield session

    original_services = app.state.services
    app.state.services = services
    app.dependency_overrides[get_async_db] = override_get_async_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        app.state.services = original_services


def auth(user_id, role="student"):
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}", "User-Agent": "Mozilla/5.0"}


STUDENT = auth("student-1")
OTHER = auth("student-2")
EXAMINER = auth("examiner-1", "examiner")


async def start_timed_session(client):
    response = await client.post(f"{SESSIONS}/", json={"examId": "exam-timed"}, headers=STUDENT)
    assert response.status_code == 200
    return response.json()


class TestAuthentication:

    async def test_missing_token(self, client, seed):
        response = await client.get("/api/v1/verification/access")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "authentication_required"

    async def test_invalid_token(self, client, seed):
        response = await client.get("/api/v1/verification/access", headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"


class TestSessionRoutes:

    async def test_start_requires_verification(self, client, seed):
        response = await client.post(f"{SESSIONS}/", json={"examId": "exam-timed"}, headers=STUDENT)
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "verification_required"
        assert body["requires_verification"] is True

    async def test_start_returns_camel_case_session(self, client, verified_student):
        body = await start_timed_session(client)
        assert body["examId"] == "exam-timed"
        assert body["status"] == "active"
        assert body["timeRemaining"] == 3600
        assert body["verificationStatus"] == "verified"
        assert body["metadata"]["verification_completed"] is True

    async def test_answer_flow_and_completion(self, client, verified_student):
        session = await start_timed_session(client)
        sid = session["id"]

        response = await client.post(
            f"{SESSIONS}/{sid}/answers",
            json={"questionId": "q-mc", "response": "B", "timestamp": 1000},
            headers=STUDENT,
        )
        assert response.json() == {"questionId": "q-mc", "stored": "cached", "suspicious": False, "riskScore": 0}

        progress = (await client.get(f"{SESSIONS}/{sid}/progress", headers=STUDENT)).json()
        assert progress["answeredQuestions"] == 1
        assert progress["totalQuestions"] == 4

        response = await client.patch(f"{SESSIONS}/{sid}", json={"action": "complete"}, headers=STUDENT)
        assert response.status_code == 200
        body = response.json()
        assert body["session"]["status"] == "completed"
        assert body["result"]["totalScore"] == 1.0
        assert body["result"]["maxPossibleScore"] == 9.0

    async def test_batch_partial_failure_is_207(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]
        response = await client.post(
            f"{SESSIONS}/{sid}/batch",
            json={"responses": [
                {"questionId": "q-tf", "response": True, "timestamp": 1000},
                {"questionId": "q-unknown", "response": "x", "timestamp": 1000},
            ]},
            headers=STUDENT,
        )
        assert response.status_code == 207
        body = response.json()
        assert body["processed"] == 1
        assert body["errors"] == [{"questionId": "q-unknown", "error": "Question not found in exam"}]

    async def test_other_student_cannot_touch_session(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]
        response = await client.patch(f"{SESSIONS}/{sid}", json={"action": "pause"}, headers=OTHER)
        assert response.status_code == 403

    async def test_unknown_action_is_rejected(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]
        response = await client.patch(f"{SESSIONS}/{sid}", json={"action": "rewind"}, headers=STUDENT)
        assert response.status_code == 422

    async def test_ip_rate_limit_on_session_starts(self, client, seed):
        # spread across users so only the per-address window fills up
        users = [STUDENT, OTHER, EXAMINER]
        for index in range(20):
            response = await client.post(f"{SESSIONS}/", json={"examId": "exam-open"}, headers=users[index % 3])
            assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "0"

        response = await client.post(f"{SESSIONS}/", json={"examId": "exam-open"}, headers=OTHER)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "600"
        assert response.json()["error"] == "rate_limited"

    async def test_answer_traffic_is_not_throttled_per_address(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]
        for index in range(25):
            response = await client.post(
                f"{SESSIONS}/{sid}/answers",
                json={
                    "questionId": "q-mc",
                    "response": "B",
                    "timestamp": 1000 + index,
                    "responseTimeMs": 8000,
                    "timeOnQuestionMs": 20000,
                },
                headers=STUDENT,
            )
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers

        progress = await client.get(f"{SESSIONS}/{sid}/progress", headers=STUDENT)
        assert progress.status_code == 200


class TestResultRoutes:

    async def test_result_visibility_and_manual_grading(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]
        await client.post(
            f"{SESSIONS}/{sid}/answers",
            json={"questionId": "q-essay", "response": "Sediment builds up where the river slows.", "timestamp": 1000},
            headers=STUDENT,
        )
        await client.patch(f"{SESSIONS}/{sid}", json={"action": "complete"}, headers=STUDENT)

        result = (await client.get(f"/api/v1/results/{sid}", headers=STUDENT)).json()
        assert result["requiresManualGrading"] is True
        assert result["manualGradingCount"] == 1

        assert (await client.get(f"/api/v1/results/{sid}", headers=OTHER)).status_code == 403

        response = await client.post(f"/api/v1/results/{sid}/manual-grades", json={"grades": {"q-essay": 4}}, headers=STUDENT)
        assert response.status_code == 403

        response = await client.post(
            f"/api/v1/results/{sid}/manual-grades",
            json={"grades": {"q-essay": 4}, "notes": "Good detail"},
            headers=EXAMINER,
        )
        assert response.status_code == 200
        graded = response.json()
        assert graded["totalScore"] == 4.0
        assert graded["manualGradingCount"] == 0
        assert graded["requiresManualGrading"] is False
        assert graded["gradedBy"] == "examiner-1"

    async def test_points_above_maximum_rejected(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]
        await client.post(
            f"{SESSIONS}/{sid}/answers",
            json={"questionId": "q-essay", "response": "Short answer", "timestamp": 1000},
            headers=STUDENT,
        )
        await client.patch(f"{SESSIONS}/{sid}", json={"action": "complete"}, headers=STUDENT)

        response = await client.post(f"/api/v1/results/{sid}/manual-grades", json={"grades": {"q-essay": 6}}, headers=EXAMINER)
        assert response.status_code == 422


class TestVerificationRoutes:

    async def test_verify_with_data_url(self, client, seed, comparator):
        image = "data:image/jpeg;base64," + base64.b64encode(b"jpeg-bytes").decode()
        response = await client.post("/api/v1/verification/verify", json={"image": image}, headers=STUDENT)
        assert response.status_code == 200
        assert response.json()["success"] is True
        comparator.compare.assert_awaited_once_with("faces/student-1.jpg", b"jpeg-bytes")

        access = (await client.get("/api/v1/verification/access", headers=STUDENT)).json()
        assert access["canAccess"] is True

    async def test_rejects_non_base64(self, client, seed):
        response = await client.post("/api/v1/verification/verify", json={"image": "not base64!"}, headers=STUDENT)
        assert response.status_code == 422
        assert response.json()["message"] == "Image must be base64 encoded"

    async def test_flagged_list_is_staff_only(self, client, seed):
        assert (await client.get("/api/v1/verification/flagged", headers=STUDENT)).status_code == 403
        response = await client.get("/api/v1/verification/flagged", headers=EXAMINER)
        assert response.status_code == 200
        assert response.json() == []


class TestSecurityRoutes:

    async def test_events_are_staff_only(self, client, verified_student):
        sid = (await start_timed_session(client))["id"]

        assert (await client.get("/api/v1/security/events", headers=STUDENT)).status_code == 403

        response = await client.get("/api/v1/security/events", params={"type": "session_start"}, headers=EXAMINER)
        events = response.json()
        assert [event["sessionId"] for event in events] == [sid]

        metrics = (await client.get(f"/api/v1/security/sessions/{sid}/metrics", headers=EXAMINER)).json()
        assert metrics["riskLevel"] == "low"

        stats = (await client.get("/api/v1/security/stats", headers=EXAMINER)).json()
        assert stats["events_by_type"]["session_start"] == 1


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["database"] == "healthy"
        assert body["services"]["cache"] == "in-process"
        assert "cpu_percent" in body["system"]
        assert body["local_time"]

    async def test_versioned_health(self, client):
        assert (await client.get("/api/v1/health")).status_code == 200

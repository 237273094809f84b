from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import make_analyzer, make_qr

from authenticity.database import get_record_store
from authenticity.main import app
from authenticity.services.image_analyzer import get_image_analyzer


def fresh_qr(**fields):
    return make_qr(issued_at=datetime.now(timezone.utc) - timedelta(days=1), **fields)


@pytest.fixture
def client(product_store):
    app.dependency_overrides[get_record_store] = lambda: product_store
    app.dependency_overrides[get_image_analyzer] = lambda: make_analyzer()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def evaluation_batch(correct, wrong):
    return {
        "evaluation_data": [{"predicted": "FAKE", "actual": "FAKE"}] * correct
        + [{"predicted": "GENUINE", "actual": "FAKE"}] * wrong
    }


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/ai/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["db_type"] == "sqlite"
        assert body["drift_monitoring_enabled"] is False
        assert body["classifier_backend"] == "none"


class TestVerification:
    def test_genuine_verification_is_recorded(self, client, product_store):
        response = client.post(
            "/api/ai/verify",
            json={"qr_payload": fresh_qr(), "verifier_id": "user-1", "location": "Nairobi"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["verdict"] == "GENUINE"
        assert body["verification_id"]
        history = product_store.get_scan_history("user-1")
        assert len(history) == 1
        assert history[0].location == "Nairobi"

    def test_undecodable_payload_is_invalid_and_recorded(self, client, product_store):
        response = client.post(
            "/api/ai/verify", json={"qr_payload": "garbage", "verifier_id": "user-1"}
        )

        assert response.status_code == 200
        assert response.json()["verdict"] == "INVALID"
        assert product_store.get_scan_history("user-1")[0].verdict == "INVALID"

    def test_verification_with_image(self, client):
        response = client.post(
            "/api/ai/verify",
            json={
                "qr_payload": fresh_qr(),
                "verifier_id": "user-1",
                "image_url": "https://cdn.example.com/p.jpg",
            },
        )

        body = response.json()
        assert body["image"]["overall_score"] == 80
        assert body["confidence"] == 90

    def test_image_only(self, client):
        response = client.post(
            "/api/ai/verify/image",
            json={"image_url": "https://cdn.example.com/p.jpg", "expected_product_id": "PROD12345"},
        )

        assert response.status_code == 200
        assert response.json()["serial_number_match"] is True

    def test_qr_anomalies_on_stored_scans(self, client):
        qr = fresh_qr()
        client.post("/api/ai/verify", json={"qr_payload": qr, "verifier_id": "user-1"})

        response = client.post(
            "/api/ai/verify/qr-anomalies", json={"qr_payload": qr, "product_id": "prod-1"}
        )

        assert response.status_code == 200
        assert response.json()["is_anomalous"] is False


class TestBehavior:
    def test_stored_history(self, client):
        for _ in range(3):
            client.post("/api/ai/verify", json={"qr_payload": fresh_qr(), "verifier_id": "user-7"})

        analysis = client.get("/api/ai/behavior/user-7")
        stats = client.get("/api/ai/behavior/user-7/statistics", params={"user_role": "sme"})

        assert analysis.status_code == 200
        assert analysis.json()["confidence"] == 3
        assert stats.status_code == 200
        assert stats.json()["scan_count"] == 3
        assert stats.json()["user_role"] == "sme"

    def test_statistics_without_history(self, client):
        assert client.get("/api/ai/behavior/nobody/statistics").status_code == 404

    def test_analyze_supplied_history(self, client):
        now = datetime.now(timezone.utc)
        history = [
            {"timestamp": (now - timedelta(minutes=i)).isoformat(), "product_id": "prod-1"}
            for i in range(25)
        ]

        response = client.post(
            "/api/ai/behavior/analyze", json={"user_id": "user-1", "scan_history": history}
        )

        assert response.status_code == 200
        assert response.json()["is_anomalous"] is True


class TestFeedback:
    @pytest.fixture
    def report_id(self, client):
        response = client.post(
            "/api/ai/feedback/reports",
            json={
                "verification_id": "ver-1",
                "user_id": "user-1",
                "product_id": "prod-1",
                "original_verdict": "FAKE",
                "user_reported_verdict": "GENUINE",
                "ai_score": 30,
                "user_confidence": "high",
                "feedback": "Bought at the flagship store",
            },
        )
        assert response.status_code == 201
        return response.json()["report_id"]

    def test_review_lifecycle(self, client, report_id):
        url = f"/api/ai/feedback/reports/{report_id}/review"

        first = client.post(url, json={"review_result": "false_positive"})
        second = client.post(url, json={"review_result": "confirmed"})

        assert first.status_code == 200
        assert first.json()["reviewed"] is True
        assert second.status_code == 409

    def test_review_unknown_report(self, client):
        response = client.post(
            "/api/ai/feedback/reports/report_missing/review", json={"review_result": "confirmed"}
        )
        assert response.status_code == 404

    def test_summary(self, client, report_id):
        body = client.get("/api/ai/feedback/summary").json()

        assert body["total_reports"] == 1
        assert body["false_positives"] == 1
        assert body["by_model"] == {"fraud_scoring": 1}


class TestModels:
    def test_empty_batch_is_rejected(self, client):
        response = client.post("/api/ai/models/fraud_scoring/evaluate", json={"evaluation_data": []})
        assert response.status_code == 422

    def test_unknown_model_type(self, client):
        response = client.post("/api/ai/models/weather/evaluate", json=evaluation_batch(1, 0))
        assert response.status_code == 422

    def test_drift_between_evaluations(self, client, product_store):
        baseline = client.post("/api/ai/models/fraud_scoring/evaluate", json=evaluation_batch(9, 1))
        degraded = client.post("/api/ai/models/fraud_scoring/evaluate", json=evaluation_batch(6, 4))

        assert baseline.status_code == 200
        assert baseline.json()["drift_alert"] is None
        body = degraded.json()
        assert body["drift_alert"]["severity"] == "critical"
        assert body["performance"]["drift_detected"] is True
        assert body["retraining"]["success"] is True
        assert len(product_store.list_drift_alerts("fraud_scoring")) == 1

    def test_stateless_drift(self, client):
        snapshot = {
            "model_id": "m1",
            "model_type": "image_verification",
            "accuracy": 0.9,
            "precision": 0.9,
            "recall": 0.9,
            "f1_score": 0.9,
            "false_positive_rate": 0.05,
            "false_negative_rate": 0.05,
            "sample_size": 100,
            "last_evaluated": "2025-05-01T00:00:00Z",
        }
        current = dict(snapshot, model_id="m2", accuracy=0.72)

        response = client.post("/api/ai/models/drift", json={"current": current, "historical": snapshot})
        no_baseline = client.post("/api/ai/models/drift", json={"current": current})

        assert response.json()["severity"] == "high"
        assert no_baseline.json() is None


class TestSupport:
    def test_fraud_report_escalates(self, client):
        response = client.post(
            "/api/ai/support/chat", json={"message": "I think this product is fake"}
        )

        body = response.json()
        assert body["flagged"] is True
        assert body["incident_type"] == "fraud_report"
        assert body["escalate"] is True
        assert body["escalation_message"]

    def test_plain_question(self, client):
        body = client.post(
            "/api/ai/support/chat", json={"message": "how do I verify a product"}
        ).json()

        assert body["escalate"] is False
        assert body["escalation_message"] is None

from conftest import NOW

from authenticity.services.feedback_monitor import report_false_positive, review_report
from authenticity.schemas.feedback import FeedbackSubmission
from authenticity.tasks.scheduler import run_drift_evaluation, start_scheduler


def reviewed_report(store, original, reported, review_result, ai_score=20.0):
    submission = FeedbackSubmission(
        product_id="prod-1",
        original_verdict=original,
        user_reported_verdict=reported,
        ai_score=ai_score,
        user_confidence="high",
        feedback="checked by support",
    )
    report = review_report(report_false_positive("ver-1", "user-1", submission, now=NOW), review_result)
    store.add_report(report)


class TestDriftEvaluation:
    def test_no_reviewed_feedback_is_skipped(self, store):
        assert run_drift_evaluation(store) == []
        assert store.latest_model_performance("fraud_scoring") is None

    def test_first_run_stores_baseline(self, store):
        for _ in range(4):
            reviewed_report(store, "FAKE", "GENUINE", "confirmed")

        alerts = run_drift_evaluation(store)

        assert alerts == []
        baseline = store.latest_model_performance("fraud_scoring")
        assert baseline.accuracy == 1.0
        assert baseline.sample_size == 4
        assert store.latest_model_performance("image_verification") is None

    def test_second_run_detects_drift(self, store):
        for _ in range(4):
            reviewed_report(store, "FAKE", "GENUINE", "confirmed")
        run_drift_evaluation(store)

        for _ in range(4):
            reviewed_report(store, "FAKE", "GENUINE", "false_positive")
        alerts = run_drift_evaluation(store)

        assert len(alerts) == 1
        assert alerts[0].model_type == "fraud_scoring"
        assert store.list_drift_alerts("fraud_scoring") == alerts


def test_scheduler_disabled_in_tests():
    # DRIFT_MONITORING_ENABLED=false
    assert start_scheduler() is None

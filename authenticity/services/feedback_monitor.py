"""Human feedback ingestion, model evaluation and drift detection.

Evaluation treats FAKE/SUSPICIOUS as the positive (fraud) class.
Drift compares a fresh snapshot against the latest stored baseline;
the first evaluation of a model has no baseline and cannot drift.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

import httpx
import numpy as np
from sklearn.metrics import confusion_matrix

from authenticity.config import get_settings
from authenticity.errors import EvaluationDataError, ReportAlreadyReviewedError
from authenticity.schemas.feedback import (
    DriftAlert,
    DriftMetrics,
    EvaluationSample,
    FalsePositiveReport,
    FeedbackAggregate,
    FeedbackSubmission,
    ModelPerformance,
    RetrainingResult,
)

logger = logging.getLogger(__name__)

FRAUD_VERDICTS = ("FAKE", "SUSPICIOUS")

# Retraining gate: error rate and minimum sample size
RETRAINING_ERROR_RATE = 0.15
RETRAINING_MIN_REPORTS = 20

# Score below which a report is attributed to the fraud scoring model
FRAUD_SCORING_AI_SCORE = 40

# Drift thresholds
DRIFT_SCORE_THRESHOLD = 30
ACCURACY_DROP_THRESHOLD = -0.10
FP_SPIKE_THRESHOLD = 0.15
FN_SPIKE_THRESHOLD = 0.15


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def attribute_model(ai_score: float) -> str:
    return "fraud_scoring" if ai_score < FRAUD_SCORING_AI_SCORE else "image_verification"


def report_false_positive(
    verification_id: str,
    user_id: str,
    report: FeedbackSubmission,
    now: datetime | None = None,
) -> FalsePositiveReport:
    """Build an unreviewed report from a user's verdict correction."""
    return FalsePositiveReport(
        report_id=f"report_{uuid.uuid4().hex}",
        verification_id=verification_id,
        user_id=user_id,
        timestamp=_now(now),
        reviewed=False,
        **report.model_dump(),
    )


def review_report(report: FalsePositiveReport, review_result: str) -> FalsePositiveReport:
    """Close a report. A report can only be reviewed once."""
    if report.reviewed:
        raise ReportAlreadyReviewedError(f"Report {report.report_id} was already reviewed")
    return report.model_copy(update={"reviewed": True, "review_result": review_result})


def aggregate_false_positives(reports: list[FalsePositiveReport]) -> FeedbackAggregate:
    """Summarise reported misclassifications and decide on retraining."""
    total = len(reports)
    false_positives = sum(
        1 for r in reports if r.original_verdict == "FAKE" and r.user_reported_verdict == "GENUINE"
    )
    false_negatives = sum(
        1 for r in reports if r.original_verdict == "GENUINE" and r.user_reported_verdict == "FAKE"
    )

    by_model: dict[str, int] = {}
    for r in reports:
        model_type = attribute_model(r.ai_score)
        by_model[model_type] = by_model.get(model_type, 0) + 1

    accuracy_impact = (false_positives + false_negatives) / total if total else 0.0
    recommended_retraining = (
        accuracy_impact > RETRAINING_ERROR_RATE and total > RETRAINING_MIN_REPORTS
    )

    return FeedbackAggregate(
        total_reports=total,
        false_positives=false_positives,
        false_negatives=false_negatives,
        by_model=by_model,
        accuracy_impact=accuracy_impact,
        recommended_retraining=recommended_retraining,
    )


def build_evaluation_samples(
    reports: list[FalsePositiveReport], model_type: str | None = None
) -> list[EvaluationSample]:
    """Labelled samples from reviewed reports.

    confirmed: the original verdict stood. false_positive / false_negative:
    the reporter was right. resolved and unreviewed reports carry no label.
    """
    samples = []
    for r in reports:
        if not r.reviewed or r.review_result in (None, "resolved"):
            continue
        if model_type and attribute_model(r.ai_score) != model_type:
            continue
        actual = r.original_verdict if r.review_result == "confirmed" else r.user_reported_verdict
        samples.append(
            EvaluationSample(predicted=r.original_verdict, actual=actual, confidence=r.ai_score)
        )
    return samples


def _ratio(numerator: int, denominator: int) -> float:
    return float(numerator / denominator) if denominator else 0.0


def evaluate_model_performance(
    model_type: str,
    evaluation_data: list[EvaluationSample],
    now: datetime | None = None,
) -> ModelPerformance:
    """Confusion-matrix metrics for one labelled batch.

    Raises:
        EvaluationDataError: if the batch is empty.
    """
    if not evaluation_data:
        raise EvaluationDataError("No evaluation data provided")

    now = _now(now)
    predicted = np.array([s.predicted in FRAUD_VERDICTS for s in evaluation_data])
    actual = np.array([s.actual in FRAUD_VERDICTS for s in evaluation_data])
    tn, fp, fn, tp = (int(v) for v in confusion_matrix(actual, predicted, labels=[False, True]).ravel())
    total = len(evaluation_data)

    precision = _ratio(tp, tp + fp)
    recall = _ratio(tp, tp + fn)
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    performance = ModelPerformance(
        model_id=f"model_{model_type}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}",
        model_type=model_type,
        accuracy=_ratio(tp + tn, total),
        precision=precision,
        recall=recall,
        f1_score=f1,
        false_positive_rate=_ratio(fp, fp + tn),
        false_negative_rate=_ratio(fn, fn + tp),
        sample_size=total,
        last_evaluated=now,
    )
    logger.info(
        "Evaluated %s on %d samples: accuracy=%.3f precision=%.3f recall=%.3f",
        model_type, total, performance.accuracy, performance.precision, performance.recall,
    )
    return performance


def compute_drift_score(current: ModelPerformance, historical: ModelPerformance) -> float:
    """Weighted absolute metric change, scaled to 0-100."""
    raw = (
        abs(current.accuracy - historical.accuracy) * 2
        + abs(current.false_positive_rate - historical.false_positive_rate) * 1.5
        + abs(current.false_negative_rate - historical.false_negative_rate) * 1.5
    )
    return min(100.0, raw * 10)


def classify_drift_severity(drift_score: float, accuracy_delta: float) -> str:
    if drift_score > 70 or accuracy_delta < -0.20:
        return "critical"
    elif drift_score > 50 or accuracy_delta < -0.15:
        return "high"
    elif drift_score > 35 or accuracy_delta < -0.10:
        return "medium"
    return "low"


def _recommended_action(accuracy_delta: float, fp_delta: float, fn_delta: float, drift_score: float) -> str:
    # Pick the degradation with the largest weighted contribution
    candidates = []
    if accuracy_delta < ACCURACY_DROP_THRESHOLD:
        candidates.append((abs(accuracy_delta) * 2, "accuracy"))
    if fp_delta > FP_SPIKE_THRESHOLD:
        candidates.append((fp_delta * 1.5, "false_positive"))
    if fn_delta > FN_SPIKE_THRESHOLD:
        candidates.append((fn_delta * 1.5, "false_negative"))

    if not candidates:
        return (
            f"Model metrics shifted (drift score {drift_score:.0f}). "
            "Review recent evaluation data before retraining."
        )

    _, dominant = max(candidates)
    if dominant == "false_negative":
        return (
            f"False negative rate increased by {fn_delta * 100:.1f}%. "
            "Model missing more fraud cases. Retrain urgently."
        )
    if dominant == "false_positive":
        return (
            f"False positive rate increased by {fp_delta * 100:.1f}%. "
            "Review and retrain model."
        )
    return f"Model accuracy dropped by {abs(accuracy_delta) * 100:.1f}%. Retrain with recent data."


def detect_model_drift(
    current: ModelPerformance,
    historical: ModelPerformance | None = None,
    now: datetime | None = None,
) -> DriftAlert | None:
    """Compare a snapshot with its baseline. None when no alert applies."""
    if historical is None:
        logger.info("No baseline for %s, skipping drift check", current.model_id)
        return None

    accuracy_delta = current.accuracy - historical.accuracy
    fp_delta = current.false_positive_rate - historical.false_positive_rate
    fn_delta = current.false_negative_rate - historical.false_negative_rate
    drift_score = compute_drift_score(current, historical)

    significant = (
        drift_score > DRIFT_SCORE_THRESHOLD
        or accuracy_delta < ACCURACY_DROP_THRESHOLD
        or fp_delta > FP_SPIKE_THRESHOLD
    )
    if not significant:
        return None

    severity = classify_drift_severity(drift_score, accuracy_delta)
    now = _now(now)
    alert = DriftAlert(
        alert_id=f"drift_{int(now.timestamp() * 1000)}_{current.model_id}",
        model_id=current.model_id,
        model_type=current.model_type,
        drift_score=int(round(drift_score)),
        severity=severity,
        description=(
            f"Model drift detected in {current.model_type}. Performance degradation observed."
        ),
        metrics=DriftMetrics(
            previous_accuracy=historical.accuracy,
            current_accuracy=current.accuracy,
            accuracy_delta=accuracy_delta,
            false_positive_delta=fp_delta,
        ),
        timestamp=now,
        recommended_action=_recommended_action(accuracy_delta, fp_delta, fn_delta, drift_score),
    )
    logger.warning(
        "Drift alert %s: model=%s severity=%s score=%d",
        alert.alert_id, current.model_id, severity, alert.drift_score,
    )
    return alert


def apply_drift(performance: ModelPerformance, alert: DriftAlert | None) -> ModelPerformance:
    if alert is None:
        return performance
    return performance.model_copy(update={"drift_detected": True, "drift_score": alert.drift_score})


class WebhookRetrainer:
    """Posts retraining requests to the training pipeline."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    def __call__(self, model_id: str, alert: DriftAlert) -> None:
        response = httpx.post(
            self.url,
            json={"model_id": model_id, "alert": alert.model_dump(mode="json")},
            timeout=self.timeout,
        )
        response.raise_for_status()


def default_retrainer() -> Callable[[str, DriftAlert], None] | None:
    url = get_settings().retraining_webhook_url
    return WebhookRetrainer(url) if url else None


def trigger_model_retraining(
    model_id: str,
    alert: DriftAlert,
    retrainer: Callable[[str, DriftAlert], None] | None = None,
) -> RetrainingResult:
    """Best-effort retraining request; failures are reported, not raised."""
    try:
        logger.info("Triggering retraining for model %s due to drift alert %s", model_id, alert.alert_id)
        if retrainer is not None:
            retrainer(model_id, alert)
        return RetrainingResult(
            success=True,
            message=f"Model retraining triggered for {model_id}. Alert: {alert.description}",
        )
    except Exception as e:
        logger.error("Failed to trigger model retraining for %s: %s", model_id, e, exc_info=True)
        return RetrainingResult(success=False, message=str(e) or type(e).__name__)

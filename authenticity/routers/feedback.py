"""Feedback and model monitoring endpoints: reports, reviews, evaluation, drift."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from authenticity.database import get_record_store
from authenticity.errors import EvaluationDataError, ReportAlreadyReviewedError
from authenticity.schemas.feedback import (
    DriftAlert,
    DriftRequest,
    EvaluationRequest,
    EvaluationResponse,
    FalsePositiveReport,
    FalsePositiveReportRequest,
    FeedbackAggregate,
    FeedbackSubmission,
    ModelType,
    ReviewRequest,
)
from authenticity.services.feedback_monitor import (
    aggregate_false_positives,
    apply_drift,
    default_retrainer,
    detect_model_drift,
    evaluate_model_performance,
    report_false_positive,
    trigger_model_retraining,
)
from authenticity.services.record_store import SqlRecordStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/feedback/reports", response_model=FalsePositiveReport, status_code=201)
async def create_report(
    request: FalsePositiveReportRequest,
    store: SqlRecordStore = Depends(get_record_store),
):
    """Record a user's disagreement with a verdict."""
    submission = FeedbackSubmission(**request.model_dump(exclude={"verification_id", "user_id"}))
    report = report_false_positive(request.verification_id, request.user_id, submission)
    store.add_report(report)
    logger.info(
        "False-positive report %s: verification=%s %s -> %s",
        report.report_id, report.verification_id, report.original_verdict, report.user_reported_verdict,
    )
    return report


@router.post("/feedback/reports/{report_id}/review", response_model=FalsePositiveReport)
async def review_report(
    report_id: str,
    request: ReviewRequest,
    store: SqlRecordStore = Depends(get_record_store),
):
    try:
        report = store.close_report(report_id, request.review_result)
    except ReportAlreadyReviewedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report not found: {report_id}")
    return report


@router.get("/feedback/summary", response_model=FeedbackAggregate)
async def get_feedback_summary(store: SqlRecordStore = Depends(get_record_store)):
    return aggregate_false_positives(store.list_reports())


@router.post("/models/{model_type}/evaluate", response_model=EvaluationResponse)
async def evaluate_model(
    model_type: ModelType,
    request: EvaluationRequest,
    store: SqlRecordStore = Depends(get_record_store),
):
    """Evaluate a labelled batch, compare with the last snapshot and store both."""
    try:
        performance = evaluate_model_performance(model_type, request.evaluation_data)
    except EvaluationDataError as e:
        raise HTTPException(status_code=422, detail=str(e))

    baseline = store.latest_model_performance(model_type)
    alert = detect_model_drift(performance, baseline)
    performance = apply_drift(performance, alert)
    store.add_model_performance(performance)

    retraining = None
    if alert is not None:
        store.add_drift_alert(alert)
        retraining = trigger_model_retraining(performance.model_id, alert, default_retrainer())

    return EvaluationResponse(performance=performance, drift_alert=alert, retraining=retraining)


@router.post("/models/drift", response_model=DriftAlert | None)
async def compare_models(request: DriftRequest):
    """Stateless drift check between two snapshots."""
    return detect_model_drift(request.current, request.historical)

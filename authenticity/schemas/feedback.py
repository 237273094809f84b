from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from authenticity.schemas.common import UtcDatetime
from authenticity.schemas.verification import Verdict

ModelType = Literal["image_verification", "qr_anomaly", "fraud_scoring", "behavior_analysis"]
ReviewResult = Literal["confirmed", "false_positive", "false_negative", "resolved"]
Severity = Literal["low", "medium", "high", "critical"]


class FeedbackSubmission(BaseModel):
    """Reporter-supplied part of a false-positive report."""

    product_id: str
    original_verdict: Verdict
    user_reported_verdict: Verdict
    ai_score: float = Field(ge=0.0, le=100.0)
    user_confidence: Literal["high", "medium", "low"]
    feedback: str
    evidence_url: str | None = None


class FalsePositiveReportRequest(FeedbackSubmission):
    verification_id: str
    user_id: str


class FalsePositiveReport(FeedbackSubmission):
    model_config = ConfigDict(from_attributes=True)

    report_id: str
    verification_id: str
    user_id: str
    timestamp: UtcDatetime
    reviewed: bool = False
    review_result: ReviewResult | None = None


class ReviewRequest(BaseModel):
    review_result: ReviewResult


class FeedbackAggregate(BaseModel):
    total_reports: int
    false_positives: int
    false_negatives: int
    by_model: dict[str, int]
    accuracy_impact: float = Field(ge=0.0, le=1.0)
    recommended_retraining: bool


class EvaluationSample(BaseModel):
    predicted: Verdict
    actual: Verdict
    confidence: float = 0.0


class ModelPerformance(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    model_id: str
    model_type: ModelType
    accuracy: float = Field(ge=0.0, le=1.0)
    precision: float = Field(ge=0.0, le=1.0)
    recall: float = Field(ge=0.0, le=1.0)
    f1_score: float = Field(ge=0.0, le=1.0)
    false_positive_rate: float = Field(ge=0.0, le=1.0)
    false_negative_rate: float = Field(ge=0.0, le=1.0)
    sample_size: int
    last_evaluated: UtcDatetime
    drift_detected: bool = False
    drift_score: int = Field(default=0, ge=0, le=100)


class DriftMetrics(BaseModel):
    previous_accuracy: float
    current_accuracy: float
    accuracy_delta: float
    false_positive_delta: float


class DriftAlert(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True, protected_namespaces=())

    alert_id: str
    model_id: str
    model_type: str
    drift_score: int = Field(ge=0, le=100)
    severity: Severity
    description: str
    metrics: DriftMetrics
    timestamp: UtcDatetime
    recommended_action: str


class RetrainingResult(BaseModel):
    success: bool
    message: str


class EvaluationRequest(BaseModel):
    evaluation_data: list[EvaluationSample]


class EvaluationResponse(BaseModel):
    performance: ModelPerformance
    drift_alert: DriftAlert | None = None
    retraining: RetrainingResult | None = None


class DriftRequest(BaseModel):
    current: ModelPerformance
    historical: ModelPerformance | None = None

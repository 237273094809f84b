from typing import Literal

from pydantic import BaseModel, Field

from authenticity.schemas.common import UtcDatetime
from authenticity.schemas.verification import Verdict

RiskLevel = Literal["low", "medium", "high", "critical"]


class ScanEvent(BaseModel):
    """Historical verification event from a user's scan log."""

    timestamp: UtcDatetime
    product_id: str
    location: str | None = None
    verdict: Verdict | None = None
    ai_score: float | None = None


class BehaviorAnomalyResult(BaseModel):
    is_anomalous: bool
    anomaly_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    anomalies: list[str]
    confidence: float = Field(ge=0.0, le=100.0)
    recommendations: list[str]


class UserScanStatistics(BaseModel):
    user_id: str
    user_role: str = ""
    org_id: str = ""
    scan_count: int
    scan_frequency: int  # scans in the last hour
    scans_last_day: int
    scans_last_week: int
    unique_products_scanned: int
    suspicious_scans: int
    verification_failures: int
    average_scan_interval: float  # seconds
    peak_scan_hour: int  # 0-23, UTC
    location_variation: int
    time_of_day_spread: int
    abnormal_patterns: list[str]


class BehaviorAnalysisRequest(BaseModel):
    user_id: str
    scan_history: list[ScanEvent]
    user_role: str | None = None
    org_id: str | None = None

"""User scanning behavior analysis: bot-like and fraudulent scan patterns.

Features are computed over the user's scan log (pandas), then a fixed set
of independent rules add to a cumulative anomaly score.
"""

import logging
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd

from authenticity.schemas.behavior import (
    BehaviorAnomalyResult,
    ScanEvent,
    UserScanStatistics,
)

logger = logging.getLogger(__name__)

SUSPICIOUS_VERDICTS = ("FAKE", "SUSPICIOUS")
SUSPICIOUS_AI_SCORE = 50
REGULAR_INTERVAL_SECONDS = 5.0


def _scan_frame(scan_history: list[ScanEvent]) -> pd.DataFrame:
    """Scan log as a DataFrame sorted by timestamp (ascending)."""
    df = pd.DataFrame(
        [
            {
                "timestamp": s.timestamp,
                "product_id": s.product_id,
                "location": s.location or None,
                "verdict": s.verdict,
                "ai_score": s.ai_score,
            }
            for s in scan_history
        ]
    )
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df["ai_score"] = pd.to_numeric(df["ai_score"], errors="coerce")
    return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


def compute_scan_features(scan_history: list[ScanEvent], now: datetime | None = None) -> dict:
    """Compute behaviour features over a non-empty scan history."""
    now = pd.Timestamp(now or datetime.now(timezone.utc))
    if now.tzinfo is None:
        now = now.tz_localize("UTC")
    df = _scan_frame(scan_history)
    n = len(df)

    ts = df["timestamp"]
    scans_last_hour = int((ts > now - timedelta(hours=1)).sum())
    scans_last_day = int((ts > now - timedelta(days=1)).sum())
    scans_last_week = int((ts > now - timedelta(days=7)).sum())

    suspicious = df["verdict"].isin(SUSPICIOUS_VERDICTS) | (df["ai_score"] < SUSPICIOUS_AI_SCORE)
    failures = df["verdict"] == "INVALID"

    # Mean inter-scan interval in seconds (0 for a single scan)
    intervals = ts.diff().dt.total_seconds().dropna()
    average_interval = float(intervals.mean()) if len(intervals) else 0.0

    # Hour-of-day histogram (UTC), first-seen order for ties
    hour_counts = df.groupby(ts.dt.hour, sort=False).size()
    peak_hour = int(hour_counts.idxmax()) if len(hour_counts) else 12

    span_seconds = (ts.iloc[-1] - ts.iloc[0]).total_seconds() if n > 1 else 0.0

    return {
        "scan_count": n,
        "scans_last_hour": scans_last_hour,
        "scans_last_day": scans_last_day,
        "scans_last_week": scans_last_week,
        "unique_products": int(df["product_id"].nunique()),
        "suspicious_scans": int(suspicious.sum()),
        "verification_failures": int(failures.sum()),
        "average_interval": average_interval,
        "peak_hour": peak_hour,
        "time_of_day_spread": int(len(hour_counts)),
        "unique_locations": int(df["location"].dropna().nunique()),
        "history_span_hours": span_seconds / 3600.0,
    }


def classify_behavior_risk(score: float) -> str:
    """Classify behaviour anomaly score into risk level."""
    if score < 25:
        return "low"
    elif score < 50:
        return "medium"
    elif score < 75:
        return "high"
    return "critical"


def analyze_user_behavior(
    user_id: str,
    scan_history: list[ScanEvent],
    user_role: str | None = None,
    org_id: str | None = None,
    now: datetime | None = None,
) -> BehaviorAnomalyResult:
    """Analyze a user's scan log and flag abnormal scanning behaviour."""
    if not scan_history:
        return BehaviorAnomalyResult(
            is_anomalous=False,
            anomaly_score=0,
            risk_level="low",
            anomalies=["No scan history available"],
            confidence=0.0,
            recommendations=[],
        )

    f = compute_scan_features(scan_history, now)
    n = f["scan_count"]
    anomalies: list[str] = []
    recommendations: list[str] = []
    anomaly_score = 0

    # 1. Scan frequency (automation/bot)
    if f["scans_last_hour"] > 20:
        anomaly_score += 40
        anomalies.append(
            f"Excessive scan frequency: {f['scans_last_hour']} scans in last hour - CRITICAL RISK"
        )
        recommendations.append("Review user activity for potential bot/automation")
    elif f["scans_last_hour"] > 10:
        anomaly_score += 20
        anomalies.append(
            f"High scan frequency: {f['scans_last_hour']} scans in last hour - HIGH RISK"
        )
        recommendations.append("Monitor user for unusual activity")

    # 2. Too-regular intervals
    if 0 < f["average_interval"] < REGULAR_INTERVAL_SECONDS and n > 5:
        anomaly_score += 30
        anomalies.append(
            f"Suspiciously regular scan intervals ({f['average_interval']:.1f}s average) - HIGH RISK"
        )
        recommendations.append("Check for automated scanning tools")

    # 3. Same products scanned repeatedly
    product_diversity = f["unique_products"] / n
    if product_diversity < 0.2 and n > 10:
        anomaly_score += 25
        anomalies.append(
            f"Low product diversity: {f['unique_products']} unique products out of {n} scans"
            " - MEDIUM RISK"
        )
        recommendations.append("Review why same products are scanned repeatedly")

    # 4. Failure rate (probing with counterfeit codes)
    failure_rate = f["verification_failures"] / n
    if failure_rate > 0.5 and n > 5:
        anomaly_score += 35
        anomalies.append(f"High verification failure rate: {failure_rate * 100:.0f}% - HIGH RISK")
        recommendations.append("Investigate user's verification patterns")

    # 5. Suspicious verdict rate
    suspicious_rate = f["suspicious_scans"] / n
    if suspicious_rate > 0.3 and n > 5:
        anomaly_score += 30
        anomalies.append(f"High suspicious scan rate: {suspicious_rate * 100:.0f}% - HIGH RISK")
        recommendations.append("Review user's product sources")

    # 6. Location spread
    if f["unique_locations"] > 10 and n < 20:
        anomaly_score += 20
        anomalies.append(
            f"Unusual location variation: {f['unique_locations']} different locations - MEDIUM RISK"
        )
        recommendations.append("Verify user's movement patterns")

    # 7. Hour-of-day concentration; needs a log spanning at least a day
    if f["time_of_day_spread"] < 3 and n > 10 and f["history_span_hours"] >= 24:
        anomaly_score += 15
        anomalies.append(
            f"Limited time spread: scans concentrated in {f['time_of_day_spread']} hour(s)"
            " - MEDIUM RISK"
        )
        recommendations.append("Review for potential automated scanning")

    # 8. Role-based volume
    if user_role == "sme" and f["scans_last_day"] > 50:
        anomaly_score += 25
        anomalies.append(
            f"SME user with unusually high scan count: {f['scans_last_day']} scans today - MEDIUM RISK"
        )
        recommendations.append("Verify SME user's scanning needs")

    anomaly_score = int(np.clip(anomaly_score, 0, 100))
    confidence = float(min(100.0, n / 100 * 100))

    result = BehaviorAnomalyResult(
        is_anomalous=anomaly_score > 30,
        anomaly_score=anomaly_score,
        risk_level=classify_behavior_risk(anomaly_score),
        anomalies=anomalies,
        confidence=confidence,
        recommendations=recommendations,
    )
    if result.is_anomalous:
        logger.info(
            "Behaviour anomaly for user=%s org=%s: score=%d level=%s rules=%d",
            user_id, org_id or "-", anomaly_score, result.risk_level, len(anomalies),
        )
    return result


def get_user_scan_statistics(
    user_id: str,
    scan_history: list[ScanEvent],
    user_role: str | None = None,
    org_id: str | None = None,
    now: datetime | None = None,
) -> UserScanStatistics | None:
    """Raw behaviour features for dashboards. None for an empty history."""
    if not scan_history:
        return None

    f = compute_scan_features(scan_history, now)
    n = f["scan_count"]

    abnormal_patterns = []
    if f["scans_last_hour"] > 10:
        abnormal_patterns.append("high_frequency")
    if f["average_interval"] < REGULAR_INTERVAL_SECONDS and n > 5:
        abnormal_patterns.append("regular_intervals")
    if f["verification_failures"] / n > 0.3:
        abnormal_patterns.append("high_failure_rate")

    return UserScanStatistics(
        user_id=user_id,
        user_role=user_role or "",
        org_id=org_id or "",
        scan_count=n,
        scan_frequency=f["scans_last_hour"],
        scans_last_day=f["scans_last_day"],
        scans_last_week=f["scans_last_week"],
        unique_products_scanned=f["unique_products"],
        suspicious_scans=f["suspicious_scans"],
        verification_failures=f["verification_failures"],
        average_scan_interval=round(f["average_interval"], 3),
        peak_scan_hour=f["peak_hour"],
        location_variation=f["unique_locations"],
        time_of_day_spread=f["time_of_day_spread"],
        abnormal_patterns=abnormal_patterns,
    )

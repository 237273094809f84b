"""Per-product QR scan anomaly detection (cloned or harvested codes)."""

import logging
from datetime import datetime, timedelta, timezone

from authenticity.schemas.verification import ProductScanRecord, QRAnomalyResult
from authenticity.services.qr_codec import qr_fingerprint

logger = logging.getLogger(__name__)


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def analyze_scan_frequency(scan_history: list[ProductScanRecord], now: datetime | None = None) -> dict:
    """Too many scans of one code in a short window suggests cloning."""
    now = _now(now)
    scans_in_last_hour = sum(1 for s in scan_history if s.timestamp > now - timedelta(hours=1))
    scans_in_last_day = sum(1 for s in scan_history if s.timestamp > now - timedelta(days=1))

    timestamps = sorted(s.timestamp for s in scan_history)
    average_interval = 0.0
    if len(timestamps) > 1:
        gaps = [(b - a).total_seconds() for a, b in zip(timestamps, timestamps[1:])]
        average_interval = sum(gaps) / len(gaps)

    return {
        "frequency_anomaly": scans_in_last_hour > 10 or scans_in_last_day > 50,
        "scans_in_last_hour": scans_in_last_hour,
        "scans_in_last_day": scans_in_last_day,
        "average_interval": average_interval,
    }


def detect_location_anomaly(
    scan_history: list[ProductScanRecord], current_location: str | None = None
) -> dict:
    if not current_location or not scan_history:
        return {"location_anomaly": False, "unique_locations": 0}

    unique_locations = len({s.location for s in scan_history if s.location})
    return {
        "location_anomaly": unique_locations > 5 and len(scan_history) < 10,
        "unique_locations": unique_locations,
    }


def detect_user_anomaly(
    scan_history: list[ProductScanRecord],
    current_user_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = _now(now)
    unique_users = len({s.user_id for s in scan_history if s.user_id})
    suspicious_user_pattern = unique_users > 3 and len(scan_history) < 15

    user_anomaly = False
    if current_user_id:
        user_scans_last_hour = sum(
            1
            for s in scan_history
            if s.user_id == current_user_id and s.timestamp > now - timedelta(hours=1)
        )
        user_anomaly = user_scans_last_hour > 5 or suspicious_user_pattern

    return {
        "user_anomaly": user_anomaly,
        "unique_users": unique_users,
        "suspicious_user_pattern": suspicious_user_pattern,
    }


def analyze_payload_consistency(fingerprint: str, scan_history: list[ProductScanRecord]) -> dict:
    """A printed code never changes; several payloads for one product do not add up."""
    known = [s.qr_fingerprint for s in scan_history if s.qr_fingerprint]
    data_matches = sum(1 for fp in known if fp == fingerprint)
    consistent = data_matches == len(known)
    return {
        "crypto_anomaly": not consistent and len(scan_history) > 1,
        "consistent_data": consistent,
        "data_matches": data_matches,
    }


def detect_qr_anomalies(
    qr_data: str,
    product_id: str,
    scan_history: list[ProductScanRecord],
    current_location: str | None = None,
    current_user_id: str | None = None,
    now: datetime | None = None,
) -> QRAnomalyResult:
    """Score the scan log of one product for cloning and harvesting signals."""
    now = _now(now)
    history = [s for s in scan_history if s.product_id == product_id]
    anomalies: list[str] = []
    anomaly_score = 0

    frequency = analyze_scan_frequency(history, now)
    if frequency["frequency_anomaly"]:
        anomaly_score += 30
        anomalies.append(
            f"Unusual scan frequency: {frequency['scans_in_last_hour']} scans in last hour, "
            f"{frequency['scans_in_last_day']} in last day - HIGH RISK"
        )
    else:
        anomalies.append(f"Normal scan frequency ({frequency['scans_in_last_day']} scans today)")

    location = detect_location_anomaly(history, current_location)
    if location["location_anomaly"]:
        anomaly_score += 25
        anomalies.append(
            f"Location anomaly: Product scanned in {location['unique_locations']} different"
            " locations - MEDIUM RISK"
        )

    users = detect_user_anomaly(history, current_user_id, now)
    if users["user_anomaly"]:
        anomaly_score += 20
        anomalies.append(
            f"User behavior anomaly: {users['unique_users']} different users scanned this"
            " product - MEDIUM RISK"
        )

    crypto = analyze_payload_consistency(qr_fingerprint(qr_data), history)
    if crypto["crypto_anomaly"]:
        anomaly_score += 35
        anomalies.append(
            "Cryptographic inconsistency detected - QR data changed between scans - CRITICAL RISK"
        )

    anomaly_score = max(0, min(100, anomaly_score))
    if anomaly_score > 40:
        logger.warning("QR anomaly for product %s: score=%d", product_id, anomaly_score)

    return QRAnomalyResult(
        is_anomalous=anomaly_score > 40,
        anomaly_score=anomaly_score,
        anomalies=anomalies,
        confidence=float(min(100, anomaly_score)),
    )

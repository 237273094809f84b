"""Verdict scoring: QR payload + product record + image evidence -> verdict.

INVALID is a structural outcome (undecodable payload or unknown product)
and never a score bucket. Scores map to GENUINE / SUSPICIOUS / FAKE through
configurable policy thresholds.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from authenticity.config import get_settings
from authenticity.schemas.verification import (
    ProductReference,
    ProductScanRecord,
    QRAnomalyResult,
    QRPayload,
    VerdictResult,
    VerificationRequest,
    VerificationResult,
)
from authenticity.services.image_analyzer import ImageEvidenceAnalyzer
from authenticity.services.qr_anomaly import detect_qr_anomalies
from authenticity.services.qr_codec import decrypt_qr_payload

logger = logging.getLogger(__name__)

IMAGE_EVIDENCE_WEIGHT = 0.5
QR_ANOMALY_PENALTY = 15
RECENT_QR_AGE = timedelta(days=7)


@dataclass(frozen=True)
class VerdictPolicy:
    genuine_threshold: int = 80
    suspicious_threshold: int = 60
    qr_max_age_days: int = 365

    @classmethod
    def from_settings(cls, settings=None) -> "VerdictPolicy":
        settings = settings or get_settings()
        return cls(
            genuine_threshold=settings.genuine_threshold,
            suspicious_threshold=settings.suspicious_threshold,
            qr_max_age_days=settings.qr_max_age_days,
        )


def determine_verdict(score: int, policy: VerdictPolicy | None = None) -> str:
    """Map an authenticity score to GENUINE / SUSPICIOUS / FAKE."""
    policy = policy or VerdictPolicy()
    if score >= policy.genuine_threshold:
        return "GENUINE"
    elif score >= policy.suspicious_threshold:
        return "SUSPICIOUS"
    return "FAKE"


def calculate_counterfeit_score(
    product: ProductReference,
    payload: QRPayload,
    image_result: VerificationResult | None = None,
    qr_anomaly: QRAnomalyResult | None = None,
    policy: VerdictPolicy | None = None,
    now: datetime | None = None,
) -> tuple[int, int, list[str]]:
    """Contextual authenticity score.

    Returns:
        (score 0-100, confidence 0-100, factors)
    """
    policy = policy or VerdictPolicy()
    now = now or datetime.now(timezone.utc)
    factors: list[str] = []
    score = 50

    # 1. QR issue time
    issued_at = datetime.fromtimestamp(payload.ts / 1000, tz=timezone.utc)
    qr_age = now - issued_at
    if qr_age < timedelta(0):
        score -= 30
        factors.append("Future timestamp in QR code")
    elif qr_age > timedelta(days=policy.qr_max_age_days):
        score -= 20
        factors.append("QR code timestamp is very old")
    elif qr_age < RECENT_QR_AGE:
        score += 10
        factors.append("Recent QR code timestamp")

    # 2. Product status
    if product.status == "active":
        score += 20
        factors.append("Product is active in system")
    else:
        score -= 20
        factors.append("Product status is not active")

    # 3. Metadata consistency
    if product.manufacturer_id == payload.manufacturer_id:
        score += 15
        factors.append("Manufacturer ID matches")
    else:
        score -= 30
        factors.append("Manufacturer ID mismatch")

    if product.org_id == payload.org_id:
        score += 10
        factors.append("Organization ID matches")
    else:
        score -= 20
        factors.append("Organization ID mismatch")

    matching = sum(1 for f in factors if "matches" in f or "Recent" in f)
    confidence = min(100, 50 + matching * 10)

    # 4. Image evidence
    if image_result is not None:
        delta = round((image_result.overall_score - 50) * IMAGE_EVIDENCE_WEIGHT)
        score += delta
        factors.append(f"Image evidence score {image_result.overall_score} ({delta:+d})")
        factors.extend(f"Image: {f}" for f in image_result.factors)
        if image_result.degraded:
            factors.append("Image analysis degraded - reduced confidence")
            confidence = min(confidence, 60)
        else:
            confidence = min(100, confidence + 10)

    # 5. Scan log of this code
    if qr_anomaly is not None and qr_anomaly.is_anomalous:
        score -= QR_ANOMALY_PENALTY
        factors.append(f"QR scan anomaly (score {qr_anomaly.anomaly_score}) - HIGH RISK")

    score = max(0, min(100, score))
    return score, confidence, factors


def invalid_result(reason: str, product_id: str | None = None) -> VerdictResult:
    return VerdictResult(
        verdict="INVALID",
        ai_score=0,
        confidence=0,
        factors=[reason],
        product_id=product_id,
        error=reason,
    )


class VerdictEngine:
    def __init__(
        self,
        product_lookup: Callable[[str], ProductReference | None],
        analyzer: ImageEvidenceAnalyzer | None = None,
        secret: str | None = None,
        policy: VerdictPolicy | None = None,
        scan_lookup: Callable[[str], list[ProductScanRecord]] | None = None,
    ):
        self.product_lookup = product_lookup
        self.scan_lookup = scan_lookup
        self.analyzer = analyzer
        self.secret = secret or get_settings().qr_aes_secret
        self.policy = policy or VerdictPolicy.from_settings()

    async def verify(
        self,
        request: VerificationRequest,
        product_scans: list[ProductScanRecord] | None = None,
        location: str | None = None,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> VerdictResult:
        payload = decrypt_qr_payload(request.qr_payload, self.secret)
        if payload is None:
            logger.info("Verification rejected: QR payload could not be decoded")
            return invalid_result("Invalid QR code - failed to decrypt")

        product = self.product_lookup(payload.product_id)
        if product is None:
            logger.info("Verification rejected: product %s not found", payload.product_id)
            return invalid_result("Product not found in database", payload.product_id)

        image_result = None
        if request.image_url and self.analyzer is not None:
            image_result = await self.analyzer.verify_image(
                request.image_url, request.expected_product_id or payload.product_id
            )

        if product_scans is None and self.scan_lookup is not None:
            product_scans = self.scan_lookup(payload.product_id)

        qr_anomaly = None
        if product_scans:
            qr_anomaly = detect_qr_anomalies(
                request.qr_payload, payload.product_id, product_scans, location, user_id, now
            )

        score, confidence, factors = calculate_counterfeit_score(
            product, payload, image_result, qr_anomaly, self.policy, now
        )
        verdict = determine_verdict(score, self.policy)
        logger.info(
            "Verified product %s: verdict=%s score=%d confidence=%d",
            payload.product_id, verdict, score, confidence,
        )

        return VerdictResult(
            verdict=verdict,
            ai_score=score,
            confidence=confidence,
            factors=factors,
            product_id=payload.product_id,
            image=image_result,
            degraded=bool(image_result and image_result.degraded),
        )

"""Verification API endpoints: full verdicts, image evidence, QR scan anomalies."""

import logging

from fastapi import APIRouter, Depends

from authenticity.config import get_settings
from authenticity.database import get_record_store
from authenticity.schemas.verification import (
    ImageVerificationRequest,
    QRAnomalyRequest,
    QRAnomalyResult,
    VerdictResult,
    VerificationResult,
    VerifyRequest,
)
from authenticity.services.image_analyzer import ImageEvidenceAnalyzer, get_image_analyzer
from authenticity.services.qr_anomaly import detect_qr_anomalies
from authenticity.services.record_store import SqlRecordStore
from authenticity.services.verdict_engine import VerdictEngine, VerdictPolicy

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/verify", response_model=VerdictResult)
async def verify_product(
    request: VerifyRequest,
    store: SqlRecordStore = Depends(get_record_store),
    analyzer: ImageEvidenceAnalyzer = Depends(get_image_analyzer),
):
    """Score an encrypted QR payload (and optional image) and record the verification."""
    settings = get_settings()
    engine = VerdictEngine(
        store.get_product,
        analyzer,
        secret=settings.qr_aes_secret,
        policy=VerdictPolicy.from_settings(settings),
        scan_lookup=lambda product_id: store.get_product_scans(product_id, settings.scan_history_limit),
    )
    result = await engine.verify(request, location=request.location, user_id=request.verifier_id)
    verification_id = store.save_verification(request, result)
    return result.model_copy(update={"verification_id": verification_id})


@router.post("/verify/image", response_model=VerificationResult)
async def verify_image(
    request: ImageVerificationRequest,
    analyzer: ImageEvidenceAnalyzer = Depends(get_image_analyzer),
):
    """Image evidence only; never fails, degraded results are flagged."""
    return await analyzer.verify_image(request.image_url, request.expected_product_id)


@router.post("/verify/qr-anomalies", response_model=QRAnomalyResult)
async def check_qr_anomalies(
    request: QRAnomalyRequest,
    store: SqlRecordStore = Depends(get_record_store),
):
    """Check the stored scan log of a product for cloning signals."""
    scans = store.get_product_scans(request.product_id, get_settings().scan_history_limit)
    return detect_qr_anomalies(
        request.qr_payload, request.product_id, scans, request.location, request.user_id
    )

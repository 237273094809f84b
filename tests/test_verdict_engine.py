from datetime import timedelta

import pytest

from conftest import NOW, QR_SECRET, make_analyzer, make_qr

from authenticity.schemas.verification import (
    ProductReference,
    ProductScanRecord,
    QRPayload,
    VerificationRequest,
)
from authenticity.services.qr_codec import encrypt_qr_payload
from authenticity.services.vision_backends import UnavailableClassifier, UnavailableOcr
from authenticity.services.verdict_engine import (
    VerdictEngine,
    VerdictPolicy,
    determine_verdict,
)

PRODUCTS = {
    "prod-1": ProductReference(
        product_id="prod-1", status="active", manufacturer_id="mfr-1", org_id="org-1"
    ),
    "prod-2": ProductReference(
        product_id="prod-2", status="recalled", manufacturer_id="mfr-1", org_id="org-1"
    ),
}


def make_engine(analyzer=None, policy=None):
    return VerdictEngine(PRODUCTS.get, analyzer, secret=QR_SECRET, policy=policy or VerdictPolicy())


def request_for(**qr_fields):
    image_url = qr_fields.pop("image_url", None)
    qr_fields.setdefault("issued_at", NOW - timedelta(days=1))
    return VerificationRequest(qr_payload=make_qr(**qr_fields), image_url=image_url)


class TestDetermineVerdict:
    @pytest.mark.parametrize(
        "score,verdict",
        [(100, "GENUINE"), (80, "GENUINE"), (79, "SUSPICIOUS"), (60, "SUSPICIOUS"), (59, "FAKE"), (0, "FAKE")],
    )
    def test_default_thresholds(self, score, verdict):
        assert determine_verdict(score) == verdict

    def test_custom_policy(self):
        policy = VerdictPolicy(genuine_threshold=90, suspicious_threshold=70)
        assert determine_verdict(85, policy) == "SUSPICIOUS"
        assert determine_verdict(65, policy) == "FAKE"


class TestVerdictEngine:
    @pytest.mark.asyncio
    async def test_consistent_recent_payload_is_genuine(self):
        result = await make_engine().verify(request_for(), now=NOW)

        assert result.verdict == "GENUINE"
        assert result.ai_score == 100
        assert result.confidence == 80
        assert result.product_id == "prod-1"
        assert "Manufacturer ID matches" in result.factors

    @pytest.mark.asyncio
    async def test_manufacturer_mismatch_is_suspicious(self):
        result = await make_engine().verify(request_for(manufacturer_id="mfr-x"), now=NOW)

        # 50 + 10 recent + 20 active - 30 manufacturer + 10 org
        assert result.ai_score == 60
        assert result.verdict == "SUSPICIOUS"
        assert result.confidence == 70

    @pytest.mark.asyncio
    async def test_foreign_payload_is_fake(self):
        result = await make_engine().verify(
            request_for(manufacturer_id="mfr-x", org_id="org-x"), now=NOW
        )

        assert result.ai_score == 30
        assert result.verdict == "FAKE"

    @pytest.mark.asyncio
    async def test_stale_and_future_timestamps(self):
        stale = await make_engine().verify(request_for(issued_at=NOW - timedelta(days=400)), now=NOW)
        future = await make_engine().verify(request_for(issued_at=NOW + timedelta(days=2)), now=NOW)

        assert stale.ai_score == 75
        assert "QR code timestamp is very old" in stale.factors
        assert future.ai_score == 65
        assert "Future timestamp in QR code" in future.factors

    @pytest.mark.asyncio
    async def test_inactive_product(self):
        result = await make_engine().verify(request_for(product_id="prod-2"), now=NOW)

        assert result.ai_score == 65
        assert "Product status is not active" in result.factors

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_invalid(self):
        request = VerificationRequest(qr_payload=make_qr(secret="someone-else"))

        result = await make_engine().verify(request, now=NOW)

        assert result.verdict == "INVALID"
        assert result.ai_score == 0
        assert result.error == "Invalid QR code - failed to decrypt"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ts", [10**20, -1])
    async def test_out_of_range_timestamp_is_invalid(self, ts):
        payload = QRPayload.model_construct(
            product_id="prod-1", manufacturer_id="mfr-1", org_id="org-1", ts=ts
        )
        request = VerificationRequest(qr_payload=encrypt_qr_payload(payload, QR_SECRET))

        result = await make_engine().verify(request, now=NOW)

        assert result.verdict == "INVALID"
        assert result.error == "Invalid QR code - failed to decrypt"

    @pytest.mark.asyncio
    async def test_unknown_product_is_invalid(self):
        result = await make_engine().verify(request_for(product_id="prod-404"), now=NOW)

        assert result.verdict == "INVALID"
        assert result.product_id == "prod-404"
        assert result.factors == ["Product not found in database"]

    @pytest.mark.asyncio
    async def test_image_evidence_raises_confidence(self):
        engine = make_engine(analyzer=make_analyzer())

        result = await engine.verify(
            request_for(image_url="https://cdn.example.com/p.jpg"), now=NOW
        )

        assert result.image is not None
        assert result.image.degraded is False
        assert result.confidence == 90
        assert result.degraded is False
        assert any(f.startswith("Image: ") for f in result.factors)

    @pytest.mark.asyncio
    async def test_degraded_image_caps_confidence(self):
        analyzer = make_analyzer(classifier=UnavailableClassifier(), ocr=UnavailableOcr())
        engine = make_engine(analyzer=analyzer)

        result = await engine.verify(
            request_for(image_url="https://cdn.example.com/p.jpg"), now=NOW
        )

        assert result.degraded is True
        assert result.confidence == 60
        assert "Image analysis degraded - reduced confidence" in result.factors

    @pytest.mark.asyncio
    async def test_qr_scan_anomaly_lowers_score(self):
        request = request_for(manufacturer_id="mfr-1", org_id="org-x")
        scans = [
            ProductScanRecord(
                product_id="prod-1",
                timestamp=NOW - timedelta(minutes=i),
                user_id="u-1",
                qr_fingerprint=f"cloned-{i}",
            )
            for i in range(12)
        ]

        clean = await make_engine().verify(request, now=NOW)
        flagged = await make_engine().verify(request, product_scans=scans, now=NOW)

        assert clean.ai_score == 75
        assert flagged.ai_score == 60
        assert any("QR scan anomaly" in f for f in flagged.factors)

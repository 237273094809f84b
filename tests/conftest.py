"""
Pytest configuration and fixtures.
"""

import os
import tempfile
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Test environment; must be set before the service modules are imported
os.environ["DB_TYPE"] = "sqlite"
os.environ["SQLITE_PATH"] = os.path.join(tempfile.mkdtemp(), "authenticity-test.db")
os.environ["CLASSIFIER_BACKEND"] = "none"
os.environ["OCR_BACKEND"] = "none"
os.environ["DRIFT_MONITORING_ENABLED"] = "false"
os.environ["QR_AES_SECRET"] = "test-secret"
os.environ["RETRAINING_WEBHOOK_URL"] = ""

from authenticity.schemas.verification import QRPayload
from authenticity.services.image_analyzer import ImageEvidenceAnalyzer, ImageFetcher
from authenticity.services.qr_codec import encrypt_qr_payload
from authenticity.services.record_store import SqlRecordStore
from authenticity.services.vision_backends import ImageClassifier, OcrEngine

QR_SECRET = "test-secret"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def make_qr(product_id="prod-1", manufacturer_id="mfr-1", org_id="org-1", issued_at=None, secret=QR_SECRET):
    payload = QRPayload(
        product_id=product_id,
        manufacturer_id=manufacturer_id,
        org_id=org_id,
        ts=epoch_ms(issued_at or NOW),
    )
    return encrypt_qr_payload(payload, secret)


class FakeClassifier(ImageClassifier):
    name = "fake"

    def __init__(self, predictions=None):
        self.predictions = predictions if predictions is not None else [("pill bottle", 0.82), ("packet", 0.1)]

    async def classify(self, image_bytes, top_k=5):
        return self.predictions[:top_k]


class FakeOcr(OcrEngine):
    name = "fake"

    def __init__(self, text="BATCH PROD12345 EXP 2026", confidence=88.0):
        self.text = text
        self.confidence = confidence

    async def recognize(self, image_bytes):
        return self.text, self.confidence


def image_transport(content_type="image/jpeg", size=50_000, status_code=200):
    """MockTransport serving one image for every URL."""

    def handler(request: httpx.Request) -> httpx.Response:
        if status_code != 200:
            return httpx.Response(status_code)
        body = b"\xff" * size
        return httpx.Response(200, headers={"content-type": content_type}, content=body)

    return httpx.MockTransport(handler)


def make_analyzer(classifier=None, ocr=None, transport=None, settings=None):
    client = httpx.AsyncClient(transport=transport or image_transport())
    return ImageEvidenceAnalyzer(
        fetcher=ImageFetcher(timeout=5.0, client=client),
        classifier=classifier or FakeClassifier(),
        ocr=ocr or FakeOcr(),
        settings=settings,
    )


@pytest.fixture
def store() -> SqlRecordStore:
    """Record store on a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    record_store = SqlRecordStore(engine)
    record_store.create_all()
    return record_store


@pytest.fixture
def product_store(store) -> SqlRecordStore:
    store.add_product(
        "prod-1", name="Shea Butter 250ml", sku="SB-250", status="active",
        manufacturer_id="mfr-1", org_id="org-1",
    )
    store.add_product(
        "prod-2", name="Cocoa Powder", sku="CP-500", status="recalled",
        manufacturer_id="mfr-1", org_id="org-1",
    )
    return store

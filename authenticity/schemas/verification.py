from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from authenticity.schemas.common import UtcDatetime

Verdict = Literal["GENUINE", "SUSPICIOUS", "FAKE", "INVALID"]

# 9999-12-31T23:59:59.999Z, the last instant datetime can represent
MAX_QR_TIMESTAMP_MS = 253_402_300_799_999


class QRPayload(BaseModel):
    """Decrypted QR payload bound to a physical product."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    manufacturer_id: str = Field(alias="manufacturerId")
    org_id: str = Field(alias="orgId")
    ts: int = Field(ge=0, le=MAX_QR_TIMESTAMP_MS)  # issue time, epoch milliseconds


class ProductReference(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    name: str | None = None
    sku: str | None = None
    status: str | None = None
    manufacturer_id: str | None = None
    org_id: str | None = None


class LogoAnalysis(BaseModel):
    confidence: int = Field(ge=0, le=100)
    detected_objects: list[str] = []
    has_logo: bool
    score: float = Field(ge=0.0, le=1.0)
    degraded: bool = False
    source: str = "classifier"  # classifier / fallback / unreachable / error


class TamperingAnalysis(BaseModel):
    tampering_detected: bool
    confidence: int = Field(ge=0, le=100)
    defects: list[str] = []
    score: float = Field(ge=0.0, le=1.0)
    degraded: bool = False


class OcrResult(BaseModel):
    text: str = ""
    confidence: float = 0.0
    serial_numbers: list[str] = []
    engine: str = "none"
    degraded: bool = False


class VerificationResult(BaseModel):
    """Image evidence summary; immutable once produced."""

    model_config = ConfigDict(frozen=True)

    logo_match: float = Field(ge=0.0, le=1.0)
    tampering_score: float = Field(ge=0.0, le=1.0)
    text_extracted: bool
    serial_number_match: bool
    overall_score: int = Field(ge=0, le=100)
    factors: list[str]
    degraded: bool = False


class VerificationRequest(BaseModel):
    qr_payload: str
    image_url: str | None = None
    expected_product_id: str | None = None


class ImageVerificationRequest(BaseModel):
    image_url: str
    expected_product_id: str | None = None


class VerifyRequest(VerificationRequest):
    verifier_id: str
    verifier_role: str | None = None
    location: str | None = None
    channel: str = "web"


class VerdictResult(BaseModel):
    verdict: Verdict
    ai_score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    factors: list[str]
    product_id: str | None = None
    image: VerificationResult | None = None
    degraded: bool = False
    error: str | None = None
    verification_id: str | None = None


class ProductScanRecord(BaseModel):
    product_id: str
    timestamp: UtcDatetime
    location: str | None = None
    user_id: str | None = None
    qr_fingerprint: str | None = None


class QRAnomalyRequest(BaseModel):
    qr_payload: str
    product_id: str
    location: str | None = None
    user_id: str | None = None


class QRAnomalyResult(BaseModel):
    is_anomalous: bool
    anomaly_score: int = Field(ge=0, le=100)
    anomalies: list[str]
    confidence: float = Field(ge=0.0, le=100.0)

"""SQLAlchemy model for verifications table (READ-WRITE)."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from authenticity.database import Base, JSONType


class VerificationRecord(Base):
    """One row per product verification; also serves as the scan log."""

    __tablename__ = "verifications"

    id = Column(String(128), primary_key=True)
    product_id = Column(String(128), index=True)
    org_id = Column(String(128))
    verifier_id = Column(String(128), index=True)
    verifier_role = Column(String(30))

    # QR
    qr_encrypted = Column(Text)
    qr_fingerprint = Column(String(64))

    # Verdict
    verdict = Column(String(20))  # GENUINE / SUSPICIOUS / FAKE / INVALID
    ai_score = Column(Integer)
    confidence = Column(Integer)
    factors = Column(JSONType)
    degraded = Column(Boolean, default=False)

    # Evidence
    image_url = Column(Text)
    location = Column(String(255))
    channel = Column(String(20))  # web / mobile / api

    created_at = Column(DateTime(timezone=True), server_default=func.now())

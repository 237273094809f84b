"""SQLAlchemy models for feedback and model monitoring tables (APPEND-ONLY)."""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text

from authenticity.database import Base, JSONType


class FalsePositiveReportRecord(Base):
    """Human-reported verdict corrections. Never deleted."""

    __tablename__ = "false_positive_reports"

    report_id = Column(String(128), primary_key=True)
    verification_id = Column(String(128), index=True)
    product_id = Column(String(128))
    user_id = Column(String(128))
    original_verdict = Column(String(20))
    user_reported_verdict = Column(String(20))
    ai_score = Column(Float)
    user_confidence = Column(String(10))  # high / medium / low
    feedback = Column(Text)
    evidence_url = Column(Text)
    timestamp = Column(DateTime(timezone=True))

    # Review (mutated once)
    reviewed = Column(Boolean, default=False)
    review_result = Column(String(20))  # confirmed / false_positive / false_negative / resolved


class ModelPerformanceRecord(Base):
    """One snapshot per evaluation run."""

    __tablename__ = "model_performance"

    model_id = Column(String(128), primary_key=True)
    model_type = Column(String(30), index=True)
    accuracy = Column(Float)
    precision = Column(Float)
    recall = Column(Float)
    f1_score = Column(Float)
    false_positive_rate = Column(Float)
    false_negative_rate = Column(Float)
    sample_size = Column(Integer)
    last_evaluated = Column(DateTime(timezone=True), index=True)
    drift_detected = Column(Boolean, default=False)
    drift_score = Column(Integer, default=0)


class DriftAlertRecord(Base):
    """Drift alerts raised by the monitor. Never mutated."""

    __tablename__ = "drift_alerts"

    alert_id = Column(String(128), primary_key=True)
    model_id = Column(String(128))
    model_type = Column(String(30))
    drift_score = Column(Integer)
    severity = Column(String(10))  # low / medium / high / critical
    description = Column(Text)
    metrics = Column(JSONType)
    timestamp = Column(DateTime(timezone=True))
    recommended_action = Column(Text)

"""SQLAlchemy-backed record store: products, scan log, feedback and model history.

Reads return pydantic schemas, never ORM objects, so callers do not hold
on to sessions.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from authenticity.database import Base
from authenticity.errors import ReportAlreadyReviewedError
from authenticity.models.feedback import (
    DriftAlertRecord,
    FalsePositiveReportRecord,
    ModelPerformanceRecord,
)
from authenticity.models.product import Product
from authenticity.models.verification import VerificationRecord
from authenticity.schemas.behavior import ScanEvent
from authenticity.schemas.feedback import DriftAlert, FalsePositiveReport, ModelPerformance
from authenticity.schemas.verification import (
    ProductReference,
    ProductScanRecord,
    VerdictResult,
    VerifyRequest,
)
from authenticity.services.qr_codec import qr_fingerprint

logger = logging.getLogger(__name__)


class SqlRecordStore:
    def __init__(self, engine):
        self.engine = engine
        self.Session = sessionmaker(bind=engine, expire_on_commit=False)

    def create_all(self):
        """Create missing tables (SQLite and local development)."""
        Base.metadata.create_all(self.engine)

    # --- Products ---

    def get_product(self, product_id: str) -> ProductReference | None:
        with self.Session() as session:
            product = session.get(Product, product_id)
            if product is None:
                return None
            return ProductReference(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                status=product.status,
                manufacturer_id=product.manufacturer_id,
                org_id=product.org_id,
            )

    def add_product(self, product_id: str, **fields) -> None:
        with self.Session() as session:
            session.add(Product(id=product_id, **fields))
            session.commit()

    # --- Verifications / scan log ---

    def save_verification(
        self, request: VerifyRequest, result: VerdictResult, now: datetime | None = None
    ) -> str:
        verification_id = str(uuid.uuid4())
        product = self.get_product(result.product_id) if result.product_id else None
        record = VerificationRecord(
            id=verification_id,
            product_id=result.product_id,
            org_id=product.org_id if product else None,
            verifier_id=request.verifier_id,
            verifier_role=request.verifier_role,
            qr_encrypted=request.qr_payload,
            qr_fingerprint=qr_fingerprint(request.qr_payload),
            verdict=result.verdict,
            ai_score=result.ai_score,
            confidence=result.confidence,
            factors=result.factors,
            degraded=result.degraded,
            image_url=request.image_url,
            location=request.location,
            channel=request.channel,
            created_at=now or datetime.now(timezone.utc),
        )
        with self.Session() as session:
            session.add(record)
            session.commit()
        logger.info(
            "Saved verification %s: product=%s verdict=%s",
            verification_id, result.product_id, result.verdict,
        )
        return verification_id

    def get_scan_history(self, user_id: str, limit: int = 100) -> list[ScanEvent]:
        """Latest ``limit`` scans of a user, oldest first."""
        stmt = (
            select(VerificationRecord)
            .where(VerificationRecord.verifier_id == user_id)
            .order_by(VerificationRecord.created_at.desc())
            .limit(limit)
        )
        with self.Session() as session:
            rows = session.scalars(stmt).all()
        return [
            ScanEvent(
                timestamp=r.created_at,
                product_id=r.product_id or "",
                location=r.location,
                verdict=r.verdict,
                ai_score=r.ai_score,
            )
            for r in reversed(rows)
        ]

    def get_product_scans(self, product_id: str, limit: int = 100) -> list[ProductScanRecord]:
        stmt = (
            select(VerificationRecord)
            .where(VerificationRecord.product_id == product_id)
            .order_by(VerificationRecord.created_at.desc())
            .limit(limit)
        )
        with self.Session() as session:
            rows = session.scalars(stmt).all()
        return [
            ProductScanRecord(
                product_id=r.product_id,
                timestamp=r.created_at,
                location=r.location,
                user_id=r.verifier_id,
                qr_fingerprint=r.qr_fingerprint,
            )
            for r in reversed(rows)
        ]

    # --- False-positive reports ---

    def add_report(self, report: FalsePositiveReport) -> None:
        with self.Session() as session:
            session.add(FalsePositiveReportRecord(**report.model_dump()))
            session.commit()

    def get_report(self, report_id: str) -> FalsePositiveReport | None:
        with self.Session() as session:
            row = session.get(FalsePositiveReportRecord, report_id)
            return FalsePositiveReport.model_validate(row) if row else None

    def close_report(self, report_id: str, review_result: str) -> FalsePositiveReport | None:
        """Mark a report reviewed. None if unknown; raises if already closed."""
        with self.Session() as session:
            row = session.get(FalsePositiveReportRecord, report_id, with_for_update=True)
            if row is None:
                return None
            if row.reviewed:
                raise ReportAlreadyReviewedError(f"Report {report_id} was already reviewed")
            row.reviewed = True
            row.review_result = review_result
            session.commit()
            return FalsePositiveReport.model_validate(row)

    def list_reports(self) -> list[FalsePositiveReport]:
        stmt = select(FalsePositiveReportRecord).order_by(FalsePositiveReportRecord.timestamp)
        with self.Session() as session:
            return [FalsePositiveReport.model_validate(r) for r in session.scalars(stmt).all()]

    # --- Model monitoring ---

    def add_model_performance(self, performance: ModelPerformance) -> None:
        with self.Session() as session:
            session.add(ModelPerformanceRecord(**performance.model_dump()))
            session.commit()

    def latest_model_performance(self, model_type: str) -> ModelPerformance | None:
        stmt = (
            select(ModelPerformanceRecord)
            .where(ModelPerformanceRecord.model_type == model_type)
            .order_by(ModelPerformanceRecord.last_evaluated.desc())
            .limit(1)
        )
        with self.Session() as session:
            row = session.scalars(stmt).first()
            return ModelPerformance.model_validate(row) if row else None

    def add_drift_alert(self, alert: DriftAlert) -> None:
        with self.Session() as session:
            record = DriftAlertRecord(**alert.model_dump(exclude={"metrics"}))
            record.metrics = alert.metrics.model_dump()
            session.add(record)
            session.commit()

    def list_drift_alerts(self, model_type: str | None = None) -> list[DriftAlert]:
        stmt = select(DriftAlertRecord).order_by(DriftAlertRecord.timestamp)
        if model_type:
            stmt = stmt.where(DriftAlertRecord.model_type == model_type)
        with self.Session() as session:
            return [DriftAlert.model_validate(r) for r in session.scalars(stmt).all()]

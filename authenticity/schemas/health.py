from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    db_type: str
    drift_monitoring_enabled: bool
    classifier_backend: str
    ocr_backend: str

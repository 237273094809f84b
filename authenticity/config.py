import logging
from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Service
    service_name: str = "authenticity-ai"
    server_port: int = 8086

    # Database Type Selection (postgres or sqlite)
    db_type: str = "postgres"

    # PostgreSQL Configuration
    db_host: str = "postgres"
    db_port: int = 5432
    db_name: str = "supplychain"
    db_user: str = "verifier"
    db_password: str = ""

    # SQLite Configuration (local runs and tests)
    sqlite_path: str = "authenticity.db"

    # Connection Pool Configuration
    db_pool_size: int = 5
    db_pool_overflow: int = 10

    # QR Payload
    qr_aes_secret: str = "default-secret-key-change-in-production"
    qr_max_age_days: int = 365

    # Image Evidence
    image_fetch_timeout: float = 10.0
    image_min_bytes: int = 10_000
    image_max_bytes: int = 5_000_000
    classifier_backend: str = "torchvision"  # torchvision / none
    classifier_top_k: int = 5
    ocr_backend: str = "tesseract"  # tesseract / none

    # Verdict Policy
    genuine_threshold: int = 80
    suspicious_threshold: int = 60

    # Drift Monitor
    drift_schedule_hour: int = 4
    drift_monitoring_enabled: bool = True
    retraining_webhook_url: str = ""

    scan_history_limit: int = 100

    @field_validator(
        "db_port", "server_port", "drift_schedule_hour", "qr_max_age_days", mode="before"
    )
    @classmethod
    def empty_str_to_default(cls, v: Any, info: Any) -> Any:
        if isinstance(v, str) and v.strip() == "":
            defaults = {
                "db_port": 5432,
                "server_port": 8086,
                "drift_schedule_hour": 4,
                "qr_max_age_days": 365,
            }
            return defaults.get(info.field_name, 0)
        return v

    # Model Configuration
    model_version: str = "1.0.0"

    class Config:
        env_file = ".env"
        case_sensitive = False
        protected_namespaces = ("settings_",)

    @property
    def database_url(self) -> str:
        if self.db_type == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        return (
            f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()

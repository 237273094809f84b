import logging

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from authenticity.config import get_settings

logger = logging.getLogger(__name__)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite for local runs)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


def build_engine(settings=None):
    """Create the sync engine for the configured database type."""
    settings = settings or get_settings()
    if settings.db_type == "sqlite":
        return create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_overflow,
        echo=False,
    )


sync_engine = build_engine()


def get_record_store():
    """Dependency returning the record store bound to the shared engine."""
    from authenticity.services.record_store import SqlRecordStore

    return SqlRecordStore(sync_engine)

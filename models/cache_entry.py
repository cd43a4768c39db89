from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
from models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CacheEntry(Base):
    """
    Small key-value cache shared by every exporter process.

    Purpose:
    - Remember the last reconciled (dataset, table, field count) tuple so a
      restart does not query the BigQuery metadata endpoint again

    Design:
    - One row per key
    - value is free-form JSON
    """
    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    value = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

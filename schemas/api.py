"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


# ============================================================================
# Event Intake Schemas
# ============================================================================

class EventAcceptedResponse(BaseModel):
    """Result of handing one event to the exporter"""
    accepted: bool
    ignored: bool


class BatchExportResponse(BaseModel):
    """Result of the buffer-free batch path"""
    received: int
    exported: int
    ignored: int
    batch_state: Optional[str] = Field(None, description="State after the first delivery attempt")


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=_utcnow)
    exporter_ready: bool
    database_connected: bool
    dataset_id: Optional[str] = None
    table_id: Optional[str] = None
    buffered_rows: int = 0
    pending_retries: int = 0
    # declared last so the validator sees every other field
    status: str = Field("unknown", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("exporter_ready", False):
            return "unhealthy"
        if not values.get("database_connected", False):
            # exporting still works, only the schema memo is unavailable
            return "degraded"
        return "healthy"


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Export counters since process start"""
    ready: bool
    events_ignored: int = 0
    buffered_rows: int = 0
    buffered_bytes: int = 0
    batches_in_flight: int = 0
    pending_retries: int = 0
    batches_exported: int = 0
    rows_exported: int = 0
    retries_scheduled: int = 0
    batches_dropped: int = 0
    batches_failed: int = 0

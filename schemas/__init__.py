"""
Pydantic schemas for validation and serialization.

Schemas:
    events: Incoming Event, exported ExportRow and ExportBatch
    api: API response models

Usage:
    from schemas.events import Event, ExportRow, ExportBatch
    from schemas.api import HealthCheckResponse, StatsResponse

Example:
    event = Event.parse_obj({
        "event": "$pageview",
        "distinct_id": "did1",
        "team_id": 1,
        "$set": {"email": "user@example.com"},
    })
    assert event.set_ == {"email": "user@example.com"}
"""

__all__ = [
    "Event",
    "ExportRow",
    "ExportBatch",
    "EventAcceptedResponse",
    "BatchExportResponse",
    "HealthCheckResponse",
    "StatsResponse",
]

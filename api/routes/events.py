"""
Event intake endpoints called by the ingestion pipeline
"""

from typing import List
from fastapi import APIRouter, Depends, Request
from api.dependencies import get_connector
from export.connector import ExportConnector
from schemas.api import EventAcceptedResponse, BatchExportResponse
from schemas.events import Event
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventAcceptedResponse, status_code=202)
async def receive_event(
    event: Event,
    connector: ExportConnector = Depends(get_connector)
):
    """
    Accept one event into the export buffer.

    The event is delivered to BigQuery when the buffer flushes, either on
    size or on timeout.
    """
    accepted = await connector.on_event(event)
    return EventAcceptedResponse(accepted=accepted, ignored=not accepted)


@router.post("/batch", response_model=BatchExportResponse, status_code=202)
async def receive_batch(
    events: List[Event],
    request: Request,
    connector: ExportConnector = Depends(get_connector)
):
    """
    Export a ready batch immediately, bypassing the buffer.

    Failed batches are retried in the background; the response reports the
    state after the first attempt.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /events/batch with {len(events)} events")

    ignored_before = connector.events_ignored
    state = await connector.export_events(events)
    ignored = connector.events_ignored - ignored_before

    return BatchExportResponse(
        received=len(events),
        exported=len(events) - ignored,
        ignored=ignored,
        batch_state=state.value if state else None
    )

"""
Health check endpoint with exporter and cache database status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_connector, get_db
from export.connector import ExportConnector
from schemas.api import HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    connector: ExportConnector = Depends(get_connector)
):
    """
    Health check endpoint.

    Returns:
    - Whether setup completed and events are being exported
    - Metadata cache database connectivity
    - Buffer and retry backlog
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    stats = connector.stats()

    return HealthCheckResponse(
        exporter_ready=connector.is_ready,
        database_connected=db_connected,
        dataset_id=connector.settings.BQ_DATASET_ID,
        table_id=connector.settings.BQ_TABLE_ID,
        buffered_rows=stats["buffered_rows"],
        pending_retries=stats["pending_retries"],
    )

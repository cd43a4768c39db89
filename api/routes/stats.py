"""
Export statistics endpoint
"""
from fastapi import APIRouter, Depends
from api.dependencies import get_connector
from export.connector import ExportConnector
from schemas.api import StatsResponse

router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(connector: ExportConnector = Depends(get_connector)):
    """Counters since process start: exported, retried, dropped and buffered"""
    return StatsResponse(**connector.stats())

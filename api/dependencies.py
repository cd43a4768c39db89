"""
FastAPI dependencies
"""

from fastapi import Request
from core.database import async_session_maker
from export.connector import ExportConnector


def get_connector(request: Request) -> ExportConnector:
    """The export context created at startup"""
    return request.app.state.connector


async def get_db():
    async with async_session_maker() as session:
        yield session

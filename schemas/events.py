"""
Pydantic schemas for incoming events, exported rows and export batches
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
import random

# Batch ids only need to be unique with high probability
BATCH_ID_MAX = 2 ** 31 - 1


class Event(BaseModel):
    """
    An analytics event as delivered by the ingestion pipeline.

    `$set` and `$set_once` arrive under their dollar-prefixed names and are
    exposed as `set_` / `set_once`.
    """

    event: str = Field(..., min_length=1)
    distinct_id: str
    team_id: int
    uuid: Optional[str] = None

    properties: Optional[Dict[str, Any]] = None
    set_: Optional[Dict[str, Any]] = Field(None, alias="$set")
    set_once: Optional[Dict[str, Any]] = Field(None, alias="$set_once")
    elements: Optional[List[Dict[str, Any]]] = None

    ip: Optional[str] = None
    site_url: Optional[str] = None

    timestamp: Optional[str] = None
    now: Optional[str] = None
    sent_at: Optional[str] = None

    @validator("properties", "set_", "set_once", pre=True)
    def clean_mapping(cls, v):
        """Anything that is not a mapping is treated as absent"""
        if v is None or not isinstance(v, dict):
            return None
        return v

    @validator("elements", pre=True)
    def clean_elements(cls, v):
        if v is None or not isinstance(v, list):
            return None
        return v

    class Config:
        frozen = True
        populate_by_name = True
        extra = "ignore"


class ExportRow(BaseModel):
    """
    One row of the BigQuery export table.

    JSON-valued columns are always JSON strings, never null.
    """

    uuid: Optional[str] = None
    event: str
    properties: str = "{}"
    elements: str = "[]"
    set: str = "{}"
    set_once: str = "{}"
    distinct_id: str
    team_id: int
    ip: Optional[str] = None
    site_url: str = ""
    timestamp: Optional[str] = None
    bq_ingested_timestamp: str

    class Config:
        frozen = True


class ExportBatch(BaseModel):
    """
    Rows delivered together in one insert attempt.

    batch_id stays the same across retries; every retry is a new batch object
    with retry_count incremented.
    """

    batch_id: int
    retry_count: int = Field(0, ge=0)
    rows: List[ExportRow] = Field(default_factory=list)

    class Config:
        frozen = True

    @classmethod
    def create(cls, rows: List[ExportRow]) -> "ExportBatch":
        return cls(batch_id=random.randint(1, BATCH_ID_MAX), retry_count=0, rows=list(rows))

    def next_attempt(self) -> "ExportBatch":
        return ExportBatch(
            batch_id=self.batch_id,
            retry_count=self.retry_count + 1,
            rows=list(self.rows),
        )

"""
Map incoming events to rows of the BigQuery export table
"""

from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime, timezone
import json
import logging

from schemas.events import Event, ExportRow

logger = logging.getLogger(__name__)

AUTOCAPTURE_EVENT = "$autocapture"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RowMapper:
    """
    Map events into export rows.

    Handles:
    - IP resolution ($ip property wins over the event ip)
    - Timestamp fallback chain
    - Elements export policy
    - JSON encoding with empty defaults

    Mapping is deterministic apart from bq_ingested_timestamp.
    """

    def __init__(self, export_elements_on_any_event: bool = False):
        self.export_elements_on_any_event = export_elements_on_any_event

    def map(self, event: Event) -> ExportRow:
        properties = event.properties or {}

        return ExportRow(
            uuid=event.uuid,
            event=event.event,
            properties=self._to_json(properties),
            elements=self._to_json(self._elements_to_export(event)),
            set=self._to_json(event.set_ or {}),
            set_once=self._to_json(event.set_once or {}),
            distinct_id=event.distinct_id,
            team_id=event.team_id,
            ip=self._resolve_ip(event, properties),
            site_url=event.site_url or "",
            timestamp=self._resolve_timestamp(event, properties),
            bq_ingested_timestamp=utc_now_iso(),
        )

    def map_many(self, events: Iterable[Event]) -> List[ExportRow]:
        return [self.map(event) for event in events]

    def should_export_elements(self, event_name: str) -> bool:
        return event_name == AUTOCAPTURE_EVENT or self.export_elements_on_any_event

    def _elements_to_export(self, event: Event) -> List[Dict[str, Any]]:
        if self.should_export_elements(event.event) and event.elements:
            return event.elements
        return []

    @staticmethod
    def _resolve_ip(event: Event, properties: Dict[str, Any]) -> Optional[str]:
        ip = properties.get("$ip") or event.ip
        return str(ip) if ip is not None else None

    @staticmethod
    def _resolve_timestamp(event: Event, properties: Dict[str, Any]) -> Optional[str]:
        # event.timestamp -> properties.timestamp -> now -> sent_at
        timestamp = (
            event.timestamp
            or properties.get("timestamp")
            or event.now
            or event.sent_at
        )
        return str(timestamp) if timestamp is not None else None

    @staticmethod
    def _to_json(value: Any) -> str:
        # default=str keeps odd property values (dates, decimals) exportable
        return json.dumps(value, separators=(",", ":"), default=str)

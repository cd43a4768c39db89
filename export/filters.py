"""
Event name filter for events that must never be exported
"""

from typing import FrozenSet, Iterable, Optional


def parse_events_to_ignore(raw: Optional[str]) -> FrozenSet[str]:
    """Split a comma-separated list of event names; empty means ignore nothing"""
    if not raw:
        return frozenset()
    return frozenset(name.strip() for name in raw.split(",") if name.strip())


class EventFilter:
    """Membership test against the configured ignore set."""

    def __init__(self, events_to_ignore: Iterable[str] = ()):
        self.events_to_ignore = frozenset(events_to_ignore)

    @classmethod
    def from_config(cls, raw: Optional[str]) -> "EventFilter":
        return cls(parse_events_to_ignore(raw))

    def should_ignore(self, event_name: str) -> bool:
        return event_name in self.events_to_ignore

"""
Unit tests for the event ignore filter
"""

from export.filters import EventFilter, parse_events_to_ignore


class TestParseEventsToIgnore:
    """Test parsing of the comma-separated ignore list"""

    def test_trims_whitespace_around_names(self):
        assert parse_events_to_ignore(" a , b,c ") == frozenset({"a", "b", "c"})

    def test_empty_values_ignore_nothing(self):
        assert parse_events_to_ignore("") == frozenset()
        assert parse_events_to_ignore(None) == frozenset()

    def test_skips_empty_entries(self):
        assert parse_events_to_ignore("a,, ,b,") == frozenset({"a", "b"})

    def test_names_with_spaces_are_kept_whole(self):
        assert parse_events_to_ignore("ignore me") == frozenset({"ignore me"})


class TestEventFilter:
    """Test ignore decisions"""

    def test_ignores_configured_events(self):
        event_filter = EventFilter.from_config("$feature_flag_called, ignore me")

        assert event_filter.should_ignore("$feature_flag_called") is True
        assert event_filter.should_ignore("ignore me") is True

    def test_exports_everything_else(self):
        event_filter = EventFilter.from_config("$feature_flag_called")

        assert event_filter.should_ignore("$pageview") is False
        assert event_filter.should_ignore("$feature_flag_called_again") is False

    def test_match_is_exact_and_case_sensitive(self):
        event_filter = EventFilter(["Signup"])

        assert event_filter.should_ignore("signup") is False
        assert event_filter.should_ignore("Signup") is True

    def test_empty_filter(self):
        assert EventFilter().should_ignore("anything") is False

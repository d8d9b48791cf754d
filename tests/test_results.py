"""
Tests for fan-out fetch results.

Run with: python -m pytest tests/test_results.py -v
"""

import json

from core.results import FetchResult, FetchStatus, STATUS_MESSAGES


class TestFetchResult:
    """Tests for FetchResult."""

    def test_success(self):
        """Test creating a successful result."""
        result = FetchResult.success("NSW", [{"meetingId": 1}])

        assert result.ok is True
        assert result.status == FetchStatus.OK
        assert result.key == "NSW"
        assert result.data == [{"meetingId": 1}]
        assert result.error is None

    def test_success_empty_is_no_data(self):
        """Test an empty answer is still ok but flagged as no data."""
        result = FetchResult.success("NT", [])

        assert result.ok is True
        assert result.status == FetchStatus.NO_DATA
        assert result.data == []
        assert result.message == "No races/meeting data found"

    def test_success_none_becomes_list(self):
        assert FetchResult.success("NT", None).data == []

    def test_api_error(self):
        """Test an upstream failure carries empty data and the error text."""
        result = FetchResult.api_error(555, "HTTP 503: Service Unavailable")

        assert result.ok is False
        assert result.status == FetchStatus.API_ERROR
        assert result.data == []
        assert result.message == "Failed to load races"
        assert "503" in result.error

    def test_unknown_error(self):
        result = FetchResult.unknown_error("QLD", "boom")

        assert result.ok is False
        assert result.status == FetchStatus.UNKNOWN_ERROR
        assert result.message == STATUS_MESSAGES[FetchStatus.UNKNOWN_ERROR]

    def test_to_dict(self):
        """Test JSON serialization."""
        d = FetchResult.api_error("VIC", "timeout").to_dict()

        assert d["ok"] is False
        assert d["status"] == "api_error"
        assert d["key"] == "VIC"
        assert d["error"] == "timeout"
        assert "timestamp" in d

    def test_success_to_dict_is_json_safe(self):
        """Test a successful result serializes with no error."""
        d = FetchResult.success("NSW", [{"meetingId": 1}]).to_dict()

        assert d["error"] is None
        json.dumps(d)


class TestStatusMessages:
    """Tests for status messages."""

    def test_all_statuses_have_messages(self):
        for status in FetchStatus:
            assert status in STATUS_MESSAGES
            assert len(STATUS_MESSAGES[status]) > 0

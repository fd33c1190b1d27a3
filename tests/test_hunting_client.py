"""Unit tests for HuntingClient with mocked LogsQueryClient.

Uses mock objects to simulate LogsTable responses without live Azure calls.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import HttpResponseError
from azure.monitor.query import LogsQueryClient, LogsQueryStatus

from baseline_delta.categories import CATEGORIES
from baseline_delta.config import Settings
from baseline_delta.hunting_client import HuntingClient
from baseline_delta.models import MachineRef, QueryError

# --------------------------------------------------------------------------
# Mock helpers
# --------------------------------------------------------------------------

SINCE = datetime(2026, 2, 11, 12, 0, 0, tzinfo=UTC)


def _extract_query(call_args) -> str:
    """Extract the KQL query string from a mock call_args object."""
    return call_args.kwargs.get("query", "")


class MockColumn:
    """Mimics a LogsTable column with a name attribute."""

    def __init__(self, name: str):
        self.name = name


class MockLogsTable:
    """Mimics LogsTable with columns and rows.

    Rows are lists of values aligned with column order.
    """

    def __init__(self, columns: list[str], rows: list[list]):
        self.columns = [MockColumn(c) for c in columns]
        self.rows = rows


class MockResponse:
    """Mimics LogsQueryResult/LogsQueryPartialResult."""

    def __init__(
        self,
        status: LogsQueryStatus,
        tables: list | None = None,
        partial_data: list | None = None,
        partial_error: object | None = None,
    ):
        self.status = status
        self.tables = tables or []
        self.partial_data = partial_data or []
        self.partial_error = partial_error


def _make_process_table() -> MockLogsTable:
    """Create a mock DeviceProcessEvents LogsTable."""
    columns = ["Timestamp", "DeviceId", "FileName", "FolderPath"]
    rows = [
        ["2026-02-18T10:00:00Z", "b1", "mimikatz.exe", "C:\\Tools\\mimikatz.exe"],
        [datetime(2026, 2, 18, 9, 0, 0), "b1", "cmd.exe", "C:\\Windows\\System32\\cmd.exe"],
    ]
    return MockLogsTable(columns, rows)


@pytest.fixture
def mock_client():
    """Create a HuntingClient with a mocked LogsQueryClient."""
    mock_logs_client = MagicMock(spec=LogsQueryClient)
    settings = Settings(sentinel_workspace_id="00000000-0000-0000-0000-000000000000")
    return HuntingClient(settings, client=mock_logs_client), mock_logs_client


# --------------------------------------------------------------------------
# Tests: query
# --------------------------------------------------------------------------


class TestQuery:
    """Tests for HuntingClient.query()."""

    def test_returns_rows_as_dicts(self, mock_client):
        """Rows come back as dicts with UTC timestamps."""
        client, mock_logs = mock_client
        mock_logs.query_workspace.return_value = MockResponse(
            status=LogsQueryStatus.SUCCESS,
            tables=[_make_process_table()],
        )

        rows = client.query(CATEGORIES["Process Creation"], {"b1"}, SINCE)

        assert len(rows) == 2
        assert rows[0]["FileName"] == "mimikatz.exe"
        assert rows[0]["Timestamp"] == datetime(2026, 2, 18, 10, 0, 0, tzinfo=UTC)
        assert rows[1]["Timestamp"].tzinfo is not None

    def test_kql_scoped_to_devices_and_time(self, mock_client):
        """The query is bound to the machine set and start time."""
        client, mock_logs = mock_client
        mock_logs.query_workspace.return_value = MockResponse(status=LogsQueryStatus.SUCCESS)

        client.query(CATEGORIES["Logon"], {"b2", "b1"}, SINCE)

        call_args = mock_logs.query_workspace.call_args
        query = _extract_query(call_args)
        assert "DeviceLogonEvents" in query
        assert "DeviceId in ('b1','b2')" in query
        assert "datetime(2026-02-11T12:00:00.000000Z)" in query
        assert call_args.kwargs["server_timeout"] == 180
        start, _end = call_args.kwargs["timespan"]
        assert start == SINCE

    def test_empty_machine_set_skips_query(self, mock_client):
        """No machines means no query."""
        client, mock_logs = mock_client
        assert client.query(CATEGORIES["Logon"], set(), SINCE) == []
        mock_logs.query_workspace.assert_not_called()

    def test_empty_tables_return_empty_list(self, mock_client):
        """A response with no tables gives an empty list."""
        client, mock_logs = mock_client
        mock_logs.query_workspace.return_value = MockResponse(status=LogsQueryStatus.SUCCESS, tables=[])
        assert client.query(CATEGORIES["Logon"], {"b1"}, SINCE) == []


class TestErrors:
    """Tests for QueryError mapping."""

    def test_partial_result_is_error(self, mock_client):
        """Partial results are reported as a retryable error."""
        client, mock_logs = mock_client
        partial_error = MagicMock()
        partial_error.code = "PartialError"
        partial_error.message = "Query exceeded limits"
        mock_logs.query_workspace.return_value = MockResponse(
            status=LogsQueryStatus.PARTIAL,
            partial_data=[_make_process_table()],
            partial_error=partial_error,
        )

        result = client.query(CATEGORIES["Process Creation"], {"b1"}, SINCE)

        assert isinstance(result, QueryError)
        assert result.code == "partial_result"
        assert "Query exceeded limits" in result.message
        assert result.retry_possible is True

    def test_http_throttling_is_retryable(self, mock_client):
        """Throttling (429) is retryable."""
        client, mock_logs = mock_client
        error = HttpResponseError(message="Too many requests")
        error.response = MagicMock()
        error.response.status_code = 429
        error.error = MagicMock()
        error.error.code = "TooManyRequests"
        mock_logs.query_workspace.side_effect = error

        result = client.query(CATEGORIES["Process Creation"], {"b1"}, SINCE)

        assert isinstance(result, QueryError)
        assert result.code == "TooManyRequests"
        assert result.retry_possible is True

    def test_http_bad_request_not_retryable(self, mock_client):
        """A bad request (400) is not retryable."""
        client, mock_logs = mock_client
        error = HttpResponseError(message="Bad query")
        error.response = MagicMock()
        error.response.status_code = 400
        error.error = MagicMock()
        error.error.code = "BadArgumentError"
        mock_logs.query_workspace.side_effect = error

        result = client.query(CATEGORIES["Process Creation"], {"b1"}, SINCE)

        assert isinstance(result, QueryError)
        assert result.code == "BadArgumentError"
        assert result.retry_possible is False

    def test_unexpected_exception(self, mock_client):
        """Unexpected exceptions map to an unknown error."""
        client, mock_logs = mock_client
        mock_logs.query_workspace.side_effect = RuntimeError("socket closed")

        result = client.query(CATEGORIES["Process Creation"], {"b1"}, SINCE)

        assert isinstance(result, QueryError)
        assert result.code == "unknown"
        assert "socket closed" in result.message


class TestResolve:
    """Tests for HuntingClient.resolve()."""

    def test_returns_machine_refs(self, mock_client):
        """Distinct (DeviceId, DeviceName) pairs are returned sorted."""
        client, mock_logs = mock_client
        table = MockLogsTable(
            ["DeviceId", "DeviceName"],
            [
                ["b1", "bad1.contoso.com"],
                ["b1-old", "bad1.contoso.com"],
                ["b1", "bad1.contoso.com"],
            ],
        )
        mock_logs.query_workspace.return_value = MockResponse(status=LogsQueryStatus.SUCCESS, tables=[table])

        refs = client.resolve({"BAD1.contoso.com"})

        assert refs == [
            MachineRef("b1", "bad1.contoso.com"),
            MachineRef("b1-old", "bad1.contoso.com"),
        ]
        call_args = mock_logs.query_workspace.call_args
        assert "DeviceName in~ ('BAD1.contoso.com')" in _extract_query(call_args)
        assert call_args.kwargs["timespan"] == timedelta(days=30)

    def test_empty_names_skip_query(self, mock_client):
        """No names means no query."""
        client, mock_logs = mock_client
        assert client.resolve(set()) == []
        mock_logs.query_workspace.assert_not_called()

    def test_failure_returns_query_error(self, mock_client):
        """A failed lookup returns QueryError."""
        client, mock_logs = mock_client
        mock_logs.query_workspace.side_effect = RuntimeError("no route")
        assert isinstance(client.resolve({"a"}), QueryError)


class TestParseDatetime:
    """Tests for the _parse_datetime fallback behavior."""

    def test_none_is_epoch(self):
        """None parses to the epoch."""
        assert HuntingClient._parse_datetime(None) == datetime(1970, 1, 1, tzinfo=UTC)

    def test_garbage_is_epoch(self):
        """Unparsable strings parse to the epoch."""
        assert HuntingClient._parse_datetime("yesterday") == datetime(1970, 1, 1, tzinfo=UTC)

    def test_naive_gets_utc(self):
        """Naive datetimes are assumed UTC."""
        assert HuntingClient._parse_datetime(datetime(2026, 1, 1)).tzinfo == UTC

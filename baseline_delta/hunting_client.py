"""HuntingClient for running category KQL templates against a workspace.

Wraps azure-monitor-query LogsQueryClient to serve as both the event source
(one query per category and machine group) and the machine identity resolver
(DeviceInfo lookup). All methods are read-only and return QueryError on
failure instead of raising.
"""

import logging
from collections.abc import Collection
from datetime import UTC, datetime

from azure.core.exceptions import HttpResponseError
from azure.identity import DefaultAzureCredential
from azure.monitor.query import LogsQueryClient, LogsQueryStatus

from baseline_delta.categories import Category
from baseline_delta.config import Settings
from baseline_delta.models import MachineRef, QueryError
from baseline_delta.queries import (
    DEFAULT_TIMEOUT,
    TEMPLATE_TIMEOUTS,
    build_query,
    kql_datetime,
    kql_string_list,
    parse_timespan,
)

logger = logging.getLogger(__name__)


class HuntingClient:
    """Executes registered KQL templates against a Log Analytics workspace.

    Partial results are reported as QueryError: a baseline built from a
    truncated result set could hide true deltas.
    """

    def __init__(self, settings: Settings, *, client: LogsQueryClient | None = None):
        """Initialize with Settings. Optionally inject a LogsQueryClient for testing.

        Args:
            settings: Application settings with sentinel_workspace_id.
            client: Optional pre-built LogsQueryClient (for test injection).
        """
        self._workspace_id = settings.sentinel_workspace_id
        self._resolve_lookback = settings.resolve_lookback
        if client is not None:
            self._client = client
        else:
            credential = DefaultAzureCredential()
            self._client = LogsQueryClient(credential)

    # ------------------------------------------------------------------
    # Private: query execution
    # ------------------------------------------------------------------

    def _execute_query(self, query: str, timespan, server_timeout: int) -> list | QueryError:
        """Execute a KQL query and return its tables or QueryError."""
        try:
            response = self._client.query_workspace(
                workspace_id=self._workspace_id,
                query=query,
                timespan=timespan,
                server_timeout=server_timeout,
            )

            if response.status == LogsQueryStatus.SUCCESS:
                return response.tables

            elif response.status == LogsQueryStatus.PARTIAL:
                error = response.partial_error
                detail = f"{error.code}: {error.message}" if error else "Partial results"
                return QueryError(
                    code="partial_result",
                    message=f"Query returned partial results ({detail})",
                    retry_possible=True,
                )

            else:
                return QueryError(
                    code="unexpected_status",
                    message=f"Unexpected query status: {response.status}",
                    retry_possible=False,
                )

        except HttpResponseError as e:
            status_code = getattr(e.response, "status_code", 0) if e.response else 0
            error_code = getattr(e.error, "code", "http_error") if e.error else "http_error"
            retry_possible = status_code in (429, 500, 502, 503, 504)
            return QueryError(
                code=error_code,
                message=str(e)[:500],
                retry_possible=retry_possible,
            )

        except Exception as e:
            logger.exception("Unexpected error executing query")
            return QueryError(
                code="unknown",
                message=str(e)[:500],
                retry_possible=False,
            )

    # ------------------------------------------------------------------
    # Private: result parsing
    # ------------------------------------------------------------------

    def _parse_rows(self, tables) -> list[dict]:
        """Convert the first LogsTable into dicts keyed by column name.

        Timestamp values are normalized to timezone-aware datetimes.
        """
        rows: list[dict] = []
        if not tables:
            return rows

        table = tables[0]
        columns = [col.name if hasattr(col, "name") else str(col) for col in table.columns]

        for row in table.rows:
            row_dict = dict(zip(columns, row, strict=False))
            if "Timestamp" in row_dict:
                row_dict["Timestamp"] = self._parse_datetime(row_dict["Timestamp"])
            rows.append(row_dict)

        return rows

    @staticmethod
    def _parse_datetime(value) -> datetime:
        """Parse a datetime value from LogsTable, handling various formats.

        Returns datetime with UTC timezone. Falls back to epoch start on failure.
        """
        if value is None:
            return datetime(1970, 1, 1, tzinfo=UTC)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=UTC)
            return value
        if isinstance(value, str):
            try:
                dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
                if dt.tzinfo is None:
                    dt = dt.replace(tzinfo=UTC)
                return dt
            except (ValueError, TypeError):
                return datetime(1970, 1, 1, tzinfo=UTC)
        return datetime(1970, 1, 1, tzinfo=UTC)

    # ------------------------------------------------------------------
    # Public: machine identity resolution
    # ------------------------------------------------------------------

    def resolve(self, names: Collection[str]) -> list[MachineRef] | QueryError:
        """Resolve hostnames to machine references via DeviceInfo.

        Matching is case-insensitive on the FQDN. A name may resolve to
        several DeviceIds (reimaged or re-onboarded machines); names with no
        match are simply absent from the result.
        """
        if not names:
            return []

        query = build_query(
            "resolve_devices",
            lookback=self._resolve_lookback,
            device_names=kql_string_list(names),
        )
        result = self._execute_query(
            query,
            parse_timespan(self._resolve_lookback),
            TEMPLATE_TIMEOUTS.get("resolve_devices", DEFAULT_TIMEOUT),
        )
        if isinstance(result, QueryError):
            return result

        refs = {
            MachineRef(machine_id=str(row["DeviceId"]), name=str(row["DeviceName"]))
            for row in self._parse_rows(result)
            if row.get("DeviceId")
        }
        return sorted(refs, key=lambda r: (r.name, r.machine_id))

    # ------------------------------------------------------------------
    # Public: category event queries
    # ------------------------------------------------------------------

    def query(
        self,
        category: Category,
        machine_ids: Collection[str],
        since: datetime,
    ) -> list[dict] | QueryError:
        """Fetch raw rows for one category, machine set and time bound.

        Returns an empty list without querying when machine_ids is empty.
        """
        if not machine_ids:
            return []

        query = build_query(
            category.template,
            since=kql_datetime(since),
            device_ids=kql_string_list(machine_ids),
        )
        result = self._execute_query(
            query,
            (since, datetime.now(UTC)),
            TEMPLATE_TIMEOUTS.get(category.template, DEFAULT_TIMEOUT),
        )
        if isinstance(result, QueryError):
            return result

        rows = self._parse_rows(result)
        logger.debug("%s: fetched %d row(s) for %d machine(s)", category.name, len(rows), len(machine_ids))
        return rows

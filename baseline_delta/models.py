"""Data models for baseline delta runs.

Provides frozen dataclasses for machine references, normalized observations
and ranked result rows, plus the DeltaReport envelope, the QueryError wrapper
returned by the hunting client, and relative time formatting for display.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any


def format_relative_time(dt: datetime) -> str:
    """Format a datetime as a human-readable relative string.

    Examples: 'just now', '5 minutes ago', '2 hours ago',
    'yesterday at 3:14 PM', '3 days ago', 'Feb 18, 2026'

    Handles naive datetimes by assuming UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    seconds = int((datetime.now(UTC) - dt).total_seconds())
    if seconds < 60:
        return "just now"
    elif seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    elif seconds < 172800:  # 2 days
        return f"yesterday at {dt.strftime('%I:%M %p').lstrip('0')}"
    elif seconds < 604800:  # 7 days
        return f"{seconds // 86400} days ago"
    else:
        return dt.strftime("%b %d, %Y")


@dataclass
class QueryError:
    """Structured error for failed queries."""

    code: str
    message: str
    retry_possible: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MachineRef:
    """A resolved machine: opaque DeviceId plus its reported DeviceName."""

    machine_id: str
    name: str


@dataclass(frozen=True)
class NormalizedObservation:
    """One (entity, machine, data type) summary row.

    entity is the noise-normalized grouping key, never the raw field.
    additional_data is a sorted tuple of distinct supporting values.
    When json_values is set each value is a canonical JSON document and is
    emitted decoded in the output column.
    """

    entity: str
    machine_id: str
    event_time: datetime
    count: int
    additional_data: tuple[str, ...]
    data_type: str
    json_values: bool = False

    @property
    def key(self) -> tuple[str, str]:
        """Cross-category-safe identity of the observed thing."""
        return (self.entity, self.data_type)


@dataclass(frozen=True)
class ResultRow:
    """A delta (or alert) row enriched with machine name and prevalence."""

    event_time: datetime
    entity: str
    count: int
    additional_data: tuple[str, ...]
    machine_id: str
    data_type: str
    computer_name: str | None
    bad_machines_count: int
    json_values: bool = False

    def additional_values(self) -> list:
        if self.json_values:
            return [json.loads(value) for value in self.additional_data]
        return list(self.additional_data)

    def to_dict(self) -> dict:
        """Convert to the output column layout with AdditionalData as a JSON string."""
        return {
            "EventTime": self.event_time.isoformat(),
            "Entity": self.entity,
            "Count": self.count,
            "AdditionalData": json.dumps(self.additional_values()),
            "MachineId": self.machine_id,
            "DataType": self.data_type,
            "ComputerName": self.computer_name,
            "BadMachinesCount": self.bad_machines_count,
        }


@dataclass
class DeltaReport:
    """Envelope for a completed run."""

    rows: list[ResultRow]
    enabled_categories: list[str]
    unresolved_hosts: list[str] = field(default_factory=list)
    failed_categories: list[str] = field(default_factory=list)
    query_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": {
                "total": len(self.rows),
                "query_ms": self.query_ms,
                "enabled_categories": self.enabled_categories,
                "unresolved_hosts": self.unresolved_hosts,
                "failed_categories": self.failed_categories,
            },
            "results": [row.to_dict() for row in self.rows],
        }

"""Fake collaborators and row builders shared by the test modules."""

from datetime import UTC, datetime, timedelta

from baseline_delta.models import MachineRef, QueryError

NOW = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)


class FakeHunting:
    """In-memory EventSource and MachineIdentityResolver.

    events maps a category name to raw rows; devices maps DeviceName to
    DeviceId. failures maps a category name to a QueryError to return.
    """

    def __init__(
        self,
        devices: dict[str, str],
        events: dict[str, list[dict]] | None = None,
        failures: dict[str, QueryError] | None = None,
    ):
        self.devices = devices
        self.events = events or {}
        self.failures = failures or {}
        self.queried: list[tuple[str, frozenset]] = []

    def resolve(self, names):
        lowered = {n.lower() for n in names}
        return [
            MachineRef(machine_id=device_id, name=name)
            for name, device_id in self.devices.items()
            if name.lower() in lowered
        ]

    def query(self, category, machine_ids, since):
        self.queried.append((category.name, frozenset(machine_ids)))
        if category.name in self.failures:
            return self.failures[category.name]
        return [
            r
            for r in self.events.get(category.name, [])
            if r["DeviceId"] in machine_ids and r["Timestamp"] > since
        ]


def make_row(device_id: str, hours_ago: float = 1, **fields) -> dict:
    """Build a raw event row with a Timestamp relative to NOW."""
    return {"DeviceId": device_id, "Timestamp": NOW - timedelta(hours=hours_ago), **fields}

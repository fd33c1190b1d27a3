"""Category-agnostic aggregation of raw events into normalized observations.

aggregate() scopes raw rows to a machine set and time window, runs the
category's collapse/exclude/normalize hooks, and reduces each
(entity, machine) group to a single NormalizedObservation.
"""

import logging
from collections.abc import Collection, Iterable
from datetime import datetime

from baseline_delta.categories import Category
from baseline_delta.errors import MalformedRecordError
from baseline_delta.models import NormalizedObservation

logger = logging.getLogger(__name__)


class _Group:
    """Running reduction for one (entity, machine) group."""

    __slots__ = ("event_time", "count", "values", "limit")

    def __init__(self, event_time: datetime, limit: int):
        self.event_time = event_time
        self.count = 0
        self.values: dict[str, None] = {}
        self.limit = limit

    def add(self, event_time: datetime, count: int, values: Iterable[str]) -> None:
        self.event_time = max(self.event_time, event_time)
        self.count += count
        for value in values:
            if len(self.values) >= self.limit:
                break
            self.values.setdefault(value, None)


def scope_records(
    records: Iterable[dict],
    machine_ids: Collection[str],
    since: datetime,
) -> list[dict]:
    """Keep rows newer than since whose DeviceId is in machine_ids."""
    return [
        r
        for r in records
        if r.get("DeviceId") in machine_ids
        and r.get("Timestamp") is not None
        and r["Timestamp"] > since
    ]


def aggregate(
    category: Category,
    records: Iterable[dict],
    machine_ids: Collection[str],
    since: datetime,
) -> list[NormalizedObservation]:
    """Reduce raw rows of one category to one observation per (entity, machine).

    An empty machine set or an empty event range yields an empty list.
    Records failing normalization are skipped individually.
    """
    if not machine_ids:
        return []

    scoped = category.collapse(scope_records(records, machine_ids, since))

    groups: dict[tuple[str, str], _Group] = {}
    skipped = 0
    for record in scoped:
        if category.exclude(record):
            continue
        try:
            entity, values = category.normalize(record)
        except MalformedRecordError as e:
            skipped += 1
            logger.debug("Skipping %s record on %s: %s", category.name, record.get("DeviceId"), e)
            continue
        if not entity:
            continue

        key = (entity, record["DeviceId"])
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(record["Timestamp"], category.sample_limit)
        group.add(record["Timestamp"], int(record.get("Count") or 1), values)

    if skipped:
        logger.warning("%s: skipped %d malformed record(s)", category.name, skipped)

    return [
        NormalizedObservation(
            entity=entity,
            machine_id=machine_id,
            event_time=group.event_time,
            count=group.count,
            additional_data=tuple(sorted(group.values)),
            data_type=category.name,
            json_values=category.json_values,
        )
        for (entity, machine_id), group in groups.items()
    ]


def aggregate_enabled(
    category: Category,
    enabled_categories: Collection[str],
    records: Iterable[dict],
    machine_ids: Collection[str],
    since: datetime,
) -> list[NormalizedObservation]:
    """aggregate() gated on configuration: disabled categories yield nothing."""
    if category.name not in enabled_categories:
        return []
    return aggregate(category, records, machine_ids, since)

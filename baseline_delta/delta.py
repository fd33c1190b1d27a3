"""Baseline differencing, result unification and ranking.

diff() is the anti-join of bad observations against the good baseline,
unify() merges every category delta with the undiffed alert rows and attaches
machine names and cross-machine prevalence, rank() orders the final table.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping

from baseline_delta.models import NormalizedObservation, ResultRow


def diff(
    bad: Iterable[NormalizedObservation],
    good: Iterable[NormalizedObservation],
) -> list[NormalizedObservation]:
    """Return bad observations whose (entity, data type) never appears in good.

    Keyed on entity and data type only, never on machine: an entity seen on any
    good machine is suppressed for every bad machine. Each surviving bad row is
    kept, so one entity on several bad machines yields one row per machine.
    """
    baseline = {obs.key for obs in good}
    return [obs for obs in bad if obs.key not in baseline]


def unify(
    deltas: Iterable[NormalizedObservation],
    alerts: Iterable[NormalizedObservation],
    machine_names: Mapping[str, str],
) -> list[ResultRow]:
    """Merge deltas and alerts into result rows.

    ComputerName is a left-outer lookup on machine_names (None when missing).
    BadMachinesCount is the number of distinct machines sharing the row's
    (entity, data type) across the whole merged stream.
    """
    stream = [*deltas, *alerts]

    machines_by_key: dict[tuple[str, str], set[str]] = defaultdict(set)
    for obs in stream:
        machines_by_key[obs.key].add(obs.machine_id)

    return [
        ResultRow(
            event_time=obs.event_time,
            entity=obs.entity,
            count=obs.count,
            additional_data=obs.additional_data,
            machine_id=obs.machine_id,
            data_type=obs.data_type,
            computer_name=machine_names.get(obs.machine_id),
            bad_machines_count=len(machines_by_key[obs.key]),
            json_values=obs.json_values,
        )
        for obs in stream
    ]


def rank(rows: Iterable[ResultRow]) -> list[ResultRow]:
    """Sort by BadMachinesCount desc, then MachineId, DataType, Entity asc."""
    return sorted(
        rows,
        key=lambda r: (-r.bad_machines_count, r.machine_id, r.data_type, r.entity),
    )

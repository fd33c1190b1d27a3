"""Baseline delta pipeline driver.

BaselineDeltaEngine.run() resolves both host groups, fans every enabled
(category, side) fetch-and-aggregate out onto a thread pool, diffs each
category once both of its sides are in, then unifies and ranks the result.

A source failure on any fetch fails the whole run, as does a category whose
every side failed to aggregate; no partial report is ever returned.
"""

import logging
import time
from collections.abc import Callable, Collection
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from typing import Protocol

from baseline_delta.aggregator import aggregate
from baseline_delta.categories import CATEGORIES, Category
from baseline_delta.config import DeltaConfig
from baseline_delta.delta import diff, rank, unify
from baseline_delta.errors import CategoryFailedError, ResolutionError, SourceUnavailableError
from baseline_delta.models import DeltaReport, MachineRef, NormalizedObservation, QueryError

logger = logging.getLogger(__name__)

GOOD = "good"
BAD = "bad"


class EventSource(Protocol):
    def query(
        self, category: Category, machine_ids: Collection[str], since: datetime
    ) -> list[dict] | QueryError: ...


class MachineIdentityResolver(Protocol):
    def resolve(self, names: Collection[str]) -> list[MachineRef] | QueryError: ...


def unresolved_names(names: Collection[str], refs: Collection[MachineRef]) -> list[str]:
    """Configured names that matched no resolved machine (case-insensitive)."""
    found = {ref.name.lower() for ref in refs}
    return sorted(name for name in names if name.lower() not in found)


class BaselineDeltaEngine:
    """Runs the differential analysis for one configuration at a time."""

    def __init__(
        self,
        source: EventSource,
        resolver: MachineIdentityResolver,
        *,
        max_workers: int = 8,
        clock: Callable[[], datetime] | None = None,
    ):
        self._source = source
        self._resolver = resolver
        self._max_workers = max(1, max_workers)
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Private: resolution
    # ------------------------------------------------------------------

    def _resolve(self, hosts: Collection[str], side: str) -> tuple[list[MachineRef], list[str]]:
        result = self._resolver.resolve(set(hosts))
        if isinstance(result, QueryError):
            raise SourceUnavailableError("machine resolution", side, result)

        missing = unresolved_names(hosts, result)
        if missing:
            logger.warning("%s", ResolutionError(missing, side))
        return result, missing

    # ------------------------------------------------------------------
    # Private: per-category work
    # ------------------------------------------------------------------

    def _fetch(
        self,
        category: Category,
        side: str,
        machine_ids: frozenset[str],
        since: datetime,
    ) -> list[NormalizedObservation]:
        if not machine_ids:
            return []
        records = self._source.query(category, machine_ids, since)
        if isinstance(records, QueryError):
            raise SourceUnavailableError(category.name, side, records)
        observations = aggregate(category, records, machine_ids, since)
        logger.debug(
            "%s (%s): %d record(s) -> %d observation(s)",
            category.name, side, len(records), len(observations),
        )
        return observations

    def _collect(
        self,
        executor: ThreadPoolExecutor,
        futures: dict[Future, tuple[str, str]],
    ) -> tuple[dict[tuple[str, str], list[NormalizedObservation]], set[tuple[str, str]]]:
        """Gather fetch results; abort on source failure, isolate anything else."""
        results: dict[tuple[str, str], list[NormalizedObservation]] = {}
        failed: set[tuple[str, str]] = set()
        for future in as_completed(futures):
            name, side = futures[future]
            try:
                results[(name, side)] = future.result()
            except SourceUnavailableError:
                executor.shutdown(wait=False, cancel_futures=True)
                raise
            except Exception:
                logger.exception("%s (%s) aggregation failed", name, side)
                failed.add((name, side))
        return results, failed

    @staticmethod
    def _check_failures(enabled: list[Category], failed_sides: set[tuple[str, str]]) -> list[str]:
        """Categories with one failed side, raising when every side failed."""
        failed = []
        for category in enabled:
            sides = [BAD, GOOD] if category.diffed else [BAD]
            broken = [side for side in sides if (category.name, side) in failed_sides]
            if broken == sides:
                raise CategoryFailedError(category.name, broken)
            if broken:
                failed.append(category.name)
        return failed

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def run(self, config: DeltaConfig) -> DeltaReport:
        """Compute the ranked delta table for config.

        Raises:
            ConfigurationError: config is invalid (before any query runs).
            SourceUnavailableError: any resolution or category query failed.
            CategoryFailedError: every side of a category failed to aggregate.
        """
        config.validate()
        started = time.perf_counter()
        now = self._clock()
        good_since = now - config.good_window
        bad_since = now - config.bad_window

        good_refs, good_missing = self._resolve(config.good_hosts, GOOD)
        bad_refs, bad_missing = self._resolve(config.bad_hosts, BAD)
        good_ids = frozenset(ref.machine_id for ref in good_refs)
        bad_ids = frozenset(ref.machine_id for ref in bad_refs)

        overlap = good_ids & bad_ids
        if overlap:
            logger.warning("%d machine(s) are in both host groups: %s", len(overlap), sorted(overlap))

        enabled = [CATEGORIES[name] for name in sorted(config.enabled_categories)]
        logger.info(
            "Comparing %d bad against %d good machine(s) across %d categories",
            len(bad_ids), len(good_ids), len(enabled),
        )

        executor = ThreadPoolExecutor(max_workers=self._max_workers)
        try:
            futures: dict[Future, tuple[str, str]] = {}
            for category in enabled:
                futures[executor.submit(self._fetch, category, BAD, bad_ids, bad_since)] = (
                    category.name, BAD,
                )
                if category.diffed:
                    futures[executor.submit(self._fetch, category, GOOD, good_ids, good_since)] = (
                        category.name, GOOD,
                    )
            results, failed_sides = self._collect(executor, futures)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        failed = self._check_failures(enabled, failed_sides)

        deltas: list[NormalizedObservation] = []
        alerts: list[NormalizedObservation] = []
        for category in enabled:
            if category.name in failed:
                continue
            bad = results[(category.name, BAD)]
            if not category.diffed:
                alerts.extend(bad)
                continue
            category_delta = diff(bad, results[(category.name, GOOD)])
            logger.info("%s: %d new observation(s)", category.name, len(category_delta))
            deltas.extend(category_delta)

        machine_names = {ref.machine_id: ref.name for ref in bad_refs}
        rows = rank(unify(deltas, alerts, machine_names))

        return DeltaReport(
            rows=rows,
            enabled_categories=[category.name for category in enabled],
            unresolved_hosts=good_missing + bad_missing,
            failed_categories=failed,
            query_ms=(time.perf_counter() - started) * 1000,
        )


def run(
    config: DeltaConfig,
    source: EventSource,
    resolver: MachineIdentityResolver,
    *,
    max_workers: int = 8,
) -> DeltaReport:
    """Run one baseline delta analysis with a fresh engine."""
    return BaselineDeltaEngine(source, resolver, max_workers=max_workers).run(config)

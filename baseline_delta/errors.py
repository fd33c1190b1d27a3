"""Error taxonomy for baseline delta runs.

ConfigurationError, SourceUnavailableError and CategoryFailedError abort a
run. ResolutionError and MalformedRecordError are raised at narrow seams and
handled there: an unresolved host contributes nothing, a malformed record is
skipped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from baseline_delta.models import QueryError


class BaselineDeltaError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(BaselineDeltaError):
    """Host lists, lookbacks or enabled categories are missing or malformed."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


class ResolutionError(BaselineDeltaError):
    """One or more configured hostnames matched no machine identifier."""

    def __init__(self, hosts: list[str], side: str):
        self.hosts = hosts
        self.side = side
        super().__init__(f"{side} hosts not found: {', '.join(hosts)}")


class SourceUnavailableError(BaselineDeltaError):
    """The event store failed or timed out for a category fetch."""

    def __init__(self, category: str, side: str, error: QueryError):
        self.category = category
        self.side = side
        self.error = error
        super().__init__(f"{category} ({side}) query failed: {error.code}: {error.message}")


class MalformedRecordError(BaselineDeltaError):
    """A single raw event could not be normalized."""


class CategoryFailedError(BaselineDeltaError):
    """Every side of a category failed to aggregate, so it has no result at all."""

    def __init__(self, category: str, sides: list[str]):
        self.category = category
        self.sides = sides
        super().__init__(f"{category} failed on {' and '.join(sides)} side(s)")

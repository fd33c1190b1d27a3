"""Central KQL template registry, value quoting, and query builder.

Merges per-domain template modules into a single TEMPLATE_REGISTRY.
Provides kql_string_list() and kql_datetime() for safe literal rendering,
parse_timespan() for lookback strings, and build_query() for validated
parameter substitution.
"""

import re
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from baseline_delta.queries import alerts, devices, endpoint, network

# --------------------------------------------------------------------------
# Lookback parsing
# Lookbacks use KQL timespan notation so the same string works in ago().
# --------------------------------------------------------------------------

_TIMESPAN_RE = re.compile(r"^(\d+)([mhd])$")

_TIMESPAN_UNITS: dict[str, str] = {
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_timespan(value: str) -> timedelta:
    """Parse a KQL timespan literal such as '30d', '12h' or '90m'.

    Raises ValueError for anything else, including zero-length spans.
    """
    match = _TIMESPAN_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid timespan: '{value}'. Expected <n>m, <n>h or <n>d")
    amount = int(match.group(1))
    if amount == 0:
        raise ValueError(f"Invalid timespan: '{value}'. Must be greater than zero")
    return timedelta(**{_TIMESPAN_UNITS[match.group(2)]: amount})


# --------------------------------------------------------------------------
# Literal rendering
# --------------------------------------------------------------------------


def kql_string(value: str) -> str:
    """Render a single-quoted KQL string literal."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def kql_string_list(values: Iterable[str]) -> str:
    """Render a sorted, comma-separated list of KQL string literals.

    Example:
        kql_string_list({"b", "a"}) -> "'a','b'"
    """
    return ",".join(kql_string(v) for v in sorted(set(values)))


def kql_datetime(value: datetime) -> str:
    """Render a UTC ISO-8601 value for use inside datetime(...)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# --------------------------------------------------------------------------
# Per-template timeout configuration (seconds)
# Lookups: 60s. Event table scans over long lookbacks: 180s.
# --------------------------------------------------------------------------

TEMPLATE_TIMEOUTS: dict[str, int] = {
    "resolve_devices": 60,
    "alerts": 60,
    "process_creation": 180,
    "file_creation": 180,
    "image_loads": 180,
    "registry_event": 180,
    "logon": 180,
    "powershell_command": 180,
    "network_communication": 180,
    "raw_ip_communication": 180,
    "connected_networks": 180,
}

DEFAULT_TIMEOUT = 60

# --------------------------------------------------------------------------
# Template registry -- merged from all domain modules
# --------------------------------------------------------------------------

TEMPLATE_REGISTRY: dict[str, str] = {
    **devices.TEMPLATES,
    **endpoint.TEMPLATES,
    **network.TEMPLATES,
    **alerts.TEMPLATES,
}


def build_query(template_name: str, **params: object) -> str:
    """Build a KQL query from a named template with parameter substitution.

    Validates that the template exists and all required placeholders are provided.
    Raises ValueError for unknown templates or missing required parameters.

    Args:
        template_name: Key in TEMPLATE_REGISTRY.
        **params: Named parameters matching {placeholder} tokens in the template.

    Returns:
        The rendered KQL query string.
    """
    if template_name not in TEMPLATE_REGISTRY:
        raise ValueError(
            f"Unknown template: '{template_name}'. "
            f"Available: {sorted(TEMPLATE_REGISTRY.keys())}"
        )

    template = TEMPLATE_REGISTRY[template_name]

    placeholders = set(re.findall(r"\{(\w+)\}", template))
    missing = placeholders - set(params.keys())
    if missing:
        raise ValueError(
            f"Missing required parameters for '{template_name}': {sorted(missing)}"
        )

    return template.format(**params)

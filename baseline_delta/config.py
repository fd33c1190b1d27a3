"""Configuration module with layered validation and connectivity checks.

Provides the Settings dataclass (workspace access and tuning), the immutable
DeltaConfig passed into each run (host groups, lookbacks, enabled categories),
environment variable validation, and workspace connectivity testing.
"""

import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta

from azure.identity import DefaultAzureCredential
from azure.monitor.query import LogsQueryClient, LogsQueryStatus
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from baseline_delta.categories import CATEGORY_NAMES
from baseline_delta.errors import ConfigurationError
from baseline_delta.queries import parse_timespan


@dataclass
class Settings:
    """Workspace access loaded from environment variables."""

    # Sentinel / Log Analytics workspace holding the Defender tables
    sentinel_workspace_id: str = ""

    # Auth (optional -- DefaultAzureCredential handles this via az login)
    azure_tenant_id: str = ""
    azure_client_id: str = ""
    azure_client_secret: str = ""

    # Tuning knobs
    max_workers: int = 8
    resolve_lookback: str = "30d"


@dataclass(frozen=True)
class DeltaConfig:
    """Immutable run configuration.

    Lookbacks are KQL timespan strings ("30d", "12h"); see parse_timespan().
    """

    good_hosts: tuple[str, ...]
    bad_hosts: tuple[str, ...]
    good_lookback: str = "30d"
    bad_lookback: str = "7d"
    enabled_categories: frozenset[str] = field(default_factory=lambda: frozenset(CATEGORY_NAMES))

    @property
    def good_window(self) -> timedelta:
        return parse_timespan(self.good_lookback)

    @property
    def bad_window(self) -> timedelta:
        return parse_timespan(self.bad_lookback)

    def validate(self) -> None:
        """Check every field and raise ConfigurationError listing all problems.

        Reports every problem at once (not fail-fast) so the operator can fix
        them in one pass.
        """
        problems: list[str] = []
        if not [h for h in self.good_hosts if h.strip()]:
            problems.append("No good hosts configured")
        if not [h for h in self.bad_hosts if h.strip()]:
            problems.append("No bad hosts configured")
        for label, value in (("good", self.good_lookback), ("bad", self.bad_lookback)):
            try:
                parse_timespan(value)
            except ValueError as e:
                problems.append(f"Invalid {label} lookback: {e}")
        unknown = sorted(set(self.enabled_categories) - set(CATEGORY_NAMES))
        if unknown:
            problems.append(f"Unknown categories: {unknown}. Valid: {CATEGORY_NAMES}")
        if not self.enabled_categories:
            problems.append("No categories enabled")
        if problems:
            raise ConfigurationError(problems)


REQUIRED_VARS: dict[str, str] = {
    "SENTINEL_WORKSPACE_ID": "Log Analytics workspace GUID",
    "GOOD_HOSTS": "Comma-separated known good hostnames",
    "BAD_HOSTS": "Comma-separated suspected bad hostnames",
}

OPTIONAL_VARS: dict[str, str] = {
    "GOOD_LOOKBACK": "Baseline lookback, e.g. 30d (default 30d)",
    "BAD_LOOKBACK": "Suspect lookback, e.g. 7d (default 7d)",
    "ENABLED_CATEGORIES": "Comma-separated categories (default all)",
    "MAX_WORKERS": "Concurrent category queries (default 8)",
}


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_settings() -> Settings:
    """Load and return settings from .env file."""
    load_dotenv()
    return Settings(
        sentinel_workspace_id=os.getenv("SENTINEL_WORKSPACE_ID", ""),
        azure_tenant_id=os.getenv("AZURE_TENANT_ID", ""),
        azure_client_id=os.getenv("AZURE_CLIENT_ID", ""),
        azure_client_secret=os.getenv("AZURE_CLIENT_SECRET", ""),
        max_workers=int(os.getenv("MAX_WORKERS", "8") or 8),
        resolve_lookback=os.getenv("RESOLVE_LOOKBACK", "30d"),
    )


def load_delta_config() -> DeltaConfig:
    """Load the run configuration from .env and validate it.

    Raises:
        ConfigurationError: any host list, lookback or category is invalid.
    """
    load_dotenv()
    categories = os.getenv("ENABLED_CATEGORIES", "")
    config = DeltaConfig(
        good_hosts=_split_list(os.getenv("GOOD_HOSTS", "")),
        bad_hosts=_split_list(os.getenv("BAD_HOSTS", "")),
        good_lookback=os.getenv("GOOD_LOOKBACK", "30d"),
        bad_lookback=os.getenv("BAD_LOOKBACK", "7d"),
        enabled_categories=(
            frozenset(_split_list(categories)) if categories else frozenset(CATEGORY_NAMES)
        ),
    )
    config.validate()
    return config


def validate_env_vars() -> tuple[list[str], list[str]]:
    """Check all required env vars are present. Returns (passed, failed) lists.

    Shows ALL missing vars at once (not fail-fast) so the operator can fix
    them in one pass.
    """
    load_dotenv()
    passed: list[str] = []
    failed: list[str] = []
    for var, description in REQUIRED_VARS.items():
        value = os.getenv(var, "")
        if value:
            passed.append(var)
        else:
            failed.append(f"{var} ({description})")
    return passed, failed


def test_sentinel_connectivity(settings: Settings) -> tuple[bool, str]:
    """Test workspace connectivity. Returns (success, message).

    Runs a minimal KQL query against DeviceInfo to verify that the workspace is
    reachable and that Defender device tables are present.
    """
    try:
        credential = DefaultAzureCredential()
        client = LogsQueryClient(credential)
        response = client.query_workspace(
            workspace_id=settings.sentinel_workspace_id,
            query="DeviceInfo | take 1",
            timespan=timedelta(days=1),
        )
        if response.status == LogsQueryStatus.SUCCESS:
            return True, "Workspace connected"
        elif response.status == LogsQueryStatus.PARTIAL:
            return True, "Workspace connected (partial results)"
        else:
            return False, "Workspace query returned no data"

    except Exception as e:
        error_msg = str(e)
        if "AuthenticationError" in error_msg or "401" in error_msg:
            return False, "Workspace auth failed -- run 'az login' or check service principal"
        if "ResourceNotFound" in error_msg or "404" in error_msg:
            return False, "Workspace not found -- check SENTINEL_WORKSPACE_ID"
        if "DeviceInfo" in error_msg:
            return False, "DeviceInfo table missing -- is the Defender XDR connector enabled?"
        return False, f"Workspace error: {error_msg[:200]}"


# Tell pytest this is not a test function
test_sentinel_connectivity.__test__ = False  # type: ignore[attr-defined]


def validate_and_display() -> int:
    """Orchestrate layered validation and display results as a rich table.

    Layer 1: Check all required env vars are present.
    Layer 2: Validate the run configuration (hosts, lookbacks, categories).
    Layer 3: Test live workspace connectivity (only if layers 1 and 2 pass).

    Returns the process exit code.
    """
    console = Console()
    table = Table(title="Configuration Validation")
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Details")

    passed, failed = validate_env_vars()

    for var in passed:
        table.add_row(f"Env: {var}", "[green]PASS[/green]", "Set")

    for var_desc in failed:
        table.add_row(f"Env: {var_desc.split(' (')[0]}", "[red]FAIL[/red]", f"Missing: {var_desc}")

    if failed:
        console.print(table)
        console.print(
            f"\n[red]Validation failed:[/red] {len(failed)} required env var(s) missing. "
            "Connectivity checks skipped."
        )
        return 1

    try:
        config = load_delta_config()
    except ConfigurationError as e:
        for problem in e.problems:
            table.add_row("Run config", "[red]FAIL[/red]", problem)
        console.print(table)
        console.print("\n[red]Validation failed:[/red] Run configuration is invalid.")
        return 1

    table.add_row(
        "Run config",
        "[green]PASS[/green]",
        f"{len(config.good_hosts)} good / {len(config.bad_hosts)} bad hosts, "
        f"{len(config.enabled_categories)} categories",
    )

    settings = load_settings()
    sentinel_ok, sentinel_msg = test_sentinel_connectivity(settings)
    table.add_row(
        "Workspace",
        "[green]PASS[/green]" if sentinel_ok else "[red]FAIL[/red]",
        sentinel_msg,
    )

    console.print(table)

    if not sentinel_ok:
        console.print("\n[red]Validation failed:[/red] Workspace connectivity check failed.")
        return 1

    console.print("\n[green]All checks passed.[/green]")
    return 0

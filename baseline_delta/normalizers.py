"""Entity normalization rules for each telemetry category.

Each function collapses one known source of irrelevant variance (random file
names, per-user SIDs, GUID-named cache folders, subdomains) so that the same
underlying thing groups under one entity across machines. All functions are
pure and operate on single field values.
"""

import ipaddress
import json
import re
from urllib.parse import urlsplit

from baseline_delta.errors import MalformedRecordError

# --------------------------------------------------------------------------
# Process Creation
# Security-product patch and temp executables embed versions or random hex.
# --------------------------------------------------------------------------

_PROCESS_REWRITES: list[tuple[re.Pattern, str]] = [
    (
        re.compile(
            r"\\SoftwareDistribution\\Download\\Install\\AM_Delta(_Patch)?_[\d.]+\.exe$",
            re.IGNORECASE,
        ),
        "AM_Delta_Patch_Generic.exe",
    ),
    (
        re.compile(
            r"\\Windows Defender Advanced Threat Protection\\.*\\[0-9a-f]{8,}\.exe$",
            re.IGNORECASE,
        ),
        "MDATP_Temp_Generic.exe",
    ),
]

# --------------------------------------------------------------------------
# PowerShell Command / File Creation
# --------------------------------------------------------------------------

_GUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

_POLICY_TEST_PAYLOAD = re.compile(r"__PSScriptPolicyTest_", re.IGNORECASE)
_GUID_SCRIPT_PAYLOAD = re.compile(_GUID + r"\.ps1", re.IGNORECASE)

_POLICY_TEST_FILE = re.compile(r"^__PSScriptPolicyTest_[a-z0-9]{8}\.[a-z0-9]{3}\.ps1$", re.IGNORECASE)
_GUID_SCRIPT_FILE = re.compile(r"^" + _GUID + r"\.ps1$", re.IGNORECASE)

POLICY_TEST_PLACEHOLDER = "__PSScriptPolicyTest_Generic.ps1"
GUID_SCRIPT_PLACEHOLDER = "GUID_Generic.ps1"

OFFICE_TEMP_EXTENSIONS = (
    ".tmp", ".doc", ".docx", ".docm", ".xls", ".xlsx", ".xlsm", ".ppt", ".pptx", ".pptm",
)

# --------------------------------------------------------------------------
# Logon
# Session accounts of the font driver host and desktop window manager.
# --------------------------------------------------------------------------

SYNTHETIC_LOGON_DOMAINS = frozenset({"font driver host", "window manager"})

# --------------------------------------------------------------------------
# Registry / Image Loads
# --------------------------------------------------------------------------

_HKCU_SID = re.compile(r"^(HKEY_CURRENT_USER\\)S-1-[\d-]+", re.IGNORECASE)
SID_PLACEHOLDER = "SID"

_NATIVE_IMAGE_GUID = re.compile(
    r"(\\assembly\\NativeImages_[^\\]+\\[^\\]+\\)[0-9a-f]{32}(?=\\|$)",
    re.IGNORECASE,
)
GUID_FOLDER_PLACEHOLDER = "GUID"

# --------------------------------------------------------------------------
# Raw IP
# --------------------------------------------------------------------------

PEER_SYNC_PORT = 7680


def domain_rollup(url: str) -> str:
    """Approximate the registrable domain of a remote URL.

    Examples:
        domain_rollup("sub.example.com") -> "example.com"
        domain_rollup("server1") -> "server1"
        domain_rollup("10.1.2.3") -> "10.1.2.3"
    """
    host = url
    if "://" in url:
        host = urlsplit(url).hostname or url
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    labels = host.split(".")
    if len(labels) == 1:
        return labels[0]
    return ".".join(labels[-2:])


def normalize_process_name(file_name: str, folder_path: str) -> str:
    """Return file_name, or a fixed placeholder for dynamically named executables."""
    for pattern, placeholder in _PROCESS_REWRITES:
        if pattern.search(folder_path or ""):
            return placeholder
    return file_name


def is_powershell_noise(command_payload: str, initiating_process: str) -> bool:
    """True for execution-policy self tests and SCCM GUID-named script runs."""
    process = (initiating_process or "").lower()
    payload = command_payload or ""
    if process == "monitoringhost.exe" and _POLICY_TEST_PAYLOAD.search(payload):
        return True
    if process == "powershell.exe" and _GUID_SCRIPT_PAYLOAD.search(payload):
        return True
    return False


def parse_powershell_command(additional_fields) -> str:
    """Extract the Command field from a PowerShellCommand event payload.

    Raises:
        MalformedRecordError: payload is not a JSON object or has no Command.
    """
    payload = additional_fields
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedRecordError(f"Unparsable PowerShell payload: {e}") from e
    if not isinstance(payload, dict) or not payload.get("Command"):
        raise MalformedRecordError("PowerShell payload has no Command")
    return str(payload["Command"])


def is_office_temp_file(file_name: str) -> bool:
    name = (file_name or "").lower()
    return name.startswith("~") and name.endswith(OFFICE_TEMP_EXTENSIONS)


def normalize_created_file_name(file_name: str) -> str:
    """Collapse randomly named PowerShell script files to placeholders."""
    if _POLICY_TEST_FILE.match(file_name):
        return POLICY_TEST_PLACEHOLDER
    if _GUID_SCRIPT_FILE.match(file_name):
        return GUID_SCRIPT_PLACEHOLDER
    return file_name


def is_synthetic_logon(account_domain: str) -> bool:
    return (account_domain or "").strip().lower() in SYNTHETIC_LOGON_DOMAINS


def logon_entity(account_domain: str, account_name: str) -> str:
    if account_domain:
        return f"{account_domain}\\{account_name}"
    return account_name


def normalize_registry_key(registry_key: str) -> str:
    """Replace the per-user SID under HKEY_CURRENT_USER with a fixed segment.

    Example:
        HKEY_CURRENT_USER\\S-1-5-21-1-2-3-1001\\Software\\X
        -> HKEY_CURRENT_USER\\SID\\Software\\X
    """
    return _HKCU_SID.sub(lambda m: m.group(1) + SID_PLACEHOLDER, registry_key)


def parse_connected_networks(connected_networks) -> list[dict]:
    """Parse the ConnectedNetworks column into a non-empty list of dicts.

    Raises:
        MalformedRecordError: value is not a JSON list of network objects.
    """
    networks = connected_networks
    if isinstance(networks, str):
        try:
            networks = json.loads(networks)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedRecordError(f"Unparsable ConnectedNetworks: {e}") from e
    if not isinstance(networks, list) or not networks:
        raise MalformedRecordError("ConnectedNetworks is empty")
    if not isinstance(networks[0], dict) or not networks[0].get("Name"):
        raise MalformedRecordError("First connected network has no Name")
    return networks


def normalize_image_folder(folder_path: str) -> str:
    """Replace GUID-named native image cache folders with a fixed segment."""
    return _NATIVE_IMAGE_GUID.sub(lambda m: m.group(1) + GUID_FOLDER_PLACEHOLDER, folder_path)


def normalize_ip(remote_ip: str) -> str:
    """Map IPv4-mapped IPv6 addresses (::ffff:a.b.c.d) to plain IPv4."""
    try:
        address = ipaddress.ip_address(remote_ip)
    except ValueError:
        return remote_ip
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return str(address.ipv4_mapped)
    return str(address)


def is_peer_sync_only(ports) -> bool:
    """True when the only remote port observed is Delivery Optimization (7680)."""
    return {int(p) for p in ports if p not in (None, "")} == {PEER_SYNC_PORT}

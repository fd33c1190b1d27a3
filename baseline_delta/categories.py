"""Telemetry category adapters.

Each Category turns raw advanced-hunting rows for one event table into
(entity, supporting values) pairs. The aggregator is category-agnostic and
only calls the hooks defined on Category:

    collapse(records)  -> optional first grouping stage (exact raw value)
    exclude(record)    -> noise suppression
    normalize(record)  -> (entity, values), may raise MalformedRecordError

CATEGORIES maps the DataType tag used in configuration and output to the
adapter instance.
"""

import json
from collections.abc import Iterable

from baseline_delta import normalizers

DEFAULT_SAMPLE_LIMIT = 20


class Category:
    """Base adapter. Subclasses set name/template and override normalize()."""

    name: str = ""
    template: str = ""
    sample_limit: int = DEFAULT_SAMPLE_LIMIT
    # Alerts are reported as-is for bad machines and never diffed
    diffed: bool = True
    # Additional values are JSON documents, decoded in the output column
    json_values: bool = False

    def collapse(self, records: list[dict]) -> list[dict]:
        return records

    def exclude(self, record: dict) -> bool:
        return False

    def normalize(self, record: dict) -> tuple[str, list[str]]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


def _present(*values) -> list[str]:
    return [str(v) for v in values if v not in (None, "")]


def collapse_by(records: Iterable[dict], key_field: str, set_fields: dict[str, str]) -> list[dict]:
    """Collapse rows to one per (key_field value, DeviceId).

    The collapsed row keeps the latest Timestamp, sums Count (1 per raw row
    when absent) and gathers the distinct values of each source column in
    set_fields into a list stored under the mapped name.
    """
    groups: dict[tuple, dict] = {}
    for record in records:
        group_key = (record.get(key_field), record.get("DeviceId"))
        group = groups.get(group_key)
        if group is None:
            group = {
                key_field: record.get(key_field),
                "DeviceId": record.get("DeviceId"),
                "Timestamp": record["Timestamp"],
                "Count": 0,
            }
            for target in set_fields.values():
                group[target] = []
            groups[group_key] = group
        group["Timestamp"] = max(group["Timestamp"], record["Timestamp"])
        group["Count"] += int(record.get("Count") or 1)
        for source, target in set_fields.items():
            value = record.get(source)
            if value not in (None, "") and value not in group[target]:
                group[target].append(value)
    return list(groups.values())


class NetworkCommunication(Category):
    """Remote URLs rolled up to the registrable domain."""

    name = "Network Communication"
    template = "network_communication"
    sample_limit = 5

    def collapse(self, records):
        return collapse_by((r for r in records if r.get("RemoteUrl")), "RemoteUrl", {})

    def exclude(self, record):
        return not record.get("RemoteUrl")

    def normalize(self, record):
        url = str(record["RemoteUrl"])
        return normalizers.domain_rollup(url), [url]


class ProcessCreation(Category):
    name = "Process Creation"
    template = "process_creation"

    def normalize(self, record):
        file_name = str(record.get("FileName") or "")
        folder_path = str(record.get("FolderPath") or "")
        return normalizers.normalize_process_name(file_name, folder_path), _present(folder_path)


class PowerShellCommand(Category):
    name = "PowerShell Command"
    template = "powershell_command"

    def exclude(self, record):
        payload = record.get("AdditionalFields")
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        return normalizers.is_powershell_noise(
            str(payload or ""),
            str(record.get("InitiatingProcessFileName") or ""),
        )

    def normalize(self, record):
        command = normalizers.parse_powershell_command(record.get("AdditionalFields"))
        return command, _present(record.get("InitiatingProcessFileName"))


class FileCreation(Category):
    name = "File Creation"
    template = "file_creation"

    def exclude(self, record):
        return normalizers.is_office_temp_file(str(record.get("FileName") or ""))

    def normalize(self, record):
        file_name = normalizers.normalize_created_file_name(str(record.get("FileName") or ""))
        return file_name, _present(record.get("FolderPath"))


class Logon(Category):
    name = "Logon"
    template = "logon"

    def exclude(self, record):
        return normalizers.is_synthetic_logon(str(record.get("AccountDomain") or ""))

    def normalize(self, record):
        entity = normalizers.logon_entity(
            str(record.get("AccountDomain") or ""),
            str(record.get("AccountName") or ""),
        )
        return entity, _present(record.get("LogonType"))


class RegistryEvent(Category):
    name = "Registry Event"
    template = "registry_event"

    def normalize(self, record):
        key = normalizers.normalize_registry_key(str(record.get("RegistryKey") or ""))
        return key, _present(record.get("RegistryValueData"))


class ConnectedNetworks(Category):
    """Network profile names reported by the device network inventory."""

    name = "Connected Networks"
    template = "connected_networks"
    json_values = True

    def normalize(self, record):
        networks = normalizers.parse_connected_networks(record.get("ConnectedNetworks"))
        return str(networks[0]["Name"]), [json.dumps(network, sort_keys=True) for network in networks]


class ImageLoads(Category):
    name = "Image Loads"
    template = "image_loads"

    def normalize(self, record):
        folder = normalizers.normalize_image_folder(str(record.get("FolderPath") or ""))
        return folder, _present(record.get("InitiatingProcessFileName"))


class RawIpCommunication(Category):
    """Connections to IPs that never resolved to a URL.

    First stage collapses per (normalized IP, DeviceId) so the URL and port
    exclusions see every connection made to that IP.
    """

    name = "Raw IP Communication"
    template = "raw_ip_communication"

    def collapse(self, records):
        prepared = [
            {**r, "RemoteIP": normalizers.normalize_ip(str(r["RemoteIP"]))}
            for r in records
            if r.get("RemoteIP")
        ]
        return collapse_by(
            prepared,
            "RemoteIP",
            {
                "RemotePort": "Ports",
                "RemoteUrl": "Urls",
                "InitiatingProcessFileName": "Processes",
            },
        )

    def exclude(self, record):
        if record.get("Urls"):
            return True
        return normalizers.is_peer_sync_only(record.get("Ports", []))

    def normalize(self, record):
        return str(record["RemoteIP"]), _present(*record.get("Processes", []))


class Alert(Category):
    name = "Alert"
    template = "alerts"
    diffed = False

    def normalize(self, record):
        evidence = record.get("FileName") or record.get("RemoteUrl")
        return str(record.get("Title") or ""), _present(evidence)


CATEGORIES: dict[str, Category] = {
    category.name: category
    for category in (
        Alert(),
        ConnectedNetworks(),
        FileCreation(),
        ImageLoads(),
        Logon(),
        NetworkCommunication(),
        ProcessCreation(),
        PowerShellCommand(),
        RegistryEvent(),
        RawIpCommunication(),
    )
}

CATEGORY_NAMES: list[str] = sorted(CATEGORIES)


def get_category(name: str) -> Category:
    """Look up a category adapter by its DataType tag.

    Raises KeyError with the available names for unknown categories.
    """
    try:
        return CATEGORIES[name]
    except KeyError:
        raise KeyError(f"Unknown category: '{name}'. Available: {CATEGORY_NAMES}") from None

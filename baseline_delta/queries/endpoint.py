"""KQL templates for on-device activity: processes, files, image loads,
registry, logons and PowerShell commands.

Every template takes {since} (ISO datetime literal) and {device_ids} (quoted
KQL list) and projects only the columns the category adapter reads.
"""

TEMPLATES = {
    "process_creation": """
        DeviceProcessEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | project Timestamp, DeviceId, FileName, FolderPath
    """,
    "file_creation": """
        DeviceFileEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where ActionType == "FileCreated"
        | project Timestamp, DeviceId, FileName, FolderPath
    """,
    "image_loads": """
        DeviceImageLoadEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | project Timestamp, DeviceId, FolderPath, InitiatingProcessFileName
    """,
    "registry_event": """
        DeviceRegistryEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where isnotempty(RegistryKey)
        | project Timestamp, DeviceId, RegistryKey, RegistryValueData
    """,
    "logon": """
        DeviceLogonEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where isnotempty(AccountName)
        | project Timestamp, DeviceId, AccountDomain, AccountName, LogonType
    """,
    "powershell_command": """
        DeviceEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where ActionType == "PowerShellCommand"
        | project Timestamp, DeviceId, AdditionalFields, InitiatingProcessFileName
    """,
}

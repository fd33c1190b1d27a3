"""KQL templates for machine identity resolution.

DeviceInfo reports one row per device every few minutes; distinct collapses
them to the stable (DeviceId, DeviceName) pairs. DeviceName holds the FQDN in
lower case, so matching uses the case-insensitive in~ operator.
"""

TEMPLATES = {
    "resolve_devices": """
        DeviceInfo
        | where Timestamp > ago({lookback})
        | where DeviceName in~ ({device_names})
        | distinct DeviceId, DeviceName
    """,
}

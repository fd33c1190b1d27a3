"""KQL templates for network telemetry.

network_communication and connected_networks pre-summarize per exact value
and device server-side (Count column); the client-side collapse stage sums
those counts, so the result is the same as summarizing raw rows.
raw_ip_communication stays unsummarized because the port and URL exclusions
need every connection to an IP.
"""

TEMPLATES = {
    "network_communication": """
        DeviceNetworkEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where isnotempty(RemoteUrl)
        | summarize Timestamp=max(Timestamp), Count=count() by RemoteUrl, DeviceId
    """,
    "raw_ip_communication": """
        DeviceNetworkEvents
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where isnotempty(RemoteIP)
        | project Timestamp, DeviceId, RemoteIP, RemotePort, RemoteUrl,
                  InitiatingProcessFileName
    """,
    "connected_networks": """
        DeviceNetworkInfo
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | where isnotempty(ConnectedNetworks)
        | summarize Timestamp=max(Timestamp), Count=count()
            by DeviceId, ConnectedNetworks=tostring(ConnectedNetworks)
    """,
}

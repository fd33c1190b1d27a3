"""KQL templates for alert evidence.

AlertEvidence carries one row per evidence entity; Title is repeated on each
row so no join against AlertInfo is needed.
"""

TEMPLATES = {
    "alerts": """
        AlertEvidence
        | where Timestamp > datetime({since})
        | where DeviceId in ({device_ids})
        | project Timestamp, DeviceId, AlertId, Title, FileName, RemoteUrl
    """,
}

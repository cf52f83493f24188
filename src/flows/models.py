"""
Flow record model for the time-series flow store.
"""

from dataclasses import asdict, dataclass
from datetime import datetime

# Antrea flow types
FLOW_TYPE_INTRA_NODE = 1
FLOW_TYPE_INTER_NODE = 2
FLOW_TYPE_TO_EXTERNAL = 3

FLOW_COLUMNS = [
    "flow_start_seconds",
    "flow_end_seconds",
    "source_ip",
    "source_transport_port",
    "destination_ip",
    "destination_transport_port",
    "protocol_identifier",
    "source_pod_namespace",
    "source_pod_name",
    "source_pod_labels",
    "destination_pod_namespace",
    "destination_pod_name",
    "destination_pod_labels",
    "destination_service_port_name",
    "flow_type",
    "throughput",
]


@dataclass
class FlowRecord:
    """One flow observation. Pod labels are JSON-encoded objects"""

    flow_start_seconds: datetime
    flow_end_seconds: datetime
    source_ip: str
    source_transport_port: int
    destination_ip: str
    destination_transport_port: int
    protocol_identifier: int
    throughput: int
    source_pod_namespace: str = ""
    source_pod_name: str = ""
    source_pod_labels: str = ""
    destination_pod_namespace: str = ""
    destination_pod_name: str = ""
    destination_pod_labels: str = ""
    destination_service_port_name: str = ""
    flow_type: int = FLOW_TYPE_INTER_NODE

    def to_db_dict(self) -> dict:
        """Convert to dict for database insertion"""
        return asdict(self)

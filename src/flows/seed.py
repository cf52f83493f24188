"""
Demo flow records for seeding the flow store.

A single pod-to-pod connection whose throughput holds steady around 4 Gbps
with a handful of spikes and drops, one record per minute.
"""

from datetime import datetime, timedelta

from .models import FLOW_TYPE_TO_EXTERNAL, FlowRecord

DEMO_FLOW_START = datetime(2022, 8, 11, 6, 26, 54)
DEMO_FIRST_FLOW_END = datetime(2022, 8, 11, 7, 26, 54)

# fmt: off
DEMO_THROUGHPUTS = [
    4007380032, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4006917952, 4004471308, 4005277827, 4005486294,
    4005435632, 4004465468, 4005336400, 4006201196, 4005546675,
    4005703059, 4004631769, 4006915708, 4004834307, 4005943619,
    4005760579, 4006503308, 4006580124, 4006524102, 4005521494,
    4004706899, 4006355667, 4006373555, 4005542681, 4006120227,
    4003599734, 4005561673, 4005682768, 10004969097, 4005517222,
    1005533779, 4005370905, 4005589772, 4005328806, 4004926121,
    4004496934, 4005615814, 4005798822, 50007861276, 4005396697,
    4005148294, 4006448435, 4005355097, 4004335558, 4005389043,
    4004839744, 4005556492, 4005796992, 4004497248, 4005988134,
    205881027, 4004638304, 4006191046, 4004723289, 4006172825,
    4005561235, 4005658636, 4006005936, 3260272025, 4005589772,
]
# fmt: on


def build_demo_flows(throughputs: list[int] | None = None) -> list[FlowRecord]:
    """Build one FlowRecord per throughput sample, a minute apart"""
    labels = '{"test_key": "test_value"}'
    records = []
    for idx, throughput in enumerate(throughputs or DEMO_THROUGHPUTS):
        records.append(
            FlowRecord(
                flow_start_seconds=DEMO_FLOW_START,
                flow_end_seconds=DEMO_FIRST_FLOW_END + timedelta(minutes=idx),
                source_ip="10.10.1.25",
                source_transport_port=58076,
                destination_ip="10.10.1.33",
                destination_transport_port=5201,
                protocol_identifier=6,
                throughput=throughput,
                source_pod_namespace="test_namespace",
                source_pod_name="test_podName",
                source_pod_labels=labels,
                destination_pod_namespace="test_namespace",
                destination_pod_name="test_podName",
                destination_pod_labels=labels,
                destination_service_port_name="test_serviceportname",
                flow_type=FLOW_TYPE_TO_EXTERNAL,
            )
        )
    return records

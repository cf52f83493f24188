"""
Detection job body.

Filters the flow records by the job's parameters, folds them into one
throughput series per aggregation key, runs the detection kernel on every
series and emits positional result rows in the aggregation's layout.
"""

import json
from datetime import datetime

import pandas as pd
import structlog

from src.flows.models import FLOW_TYPE_TO_EXTERNAL

from .layouts import layout_for
from .methods import AnomalyDetectionMethod
from .models import Aggregation, Job, JobParameters

logger = structlog.get_logger(__name__)

TIME_COLUMN = "flow_end_seconds"


def run_detection(job: Job, flows: pd.DataFrame, method: AnomalyDetectionMethod) -> list[list]:
    """Run the job's kernel over `flows`

    Args:
        job: Job whose aggregation and parameters select and group the flows
        flows: Flow records already restricted to the job's time window
        method: Kernel matching the job's algorithm

    Returns:
        Result rows, each as wide as the aggregation's layout
    """
    layout = layout_for(job.aggregation)
    flows = _drop_ignored_namespaces(flows, job.parameters.ns_ignore_list)
    if flows.empty:
        logger.info("No flows in job time window", job_id=job.id)
        return []

    frame, keys, emitted = _prepare(job.aggregation, job.parameters, flows)
    if frame.empty:
        logger.info("No flows matched job filters", job_id=job.id)
        return []

    series = (
        frame.groupby(keys + [TIME_COLUMN], as_index=False)["throughput"]
        .sum()
        .sort_values(TIME_COLUMN, kind="stable")
    )

    rows = []
    for _, group in series.groupby(keys, sort=True):
        result = method.detect(group["throughput"])
        for record, calc, anomaly in zip(
            group.to_dict("records"), result.algo_calc, result.anomaly, strict=True
        ):
            rows.append(
                [
                    job.id,
                    *(_plain(record[column]) for column in emitted),
                    float(record["throughput"]),
                    layout.agg_type,
                    method.name,
                    float(calc),
                    bool(anomaly),
                ]
            )

    logger.info(
        "Detection finished",
        job_id=job.id,
        series=series.groupby(keys).ngroups,
        rows=len(rows),
        anomalies=sum(1 for row in rows if row[layout.anomaly_index]),
    )
    return rows


def _prepare(
    aggregation: Aggregation, parameters: JobParameters, flows: pd.DataFrame
) -> tuple[pd.DataFrame, list[str], list[str]]:
    """Select the flows of an aggregation

    Returns:
        (frame, grouping keys, columns emitted between id and throughput)
    """
    if aggregation is Aggregation.NONE:
        keys = [
            "source_ip",
            "source_transport_port",
            "destination_ip",
            "destination_transport_port",
            "protocol_identifier",
            "flow_start_seconds",
        ]
        emitted = [
            "source_ip",
            "source_transport_port",
            "destination_ip",
            "destination_transport_port",
            "flow_start_seconds",
            TIME_COLUMN,
        ]
        return flows, keys, emitted

    if aggregation is Aggregation.POD_BY_NAME:
        frame = _pod_frame(
            flows,
            lambda side: flows[f"{side}_pod_name"] == parameters.pod_name,
            "pod_name",
            parameters.pod_namespace,
        )
        keys = ["pod_namespace", "pod_name", "direction"]
        return frame, keys, keys + [TIME_COLUMN]

    if aggregation is Aggregation.POD_BY_LABEL:
        key, value = parameters.pod_label.split(":", 1)
        frame = _pod_frame(
            flows,
            lambda side: flows[f"{side}_pod_labels"]
            .map(lambda raw: _has_label(raw, key, value))
            .astype(bool),
            "pod_labels",
            parameters.pod_namespace,
        )
        # Both directions fold into one series per label set
        keys = ["pod_namespace", "pod_labels"]
        return frame, keys, keys + [TIME_COLUMN]

    if aggregation is Aggregation.SERVICE:
        frame = flows[flows["destination_service_port_name"] == parameters.service_port_name]
        keys = ["destination_service_port_name"]
        return frame, keys, keys + [TIME_COLUMN]

    if aggregation is Aggregation.EXTERNAL:
        frame = flows[
            (flows["destination_ip"] == parameters.external_ip)
            & (flows["flow_type"] == FLOW_TYPE_TO_EXTERNAL)
        ]
        keys = ["destination_ip"]
        return frame, keys, keys + [TIME_COLUMN]

    raise ValueError(f"Unsupported aggregation '{aggregation}'")


def _pod_frame(flows: pd.DataFrame, match, attribute: str, namespace: str | None) -> pd.DataFrame:
    """Stack outbound (source side) and inbound (destination side) pod flows"""
    sides = []
    for side, direction in (("source", "outbound"), ("destination", "inbound")):
        selected = flows[match(side)]
        sides.append(
            pd.DataFrame(
                {
                    "pod_namespace": selected[f"{side}_pod_namespace"],
                    attribute: selected[f"{side}_{attribute}"],
                    "direction": direction,
                    TIME_COLUMN: selected[TIME_COLUMN],
                    "throughput": selected["throughput"],
                }
            )
        )
    frame = pd.concat(sides, ignore_index=True)
    if namespace:
        frame = frame[frame["pod_namespace"] == namespace]
    return frame


def _drop_ignored_namespaces(flows: pd.DataFrame, ignored: tuple[str, ...]) -> pd.DataFrame:
    if not ignored or flows.empty:
        return flows
    keep = ~(
        flows["source_pod_namespace"].isin(ignored)
        | flows["destination_pod_namespace"].isin(ignored)
    )
    return flows[keep]


def _has_label(raw: str, key: str, value: str) -> bool:
    if not raw:
        return False
    try:
        labels = json.loads(raw)
    except (TypeError, ValueError):
        return False
    return isinstance(labels, dict) and str(labels.get(key)) == value


def _plain(value):
    """Convert pandas/numpy scalars into JSON-friendly Python values"""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    if hasattr(value, "item"):
        return value.item()
    return value

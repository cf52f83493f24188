"""
Request validation for job submission.

The supported parameter shapes form a closed set: each aggregation names the
filters it requires and the optional ones it tolerates. Anything else is
rejected with InvalidParameters before any side effect.
"""

import ipaddress
import re
from dataclasses import replace
from datetime import UTC, datetime
from typing import Optional

from .errors import InvalidParameters
from .models import Aggregation, Algorithm, JobParameters, ResourceRequest

FILTER_FIELDS = ("pod_name", "pod_label", "pod_namespace", "service_port_name", "external_ip")

# aggregation -> (required filters, optional filters)
PARAMETER_SHAPES: dict[Aggregation, tuple[frozenset, frozenset]] = {
    Aggregation.NONE: (frozenset(), frozenset()),
    Aggregation.POD_BY_NAME: (frozenset({"pod_name"}), frozenset({"pod_namespace"})),
    Aggregation.POD_BY_LABEL: (frozenset({"pod_label"}), frozenset({"pod_namespace"})),
    Aggregation.SERVICE: (frozenset({"service_port_name"}), frozenset()),
    Aggregation.EXTERNAL: (frozenset({"external_ip"}), frozenset()),
}

MEMORY_PATTERN = re.compile(r"^[1-9][0-9]*[mMgG]$")
CORE_PATTERN = re.compile(r"^([0-9]+(\.[0-9]+)?|[1-9][0-9]*m)$")
LABEL_PATTERN = re.compile(r"^[^:\s]+:[^:\s]+$")


def coerce_algorithm(value) -> Algorithm:
    if isinstance(value, Algorithm):
        return value
    try:
        return Algorithm(str(value).upper())
    except ValueError:
        available = ", ".join(a.value for a in Algorithm)
        raise InvalidParameters(
            f"Unknown algorithm '{value}'. Available algorithms: {available}"
        ) from None


def coerce_aggregation(value) -> Aggregation:
    if isinstance(value, Aggregation):
        return value
    try:
        return Aggregation(str(value).lower())
    except ValueError:
        available = ", ".join(a.value for a in Aggregation)
        raise InvalidParameters(
            f"Unknown aggregation '{value}'. Available aggregations: {available}"
        ) from None


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Flow timestamps are naive UTC: aware values are converted, naive ones
    are taken as UTC already"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def normalize_window(parameters: JobParameters) -> JobParameters:
    """Return `parameters` with both time-window bounds in naive UTC"""
    return replace(
        parameters,
        start_time=to_naive_utc(parameters.start_time),
        end_time=to_naive_utc(parameters.end_time),
    )


def validate_parameters(aggregation: Aggregation, parameters: JobParameters) -> None:
    """Check that `parameters` is one of the supported shapes for `aggregation`

    Raises:
        InvalidParameters: If a required filter is missing, a foreign filter is
            present, or a value is malformed
    """
    required, optional = PARAMETER_SHAPES[aggregation]
    present = {name for name in FILTER_FIELDS if getattr(parameters, name)}

    missing = required - present
    if missing:
        raise InvalidParameters(
            f"Aggregation '{aggregation.value}' requires {', '.join(sorted(missing))}"
        )

    unexpected = present - required - optional
    if unexpected:
        raise InvalidParameters(
            f"Aggregation '{aggregation.value}' does not accept {', '.join(sorted(unexpected))}"
        )

    if parameters.pod_label and not LABEL_PATTERN.match(parameters.pod_label):
        raise InvalidParameters(f"Pod label '{parameters.pod_label}' must be key:value")

    if parameters.external_ip:
        try:
            ipaddress.ip_address(parameters.external_ip)
        except ValueError:
            raise InvalidParameters(
                f"External IP '{parameters.external_ip}' is not a valid IP address"
            ) from None

    start_time = to_naive_utc(parameters.start_time)
    end_time = to_naive_utc(parameters.end_time)
    if start_time and end_time and end_time <= start_time:
        raise InvalidParameters("end_time must be later than start_time")

    if any(not ns for ns in parameters.ns_ignore_list):
        raise InvalidParameters("ns_ignore_list must not contain empty namespaces")

    _validate_resources(parameters.resources)


def _validate_resources(resources: ResourceRequest) -> None:
    for name in ("driver_memory", "executor_memory"):
        value = getattr(resources, name)
        if not MEMORY_PATTERN.match(value):
            raise InvalidParameters(f"{name} '{value}' must look like 512M or 1G")

    for name in ("driver_core_request", "executor_core_request"):
        value = getattr(resources, name)
        # millicores already start with a non-zero digit
        if not CORE_PATTERN.match(value) or (not value.endswith("m") and float(value) <= 0):
            raise InvalidParameters(f"{name} '{value}' must be a positive CPU quantity")

    if resources.executor_instances < 1:
        raise InvalidParameters("executor_instances must be at least 1")

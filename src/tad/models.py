"""
Data models and configuration for the throughput anomaly detection orchestrator.
"""

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Algorithm(Enum):
    """Detection kernels a job can run"""

    ARIMA = "ARIMA"
    EWMA = "EWMA"
    DBSCAN = "DBSCAN"


class Aggregation(Enum):
    """Grouping granularity of a job; decides the result layout"""

    NONE = "none"
    POD_BY_NAME = "pod-by-name"
    POD_BY_LABEL = "pod-by-label"
    SERVICE = "service"
    EXTERNAL = "external"


class JobStatus(Enum):
    """Lifecycle of a job"""

    SUBMITTED = "SUBMITTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, new: "JobStatus") -> bool:
        """Statuses only move forward; terminal statuses never change"""
        if self.is_terminal:
            return False
        return _STATUS_RANK[new] > _STATUS_RANK[self]


_STATUS_RANK = {
    JobStatus.SUBMITTED: 0,
    JobStatus.RUNNING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


@dataclass(frozen=True)
class ResourceRequest:
    """Compute resources requested from the execution backend"""

    driver_core_request: str = "200m"
    driver_memory: str = "512M"
    executor_core_request: str = "200m"
    executor_memory: str = "512M"
    executor_instances: int = 1


@dataclass(frozen=True)
class JobParameters:
    """Filters, time window and resources of a job (immutable once submitted)"""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    pod_name: Optional[str] = None
    pod_label: Optional[str] = None  # "key:value"
    pod_namespace: Optional[str] = None
    service_port_name: Optional[str] = None
    external_ip: Optional[str] = None
    ns_ignore_list: tuple[str, ...] = ()
    resources: ResourceRequest = field(default_factory=ResourceRequest)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict"""
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        data["ns_ignore_list"] = list(self.ns_ignore_list)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobParameters":
        """Create from a dict produced by to_dict()"""
        data = dict(data)
        for key in ("start_time", "end_time"):
            if data.get(key):
                data[key] = datetime.fromisoformat(data[key])
        data["ns_ignore_list"] = tuple(data.get("ns_ignore_list") or ())
        data["resources"] = ResourceRequest(**(data.get("resources") or {}))
        return cls(**data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Job:
    """One registry row"""

    id: str
    algorithm: Algorithm
    aggregation: Aggregation
    parameters: JobParameters
    status: JobStatus
    created_at: datetime
    backend_handle: Optional[str] = None
    completed_at: Optional[datetime] = None

    def with_status(self, status: JobStatus, at: datetime) -> "Job":
        """Return a copy moved to `status`, stamping completed_at when terminal"""
        return replace(
            self,
            status=status,
            completed_at=at if status.is_terminal else self.completed_at,
        )


@dataclass(frozen=True)
class StatusView:
    """Cached status of a job as recorded in the registry"""

    job_id: str
    status: JobStatus
    algorithm: Algorithm
    aggregation: Aggregation
    created_at: datetime
    completed_at: Optional[datetime]

    @classmethod
    def from_job(cls, job: Job) -> "StatusView":
        return cls(
            job_id=job.id,
            status=job.status,
            algorithm=job.algorithm,
            aggregation=job.aggregation,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )


@dataclass(frozen=True)
class JobSummary:
    """One line of the job listing"""

    job_id: str
    status: JobStatus
    created_at: datetime
    completed_at: Optional[datetime]

    @classmethod
    def from_job(cls, job: Job) -> "JobSummary":
        return cls(
            job_id=job.id,
            status=job.status,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )


@dataclass
class TADConfig:
    """Configuration for the orchestrator and its adapters"""

    # "postgres" or "memory"
    store: str = "postgres"

    # Status poller
    poll_interval_seconds: float = 3.0
    job_timeout_seconds: float = 600.0

    # Startup gate for submit/delete/retrieve
    startup_timeout_seconds: float = 60.0

    # Local execution backend
    backend_workers: int = 3

    # Kernel-specific configuration, keyed by algorithm name
    method_config: dict = field(
        default_factory=lambda: {
            "ARIMA": {"order": (1, 1, 1), "min_points": 3},
            "EWMA": {"alpha": 0.5, "min_points": 2},
            "DBSCAN": {"eps_ratio": 0.1, "min_samples": 4, "min_points": 4},
        }
    )

    # PostgreSQL settings
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "tad_db"
    postgres_user: str = "tad"
    postgres_password: str = "tad_password"

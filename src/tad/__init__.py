"""
Throughput anomaly detection job orchestrator.
"""

from .backend import BackendResource, ExecutionBackend, LocalExecutionBackend
from .errors import (
    BackendResourceNotFound,
    BackendUnavailable,
    DeadlineExceeded,
    InvalidParameters,
    NotFound,
    NotReady,
    OrchestratorNotReady,
    ReconciliationError,
    SchemaMismatch,
    TADError,
)
from .models import (
    Aggregation,
    Algorithm,
    Job,
    JobParameters,
    JobStatus,
    JobSummary,
    ResourceRequest,
    StatusView,
    TADConfig,
)
from .orchestrator import JobOrchestrator
from .registry import InMemoryJobRegistry, JobDatabase, JobRegistry
from .results import InMemoryResultStore, ResultDatabase, ResultStore

__all__ = [
    "JobOrchestrator",
    "TADConfig",
    "Algorithm",
    "Aggregation",
    "JobStatus",
    "Job",
    "JobParameters",
    "ResourceRequest",
    "StatusView",
    "JobSummary",
    "ExecutionBackend",
    "BackendResource",
    "LocalExecutionBackend",
    "JobRegistry",
    "InMemoryJobRegistry",
    "JobDatabase",
    "ResultStore",
    "InMemoryResultStore",
    "ResultDatabase",
    "TADError",
    "InvalidParameters",
    "NotFound",
    "NotReady",
    "SchemaMismatch",
    "DeadlineExceeded",
    "BackendUnavailable",
    "BackendResourceNotFound",
    "ReconciliationError",
    "OrchestratorNotReady",
]

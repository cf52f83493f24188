"""
Execution backend adapters.

The orchestrator reaches the batch-execution backend only through
ExecutionBackend: submit a workload, query its status, collect the rows of a
completed one, cancel it, and list the resources it owns. Handles are opaque
to the orchestrator.
"""

import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

import structlog

from src.flows.database import FlowStore

from .detector import run_detection
from .errors import BackendResourceNotFound, BackendUnavailable
from .methods import get_method
from .models import Job, JobStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BackendResource:
    """A live backend resource owned by the orchestrator"""

    handle: str
    job_id: str


class ExecutionBackend(ABC):
    """Abstract batch-execution backend"""

    @abstractmethod
    def submit(self, job: Job) -> str:
        """Start the workload of `job` and return its handle

        Raises:
            BackendUnavailable: If the backend could not accept the workload
        """

    @abstractmethod
    def status(self, handle: str) -> JobStatus:
        """Live status of a resource

        Raises:
            BackendUnavailable: On a transient communication failure
            BackendResourceNotFound: If the resource no longer exists
        """

    @abstractmethod
    def cancel(self, handle: str) -> None:
        """Stop and remove a resource. Succeeds if it is already gone

        Raises:
            BackendUnavailable: On a transient communication failure
        """

    @abstractmethod
    def collect_results(self, handle: str) -> list[list]:
        """Result rows produced by a COMPLETED resource

        Raises:
            BackendUnavailable: On a transient communication failure
            BackendResourceNotFound: If the resource no longer exists
        """

    @abstractmethod
    def list_resources(self) -> list[BackendResource]:
        """Enumerate every live resource owned by the orchestrator

        Raises:
            BackendUnavailable: If the backend cannot be enumerated
        """


@dataclass
class _LocalResource:
    job: Job
    status: JobStatus = JobStatus.SUBMITTED
    cancelled: bool = False
    rows: list = field(default_factory=list)
    future: Optional[Future] = None
    lock: threading.Lock = field(default_factory=threading.Lock)


class LocalExecutionBackend(ExecutionBackend):
    """Runs detection jobs in a local thread pool

    Resources live as long as the process, like an application object that
    outlives its driver: a finished job keeps its resource, and its result
    rows, until cancelled. Rows reach the result store only through
    collect_results.
    """

    def __init__(
        self,
        flow_store: FlowStore,
        method_config: dict | None = None,
        max_workers: int = 3,
    ):
        self.flow_store = flow_store
        self.method_config = method_config or {}
        self._lock = threading.Lock()
        self._resources: dict[str, _LocalResource] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tad-job")
        logger.info("Local execution backend initialized", max_workers=max_workers)

    def submit(self, job: Job) -> str:
        handle = f"sparkapp-{job.id}"
        resource = _LocalResource(job=job)
        with self._lock:
            if handle in self._resources:
                raise BackendUnavailable("Backend resource already exists", job_id=job.id)
            self._resources[handle] = resource

        try:
            resource.future = self._executor.submit(self._run, handle, resource)
        except RuntimeError as e:
            with self._lock:
                self._resources.pop(handle, None)
            logger.error("Failed to schedule job", job_id=job.id, error=str(e))
            raise BackendUnavailable(f"Backend rejected job: {e}", job_id=job.id) from e

        logger.info("Job scheduled", job_id=job.id, handle=handle)
        return handle

    def status(self, handle: str) -> JobStatus:
        with self._lock:
            resource = self._resources.get(handle)
        if resource is None:
            raise BackendResourceNotFound(f"Backend resource {handle} not found")
        with resource.lock:
            return resource.status

    def cancel(self, handle: str) -> None:
        with self._lock:
            resource = self._resources.pop(handle, None)
        if resource is None:
            logger.debug("Backend resource already gone", handle=handle)
            return

        # A running job checks the flag under this lock before keeping its rows
        with resource.lock:
            resource.cancelled = True
            if resource.future is not None:
                resource.future.cancel()
        logger.info("Backend resource removed", handle=handle, job_id=resource.job.id)

    def list_resources(self) -> list[BackendResource]:
        with self._lock:
            return [
                BackendResource(handle=handle, job_id=resource.job.id)
                for handle, resource in self._resources.items()
            ]

    def collect_results(self, handle: str) -> list[list]:
        with self._lock:
            resource = self._resources.get(handle)
        if resource is None:
            raise BackendResourceNotFound(f"Backend resource {handle} not found")
        with resource.lock:
            return [list(row) for row in resource.rows]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Local execution backend stopped")

    def _run(self, handle: str, resource: _LocalResource) -> None:
        job = resource.job
        with resource.lock:
            if resource.cancelled:
                return
            resource.status = JobStatus.RUNNING
        logger.info("Job running", job_id=job.id, handle=handle)

        try:
            flows = self.flow_store.query_flows(
                start_time=job.parameters.start_time,
                end_time=job.parameters.end_time,
            )
            method = get_method(job.algorithm, self.method_config.get(job.algorithm.value))
            rows = run_detection(job, flows, method)
        except Exception as e:
            logger.error("Job failed", job_id=job.id, error=str(e), exc_info=True)
            with resource.lock:
                resource.status = JobStatus.FAILED
            return

        with resource.lock:
            if resource.cancelled:
                logger.info("Job cancelled before it finished", job_id=job.id)
                return
            resource.rows = rows
            resource.status = JobStatus.COMPLETED
        logger.info("Job completed", job_id=job.id, rows=len(rows))

"""
Job orchestrator: the control core.

Validates requests, creates jobs on the execution backend, owns the status
state machine and serializes destructive operations per job id.

Startup runs one reconciliation pass; submit, delete and retrieve are held at
a readiness gate until it completes, so at startup a resync always resolves
before any client mutation. status and list_jobs are registry reads and are
never held.
"""

import threading
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from typing import Callable, Optional

import pandas as pd
import structlog

from .backend import ExecutionBackend
from .errors import (
    BackendUnavailable,
    NotFound,
    NotReady,
    OrchestratorNotReady,
    ReconciliationError,
)
from .layouts import shape_results
from .locks import KeyedLock
from .models import Job, JobParameters, JobStatus, JobSummary, StatusView, TADConfig
from .poller import StatusPoller
from .reconciler import ReconciliationReport, Reconciler
from .registry import JobRegistry
from .results import ResultStore
from .validation import (
    coerce_aggregation,
    coerce_algorithm,
    normalize_window,
    validate_parameters,
)

logger = structlog.get_logger(__name__)

JOB_NAME_PREFIX = "tad-"


def new_job_id() -> str:
    return f"{JOB_NAME_PREFIX}{uuid.uuid4()}"


def utc_now() -> datetime:
    return datetime.now(UTC)


class JobOrchestrator:
    """Accepts job requests and tracks them to completion"""

    def __init__(
        self,
        registry: JobRegistry,
        backend: ExecutionBackend,
        results: ResultStore,
        config: Optional[TADConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.backend = backend
        self.results = results
        self.config = config or TADConfig()
        self.clock = clock
        self.locks = KeyedLock()

        self.poller = StatusPoller(
            registry,
            backend,
            results,
            self.locks,
            clock,
            poll_interval=self.config.poll_interval_seconds,
        )
        self.reconciler = Reconciler(registry, backend, results, self.locks, clock)

        self._started = threading.Event()
        self._startup_error: Optional[ReconciliationError] = None

    # ========================================
    # Lifecycle
    # ========================================

    def start(self) -> ReconciliationReport:
        """Reconcile registry and backend, then open the orchestrator

        Raises:
            ReconciliationError: If reconciliation fails; the orchestrator
                stays closed to submit, delete and retrieve
        """
        self._started.clear()
        self._startup_error = None
        try:
            report = self.reconciler.run()
        except ReconciliationError as e:
            self._startup_error = e
            logger.error("Startup reconciliation failed", error=str(e))
            raise
        finally:
            self._started.set()

        logger.info("Orchestrator ready")
        return report

    def resync(self) -> ReconciliationReport:
        """Run an on-demand reconciliation pass"""
        return self.reconciler.run()

    def _await_ready(self) -> None:
        if not self._started.wait(self.config.startup_timeout_seconds):
            raise OrchestratorNotReady("Orchestrator startup has not completed")
        if self._startup_error is not None:
            raise OrchestratorNotReady(
                f"Orchestrator startup failed: {self._startup_error}"
            ) from self._startup_error

    # ========================================
    # Operations
    # ========================================

    def submit(self, algorithm, aggregation, parameters: Optional[JobParameters] = None) -> str:
        """Create a job and start it on the execution backend

        Returns:
            The new job id

        Raises:
            InvalidParameters: If the request is not a supported shape
            BackendUnavailable: If the backend rejected the workload; no
                registry row is created
        """
        algorithm = coerce_algorithm(algorithm)
        aggregation = coerce_aggregation(aggregation)
        parameters = normalize_window(parameters or JobParameters())
        validate_parameters(aggregation, parameters)
        self._await_ready()

        job = Job(
            id=new_job_id(),
            algorithm=algorithm,
            aggregation=aggregation,
            parameters=parameters,
            status=JobStatus.SUBMITTED,
            created_at=self.clock(),
        )

        with self.locks.hold(job.id):
            handle = self.backend.submit(job)
            job = replace(job, backend_handle=handle)
            try:
                self.registry.insert(job)
            except Exception as e:
                logger.error("Failed to register job, cancelling", job_id=job.id, error=str(e))
                self._cancel_quietly(handle, job.id)
                raise

        logger.info(
            "Job submitted",
            job_id=job.id,
            algorithm=algorithm.value,
            aggregation=aggregation.value,
            handle=handle,
        )
        return job.id

    def status(self, job_id: str) -> StatusView:
        """Cached status from the registry

        Raises:
            NotFound: If the job is unknown
        """
        return StatusView.from_job(self._get(job_id))

    def list_jobs(self) -> list[JobSummary]:
        """All jobs ordered by creation time"""
        return [JobSummary.from_job(job) for job in self.registry.list_jobs()]

    def delete(self, job_id: str) -> None:
        """Remove the backend resource, the results and the registry row

        Raises:
            NotFound: If the job is unknown
            BackendUnavailable: If the backend resource could not be removed;
                nothing else is deleted and the call can be retried
        """
        self._await_ready()
        with self.locks.hold(job_id):
            job = self._get(job_id)
            if job.backend_handle:
                try:
                    self.backend.cancel(job.backend_handle)
                except BackendUnavailable as e:
                    raise BackendUnavailable(
                        f"Cannot remove backend resource: {e}",
                        job_id=job_id,
                        last_status=job.status,
                    ) from e
            purged = self.results.delete(job_id)
            self.registry.delete(job_id)

        logger.info("Job deleted", job_id=job_id, status=job.status.value, purged=purged)

    def retrieve(self, job_id: str) -> pd.DataFrame:
        """Result rows of a completed job, laid out for its aggregation

        Raises:
            NotFound: If the job is unknown
            NotReady: If the job is not COMPLETED
            SchemaMismatch: If a stored row does not fit the layout
        """
        self._await_ready()
        with self.locks.hold(job_id):
            job = self._get(job_id)
            if job.status is not JobStatus.COMPLETED:
                raise NotReady("Job has not completed", job_id=job_id, last_status=job.status)
            rows = self.results.fetch(job_id)
        return shape_results(job_id, job.aggregation, rows)

    def wait(
        self,
        job_id: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> JobStatus:
        """Block until the job is terminal; see StatusPoller.wait_until_terminal"""
        if timeout is None:
            timeout = self.config.job_timeout_seconds
        return self.poller.wait_until_terminal(job_id, timeout, cancel_event)

    def _get(self, job_id: str) -> Job:
        job = self.registry.get(job_id)
        if job is None:
            raise NotFound("Job not found", job_id=job_id)
        return job

    def _cancel_quietly(self, handle: str, job_id: str) -> None:
        try:
            self.backend.cancel(handle)
        except BackendUnavailable as e:
            # Left for the next reconciliation pass as an orphan
            logger.error("Failed to cancel backend resource", job_id=job_id, error=str(e))

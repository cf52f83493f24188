"""
Status poller: blocks a caller until a job is terminal or a timeout elapses.
"""

import threading
import time
from datetime import datetime
from typing import Callable, Optional

import structlog

from .backend import ExecutionBackend
from .errors import BackendResourceNotFound, BackendUnavailable, DeadlineExceeded, NotFound
from .locks import KeyedLock
from .models import Job, JobStatus
from .reconciler import mark_failed_and_purge
from .registry import JobRegistry
from .results import ResultStore

logger = structlog.get_logger(__name__)


class StatusPoller:
    """Polls the execution backend and records status changes in the registry"""

    def __init__(
        self,
        registry: JobRegistry,
        backend: ExecutionBackend,
        results: ResultStore,
        locks: KeyedLock,
        clock: Callable[[], datetime],
        poll_interval: float = 3.0,
    ):
        self.registry = registry
        self.backend = backend
        self.results = results
        self.locks = locks
        self.clock = clock
        self.poll_interval = poll_interval

    def wait_until_terminal(
        self,
        job_id: str,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> JobStatus:
        """Poll until the job is COMPLETED or FAILED

        Every observed change is written to the registry as its own
        transaction; the change to COMPLETED also stores the job's result
        rows. Transient backend errors are retried on the next tick.

        Args:
            job_id: Job to wait for
            timeout: Seconds to wait before giving up
            cancel_event: Optional event that stops the wait early

        Returns:
            The terminal status

        Raises:
            NotFound: If the job is unknown or deleted while waiting
            DeadlineExceeded: On timeout or cancellation, with the last
                observed status
        """
        job = self.registry.get(job_id)
        if job is None:
            raise NotFound("Job not found", job_id=job_id)

        stop = cancel_event or threading.Event()
        deadline = time.monotonic() + timeout
        last = job.status
        transient_errors = 0

        while not last.is_terminal:
            try:
                observed = self.backend.status(job.backend_handle)
                if observed != last:
                    last = self._record(job_id, job.backend_handle, observed)
            except BackendUnavailable as e:
                transient_errors += 1
                logger.warning(
                    "Backend query failed, retrying",
                    job_id=job_id,
                    error=str(e),
                    attempt=transient_errors,
                )
            except BackendResourceNotFound:
                last = self._resource_gone(job_id)
                break

            if last.is_terminal:
                break

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DeadlineExceeded(
                    f"Job not terminal after {timeout}s", job_id=job_id, last_status=last
                )
            if stop.wait(min(self.poll_interval, remaining)):
                raise DeadlineExceeded("Wait cancelled", job_id=job_id, last_status=last)

        logger.info("Job reached terminal status", job_id=job_id, status=last.value)
        return last

    def _record(self, job_id: str, handle: str, status: JobStatus) -> JobStatus:
        with self.locks.hold(job_id):
            if status is JobStatus.COMPLETED:
                job = self._complete(job_id, handle)
            else:
                job = self.registry.update_status(job_id, status, self.clock())
        if job is None:
            raise NotFound("Job deleted while waiting", job_id=job_id, last_status=status)
        logger.debug("Observed status change", job_id=job_id, status=job.status.value)
        return job.status

    def _complete(self, job_id: str, handle: str) -> Job | None:
        """Store the backend's result rows and commit COMPLETED as one step

        Callers must hold the job's lock. Rows that do not end up attached
        to a COMPLETED row are removed again.
        """
        job = self.registry.get(job_id)
        if job is None or not job.status.can_transition_to(JobStatus.COMPLETED):
            return job

        rows = self.backend.collect_results(handle)
        self.results.write(job_id, rows)
        try:
            job = self.registry.update_status(job_id, JobStatus.COMPLETED, self.clock())
        except Exception as e:
            logger.error("Failed to record completion", job_id=job_id, error=str(e))
            self.results.delete(job_id)
            raise
        if job is None or job.status is not JobStatus.COMPLETED:
            self.results.delete(job_id)
        else:
            logger.info("Results stored", job_id=job_id, rows=len(rows))
        return job

    def _resource_gone(self, job_id: str) -> JobStatus:
        with self.locks.hold(job_id):
            job = self.registry.get(job_id)
            if job is None:
                raise NotFound("Job deleted while waiting", job_id=job_id)
            if job.status.is_terminal:
                return job.status
            job = mark_failed_and_purge(self.registry, self.results, job_id, self.clock())
        return job.status

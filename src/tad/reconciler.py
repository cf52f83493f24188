"""
Resync reconciler: repairs divergence between the job registry and the
execution backend's live resources.

The diff itself is a pure set difference over two sequences
(plan_reconciliation); Reconciler applies it, re-validating every repair under
the job's lock so that work done concurrently is never undone.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

import structlog

from .backend import BackendResource, ExecutionBackend
from .errors import BackendResourceNotFound, BackendUnavailable, ReconciliationError
from .locks import KeyedLock
from .models import Job, JobStatus
from .registry import JobRegistry
from .results import ResultStore

logger = structlog.get_logger(__name__)


@dataclass
class ReconciliationPlan:
    """Repairs derived from one registry/backend snapshot"""

    stale_jobs: list[str] = field(default_factory=list)
    orphan_resources: list[BackendResource] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    """Repairs actually applied"""

    failed_jobs: list[str] = field(default_factory=list)
    removed_resources: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def plan_reconciliation(
    jobs: Sequence[Job], live_resources: Sequence[BackendResource]
) -> ReconciliationPlan:
    """Diff registry rows against live backend resources

    - a non-terminal row whose handle is not live is stale
    - a live resource whose handle no registry row references is an orphan
    """
    live_handles = {resource.handle for resource in live_resources}
    known_handles = {job.backend_handle for job in jobs if job.backend_handle}

    return ReconciliationPlan(
        stale_jobs=[
            job.id
            for job in jobs
            if not job.status.is_terminal and job.backend_handle not in live_handles
        ],
        orphan_resources=[
            resource for resource in live_resources if resource.handle not in known_handles
        ],
    )


def mark_failed_and_purge(
    registry: JobRegistry, results: ResultStore, job_id: str, at: datetime
) -> Job | None:
    """Force a row whose backend artifact is gone to FAILED and drop its results

    Callers must hold the job's lock.
    """
    job = registry.update_status(job_id, JobStatus.FAILED, at)
    if job is None:
        return None
    purged = results.delete(job_id)
    logger.warning("Job marked FAILED, backend resource is gone", job_id=job_id, purged=purged)
    return job


class Reconciler:
    """Applies reconciliation plans"""

    def __init__(
        self,
        registry: JobRegistry,
        backend: ExecutionBackend,
        results: ResultStore,
        locks: KeyedLock,
        clock: Callable[[], datetime],
    ):
        self.registry = registry
        self.backend = backend
        self.results = results
        self.locks = locks
        self.clock = clock

    def run(self) -> ReconciliationReport:
        """Run one reconciliation pass

        Raises:
            ReconciliationError: If either store cannot be enumerated or a
                repair cannot reach the backend
        """
        logger.info("Starting reconciliation")
        try:
            live = self.backend.list_resources()
            jobs = self.registry.list_jobs()
        except Exception as e:
            logger.error("Failed to enumerate registry or backend", error=str(e))
            raise ReconciliationError(f"Cannot enumerate job state: {e}") from e

        plan = plan_reconciliation(jobs, live)
        report = ReconciliationReport()

        try:
            for job_id in plan.stale_jobs:
                self._fail_stale_job(job_id, report)
            for resource in plan.orphan_resources:
                self._remove_orphan(resource, report)
        except BackendUnavailable as e:
            logger.error("Reconciliation interrupted", error=str(e))
            raise ReconciliationError(f"Backend unavailable during reconciliation: {e}") from e

        logger.info(
            "Reconciliation finished",
            registry_rows=len(jobs),
            live_resources=len(live),
            failed_jobs=len(report.failed_jobs),
            removed_resources=len(report.removed_resources),
            skipped=len(report.skipped),
        )
        return report

    def _fail_stale_job(self, job_id: str, report: ReconciliationReport) -> None:
        with self.locks.hold(job_id):
            job = self.registry.get(job_id)
            if job is None or job.status.is_terminal or self._is_live(job.backend_handle):
                report.skipped.append(job_id)
                return
            mark_failed_and_purge(self.registry, self.results, job_id, self.clock())
            report.failed_jobs.append(job_id)

    def _remove_orphan(self, resource: BackendResource, report: ReconciliationReport) -> None:
        with self.locks.hold(resource.job_id):
            job = self.registry.get(resource.job_id)
            if job is not None and job.backend_handle == resource.handle:
                report.skipped.append(resource.handle)
                return
            self.backend.cancel(resource.handle)
            logger.warning(
                "Removed orphan backend resource", handle=resource.handle, job_id=resource.job_id
            )
            report.removed_resources.append(resource.handle)

    def _is_live(self, handle: str | None) -> bool:
        if handle is None:
            return False
        try:
            self.backend.status(handle)
        except BackendResourceNotFound:
            return False
        return True

"""
Pytest configuration and shared fixtures.
"""

import threading
from datetime import datetime, timedelta

import pytest

from src.flows.database import InMemoryFlowStore
from src.flows.seed import build_demo_flows
from src.tad.backend import BackendResource, ExecutionBackend
from src.tad.errors import BackendResourceNotFound, BackendUnavailable
from src.tad.models import Aggregation, Algorithm, Job, JobParameters, JobStatus, TADConfig
from src.tad.orchestrator import JobOrchestrator
from src.tad.registry import InMemoryJobRegistry
from src.tad.results import InMemoryResultStore


class FakeBackend(ExecutionBackend):
    """Scripted execution backend.

    Each handle replays the statuses queued with script(); the last one
    sticks. Rows queued with produce() are what collect_results returns.
    Failures are injected by setting the fail_* flags or queueing transient
    errors.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.resources: dict[str, str] = {}  # handle -> job id
        self.scripts: dict[str, list[JobStatus]] = {}
        self.produced: dict[str, list[list]] = {}
        self.transient: dict[str, int] = {}
        self.submitted: list[str] = []
        self.cancelled: list[str] = []
        self.status_calls = 0
        self.fail_submit = False
        self.fail_cancel = False
        self.fail_list = False

    @staticmethod
    def handle_for(job_id: str) -> str:
        return f"fake-{job_id}"

    def script(self, job_id: str, *statuses: JobStatus) -> None:
        with self._lock:
            self.scripts[self.handle_for(job_id)] = list(statuses)

    def produce(self, job_id: str, rows: list[list]) -> None:
        with self._lock:
            self.produced[self.handle_for(job_id)] = [list(row) for row in rows]

    def add_orphan(self, job_id: str) -> str:
        handle = self.handle_for(job_id)
        with self._lock:
            self.resources[handle] = job_id
        return handle

    def vanish(self, job_id: str) -> None:
        with self._lock:
            self.resources.pop(self.handle_for(job_id), None)

    def submit(self, job: Job) -> str:
        if self.fail_submit:
            raise BackendUnavailable("Backend rejected job", job_id=job.id)
        handle = self.handle_for(job.id)
        with self._lock:
            self.resources[handle] = job.id
            self.scripts.setdefault(handle, [JobStatus.SUBMITTED])
            self.submitted.append(job.id)
        return handle

    def status(self, handle: str) -> JobStatus:
        with self._lock:
            self.status_calls += 1
            if self.transient.get(handle, 0) > 0:
                self.transient[handle] -= 1
                raise BackendUnavailable("Backend timed out")
            if handle not in self.resources:
                raise BackendResourceNotFound(f"Backend resource {handle} not found")
            script = self.scripts.setdefault(handle, [JobStatus.SUBMITTED])
            return script.pop(0) if len(script) > 1 else script[0]

    def cancel(self, handle: str) -> None:
        if self.fail_cancel:
            raise BackendUnavailable("Backend timed out")
        with self._lock:
            self.resources.pop(handle, None)
            self.cancelled.append(handle)

    def collect_results(self, handle: str) -> list[list]:
        with self._lock:
            if handle not in self.resources:
                raise BackendResourceNotFound(f"Backend resource {handle} not found")
            return [list(row) for row in self.produced.get(handle, [])]

    def list_resources(self) -> list[BackendResource]:
        if self.fail_list:
            raise BackendUnavailable("Backend cannot be enumerated")
        with self._lock:
            return [
                BackendResource(handle=handle, job_id=job_id)
                for handle, job_id in self.resources.items()
            ]


class TickingClock:
    """Clock that advances one second per call"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now += timedelta(seconds=1)
            return self._now


# Orchestrator fixtures
@pytest.fixture
def tad_config():
    """Fast configuration for testing."""
    return TADConfig(
        store="memory",
        poll_interval_seconds=0.01,
        job_timeout_seconds=5.0,
        startup_timeout_seconds=1.0,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_database="test_db",
        postgres_user="test_user",
        postgres_password="test_password",
    )


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def registry():
    return InMemoryJobRegistry()


@pytest.fixture
def results():
    return InMemoryResultStore()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def orchestrator(registry, backend, results, tad_config, clock):
    """Started orchestrator over in-memory stores and the fake backend."""
    orch = JobOrchestrator(registry, backend, results, tad_config, clock=clock)
    orch.start()
    return orch


@pytest.fixture
def flow_store():
    """In-memory flow store seeded with the demo flows."""
    store = InMemoryFlowStore()
    store.insert_flows(build_demo_flows())
    return store


@pytest.fixture
def make_job(clock):
    """Factory for registry rows."""

    def _make(
        job_id: str = "tad-00000000-0000-0000-0000-000000000001",
        status: JobStatus = JobStatus.SUBMITTED,
        aggregation: Aggregation = Aggregation.NONE,
        parameters: JobParameters | None = None,
        backend_handle: str | None = "",
    ) -> Job:
        return Job(
            id=job_id,
            algorithm=Algorithm.EWMA,
            aggregation=aggregation,
            parameters=parameters or JobParameters(),
            status=status,
            created_at=clock(),
            backend_handle=FakeBackend.handle_for(job_id) if backend_handle == "" else backend_handle,
        )

    return _make

"""
Job registry: persistent table of job metadata.

Pure data access. The only rules enforced here are referential: ids are
unique across the registry's lifetime and statuses only move forward.
"""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import structlog

from src.core.database import PostgresConnection

from .models import Aggregation, Algorithm, Job, JobParameters, JobStatus, TADConfig

logger = structlog.get_logger(__name__)


class DuplicateJobError(Exception):
    """Raised when a job id is inserted twice"""


class JobRegistry(ABC):
    """Abstract job registry"""

    @abstractmethod
    def insert(self, job: Job) -> None:
        """Insert a new row

        Raises:
            DuplicateJobError: If the id was ever used before
        """

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        """Return the live row for `job_id`, or None"""

    @abstractmethod
    def list_jobs(self) -> list[Job]:
        """Return all live rows ordered by creation time"""

    @abstractmethod
    def update_status(self, job_id: str, status: JobStatus, at: datetime) -> Optional[Job]:
        """Move a row to `status` if that is a forward transition

        Writing the current status again is a no-op. Backward transitions and
        changes to terminal rows are ignored.

        Returns:
            The row after the write, or None if it does not exist
        """

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Remove a row. Returns False if it did not exist"""


class InMemoryJobRegistry(JobRegistry):
    """Registry kept in process memory"""

    def __init__(self):
        self._lock = threading.RLock()
        self._rows: dict[str, Job] = {}
        self._retired: set[str] = set()

    def insert(self, job: Job) -> None:
        with self._lock:
            if job.id in self._rows or job.id in self._retired:
                raise DuplicateJobError(job.id)
            self._rows[job.id] = job
        logger.debug("Job registered", job_id=job.id, status=job.status.value)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._rows.get(job_id)

    def list_jobs(self) -> list[Job]:
        with self._lock:
            # dicts keep insertion order, and sorted() is stable
            return sorted(self._rows.values(), key=lambda job: job.created_at)

    def update_status(self, job_id: str, status: JobStatus, at: datetime) -> Optional[Job]:
        with self._lock:
            job = self._rows.get(job_id)
            if job is None:
                return None
            if not job.status.can_transition_to(status):
                return job
            job = job.with_status(status, at)
            self._rows[job_id] = job
        logger.debug("Job status updated", job_id=job_id, status=status.value)
        return job

    def delete(self, job_id: str) -> bool:
        with self._lock:
            if self._rows.pop(job_id, None) is None:
                return False
            self._retired.add(job_id)
            return True


class JobDatabase(PostgresConnection, JobRegistry):
    """Registry stored in PostgreSQL

    Deleted rows are soft-deleted so that the primary key keeps retired ids.
    """

    COLUMNS = (
        "id, algorithm, aggregation, parameters, status, "
        "created_at, completed_at, backend_handle"
    )

    def __init__(self, config: TADConfig):
        super().__init__(
            host=config.postgres_host,
            port=config.postgres_port,
            database=config.postgres_database,
            user=config.postgres_user,
            password=config.postgres_password,
        )
        self.config = config

    def ensure_table_exists(self) -> None:
        """Create the tad_jobs table if it doesn't exist"""
        query = """
            CREATE TABLE IF NOT EXISTS tad_jobs (
                seq BIGSERIAL,
                id VARCHAR(64) PRIMARY KEY,
                algorithm VARCHAR(16) NOT NULL,
                aggregation VARCHAR(16) NOT NULL,
                parameters JSONB NOT NULL,
                status VARCHAR(16) NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                backend_handle VARCHAR(128) UNIQUE,
                deleted_at TIMESTAMPTZ
            );

            CREATE INDEX IF NOT EXISTS idx_tad_jobs_created
            ON tad_jobs(created_at, seq) WHERE deleted_at IS NULL;
        """
        with self.get_cursor() as cursor:
            cursor.execute(query)
        logger.info("Ensured tad_jobs table exists")

    def insert(self, job: Job) -> None:
        query = """
            INSERT INTO tad_jobs (
                id, algorithm, aggregation, parameters, status,
                created_at, completed_at, backend_handle
            ) VALUES (
                %(id)s, %(algorithm)s, %(aggregation)s, %(parameters)s, %(status)s,
                %(created_at)s, %(completed_at)s, %(backend_handle)s
            )
            ON CONFLICT (id) DO NOTHING
        """
        params = {
            "id": job.id,
            "algorithm": job.algorithm.value,
            "aggregation": job.aggregation.value,
            "parameters": job.parameters.to_json(),
            "status": job.status.value,
            "created_at": job.created_at,
            "completed_at": job.completed_at,
            "backend_handle": job.backend_handle,
        }
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            if cursor.rowcount == 0:
                raise DuplicateJobError(job.id)
        logger.debug("Job registered", job_id=job.id, status=job.status.value)

    def get(self, job_id: str) -> Optional[Job]:
        query = f"""
            SELECT {self.COLUMNS}
            FROM tad_jobs
            WHERE id = %s AND deleted_at IS NULL
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, (job_id,))
            row = cursor.fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs(self) -> list[Job]:
        query = f"""
            SELECT {self.COLUMNS}
            FROM tad_jobs
            WHERE deleted_at IS NULL
            ORDER BY created_at, seq
        """
        with self.get_cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
        return [self._row_to_job(row) for row in rows]

    def update_status(self, job_id: str, status: JobStatus, at: datetime) -> Optional[Job]:
        # The row is locked for the read-check-write so concurrent writers
        # cannot interleave between the transition check and the update.
        select = f"""
            SELECT {self.COLUMNS}
            FROM tad_jobs
            WHERE id = %s AND deleted_at IS NULL
            FOR UPDATE
        """
        update = """
            UPDATE tad_jobs
            SET status = %(status)s, completed_at = %(completed_at)s
            WHERE id = %(id)s
        """
        with self.get_cursor() as cursor:
            cursor.execute(select, (job_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            job = self._row_to_job(row)
            if not job.status.can_transition_to(status):
                return job
            job = job.with_status(status, at)
            cursor.execute(
                update,
                {"id": job_id, "status": status.value, "completed_at": job.completed_at},
            )
        logger.debug("Job status updated", job_id=job_id, status=status.value)
        return job

    def delete(self, job_id: str) -> bool:
        query = """
            UPDATE tad_jobs
            SET deleted_at = NOW()
            WHERE id = %s AND deleted_at IS NULL
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, (job_id,))
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_job(row) -> Job:
        (job_id, algorithm, aggregation, parameters, status,
         created_at, completed_at, backend_handle) = row
        # psycopg2 decodes JSONB to dicts already; text columns arrive as str
        if isinstance(parameters, str):
            parameters = json.loads(parameters)
        return Job(
            id=job_id,
            algorithm=Algorithm(algorithm),
            aggregation=Aggregation(aggregation),
            parameters=JobParameters.from_dict(parameters),
            status=JobStatus(status),
            created_at=created_at,
            completed_at=completed_at,
            backend_handle=backend_handle,
        )

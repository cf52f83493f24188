"""
Result store: algorithm output rows keyed by job id.

Rows are kept positional, exactly as the detector produced them, so that the
orchestrator can check their width against the job's aggregation layout on
every read.
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Sequence

import psycopg2.extras
import structlog

from src.core.database import PostgresConnection

from .models import TADConfig

logger = structlog.get_logger(__name__)

Row = list[Any]


class ResultStore(ABC):
    """Abstract result store"""

    @abstractmethod
    def write(self, job_id: str, rows: Sequence[Sequence[Any]]) -> int:
        """Append result rows for a job. Returns the number written"""

    @abstractmethod
    def fetch(self, job_id: str) -> list[Row]:
        """Return the result rows of a job in write order"""

    @abstractmethod
    def delete(self, job_id: str) -> int:
        """Remove every result row of a job. Returns the number removed"""


class InMemoryResultStore(ResultStore):
    """Result rows kept in process memory"""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: dict[str, list[Row]] = {}

    def write(self, job_id: str, rows: Sequence[Sequence[Any]]) -> int:
        with self._lock:
            self._rows.setdefault(job_id, []).extend(list(row) for row in rows)
        return len(rows)

    def fetch(self, job_id: str) -> list[Row]:
        with self._lock:
            return [list(row) for row in self._rows.get(job_id, [])]

    def delete(self, job_id: str) -> int:
        with self._lock:
            return len(self._rows.pop(job_id, []))


class ResultDatabase(PostgresConnection, ResultStore):
    """Result rows stored in PostgreSQL as JSONB arrays"""

    def __init__(self, config: TADConfig):
        super().__init__(
            host=config.postgres_host,
            port=config.postgres_port,
            database=config.postgres_database,
            user=config.postgres_user,
            password=config.postgres_password,
        )

    def ensure_table_exists(self) -> None:
        """Create the tad_results table if it doesn't exist"""
        query = """
            CREATE TABLE IF NOT EXISTS tad_results (
                id BIGSERIAL PRIMARY KEY,
                job_id VARCHAR(64) NOT NULL,
                row_values JSONB NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tad_results_job
            ON tad_results(job_id, id);
        """
        with self.get_cursor() as cursor:
            cursor.execute(query)
        logger.info("Ensured tad_results table exists")

    def write(self, job_id: str, rows: Sequence[Sequence[Any]]) -> int:
        if not rows:
            return 0

        query = """
            INSERT INTO tad_results (job_id, row_values)
            VALUES (%(job_id)s, %(row_values)s)
        """
        params = [
            {"job_id": job_id, "row_values": json.dumps(list(row), default=str)}
            for row in rows
        ]
        with self.get_cursor() as cursor:
            psycopg2.extras.execute_batch(cursor, query, params, page_size=100)
        logger.debug("Results written", job_id=job_id, count=len(rows))
        return len(rows)

    def fetch(self, job_id: str) -> list[Row]:
        query = """
            SELECT row_values
            FROM tad_results
            WHERE job_id = %s
            ORDER BY id
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, (job_id,))
            rows = cursor.fetchall()
        return [json.loads(value) if isinstance(value, str) else value for (value,) in rows]

    def delete(self, job_id: str) -> int:
        with self.get_cursor() as cursor:
            cursor.execute("DELETE FROM tad_results WHERE job_id = %s", (job_id,))
            removed = cursor.rowcount
        logger.debug("Results deleted", job_id=job_id, count=removed)
        return removed

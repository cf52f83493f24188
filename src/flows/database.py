"""
Flow store: time-filtered insert/select of flow records.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import pandas as pd
import psycopg2.extras
import structlog

from src.core.database import PostgresConnection

from .models import FLOW_COLUMNS, FlowRecord

logger = structlog.get_logger(__name__)


class FlowStore(ABC):
    """Abstract flow record store"""

    @abstractmethod
    def insert_flows(self, records: list[FlowRecord]) -> int:
        """Insert flow records. Returns the number inserted"""

    @abstractmethod
    def query_flows(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """Select flows with flow_start_seconds >= start_time and
        flow_end_seconds < end_time (either bound may be omitted)

        Returns:
            DataFrame with FLOW_COLUMNS
        """


class InMemoryFlowStore(FlowStore):
    """Flow records kept in a pandas DataFrame"""

    def __init__(self):
        self._lock = threading.Lock()
        self._frame = pd.DataFrame(columns=FLOW_COLUMNS)

    def insert_flows(self, records: list[FlowRecord]) -> int:
        if not records:
            return 0
        new = pd.DataFrame([record.to_db_dict() for record in records], columns=FLOW_COLUMNS)
        with self._lock:
            frames = [self._frame, new] if len(self._frame) else [new]
            self._frame = pd.concat(frames, ignore_index=True)
        return len(records)

    def query_flows(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> pd.DataFrame:
        with self._lock:
            frame = self._frame.copy()
        if start_time is not None:
            frame = frame[frame["flow_start_seconds"] >= start_time]
        if end_time is not None:
            frame = frame[frame["flow_end_seconds"] < end_time]
        return frame.reset_index(drop=True)


class FlowDatabase(PostgresConnection, FlowStore):
    """Flow records stored in PostgreSQL"""

    def __init__(self, host: str, port: int, database: str, user: str, password: str):
        super().__init__(host=host, port=port, database=database, user=user, password=password)

    def ensure_table_exists(self) -> None:
        """Create the flows table if it doesn't exist"""
        query = """
            CREATE TABLE IF NOT EXISTS flows (
                flow_start_seconds TIMESTAMP NOT NULL,
                flow_end_seconds TIMESTAMP NOT NULL,
                source_ip VARCHAR(50) NOT NULL,
                source_transport_port INTEGER NOT NULL,
                destination_ip VARCHAR(50) NOT NULL,
                destination_transport_port INTEGER NOT NULL,
                protocol_identifier SMALLINT NOT NULL,
                source_pod_namespace VARCHAR(256) DEFAULT '',
                source_pod_name VARCHAR(256) DEFAULT '',
                source_pod_labels TEXT DEFAULT '',
                destination_pod_namespace VARCHAR(256) DEFAULT '',
                destination_pod_name VARCHAR(256) DEFAULT '',
                destination_pod_labels TEXT DEFAULT '',
                destination_service_port_name VARCHAR(256) DEFAULT '',
                flow_type SMALLINT NOT NULL,
                throughput BIGINT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_flows_window
            ON flows(flow_start_seconds, flow_end_seconds);
        """
        with self.get_cursor() as cursor:
            cursor.execute(query)
        logger.info("Ensured flows table exists")

    def insert_flows(self, records: list[FlowRecord]) -> int:
        """Batch insert flow records"""
        if not records:
            return 0

        columns = ", ".join(FLOW_COLUMNS)
        values = ", ".join(f"%({column})s" for column in FLOW_COLUMNS)
        query = f"INSERT INTO flows ({columns}) VALUES ({values})"

        with self.get_cursor() as cursor:
            psycopg2.extras.execute_batch(
                cursor, query, [record.to_db_dict() for record in records], page_size=100
            )
        logger.info("Flows inserted", count=len(records))
        return len(records)

    def query_flows(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> pd.DataFrame:
        conditions = []
        params: dict = {}
        if start_time is not None:
            conditions.append("flow_start_seconds >= %(start_time)s")
            params["start_time"] = start_time
        if end_time is not None:
            conditions.append("flow_end_seconds < %(end_time)s")
            params["end_time"] = end_time
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT {", ".join(FLOW_COLUMNS)}
            FROM flows
            {where}
            ORDER BY flow_end_seconds
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            columns = [desc[0] for desc in cursor.description]
            rows = cursor.fetchall()

        frame = pd.DataFrame(rows, columns=columns)
        logger.debug("Queried flows", rows=len(frame), start=start_time, end=end_time)
        return frame

"""
Tests for result store implementations.
"""

import json
from unittest.mock import MagicMock, patch

from src.tad.results import InMemoryResultStore, ResultDatabase


class TestInMemoryResultStore:
    """Tests for InMemoryResultStore."""

    def test_write_fetch_delete(self):
        store = InMemoryResultStore()

        assert store.write("tad-1", [["a", 1], ["b", 2]]) == 2
        store.write("tad-1", [["c", 3]])
        store.write("tad-2", [["z", 9]])

        assert store.fetch("tad-1") == [["a", 1], ["b", 2], ["c", 3]]
        assert store.delete("tad-1") == 3
        assert store.fetch("tad-1") == []
        assert store.fetch("tad-2") == [["z", 9]]

    def test_fetch_returns_copies(self):
        store = InMemoryResultStore()
        store.write("tad-1", [["a", 1]])

        store.fetch("tad-1")[0].append("mutated")

        assert store.fetch("tad-1") == [["a", 1]]

    def test_delete_unknown(self):
        assert InMemoryResultStore().delete("tad-x") == 0


class TestResultDatabase:
    """Tests for the PostgreSQL result store."""

    @patch("src.core.database.psycopg2.connect")
    def test_ensure_table_exists(self, mock_connect, tad_config):
        mock_connection = MagicMock()
        mock_cursor = MagicMock()
        mock_connection.cursor.return_value = mock_cursor
        mock_connect.return_value = mock_connection

        ResultDatabase(tad_config).ensure_table_exists()

        assert "CREATE TABLE IF NOT EXISTS tad_results" in mock_cursor.execute.call_args[0][0]

    @patch("src.core.database.psycopg2.connect")
    @patch("src.tad.results.psycopg2.extras.execute_batch")
    def test_write_serializes_rows(self, mock_execute_batch, mock_connect, tad_config):
        mock_connection = MagicMock()
        mock_connect.return_value = mock_connection

        written = ResultDatabase(tad_config).write(
            "tad-1", [["tad-1", "svc", 4005486294.0, "svc", "EWMA", 4.0e9, True]]
        )

        assert written == 1
        mock_execute_batch.assert_called_once()
        params = mock_execute_batch.call_args[0][2]
        assert params[0]["job_id"] == "tad-1"
        assert json.loads(params[0]["row_values"])[-1] is True
        mock_connection.commit.assert_called_once()

    @patch("src.core.database.psycopg2.connect")
    @patch("src.tad.results.psycopg2.extras.execute_batch")
    def test_write_nothing(self, mock_execute_batch, mock_connect, tad_config):
        mock_connect.return_value = MagicMock()

        assert ResultDatabase(tad_config).write("tad-1", []) == 0
        mock_execute_batch.assert_not_called()

    @patch("src.core.database.psycopg2.connect")
    def test_fetch_decodes_jsonb_and_text(self, mock_connect, tad_config):
        mock_connection = MagicMock()
        mock_cursor = MagicMock()
        mock_cursor.fetchall.return_value = [(["tad-1", 1],), ('["tad-1", 2]',)]
        mock_connection.cursor.return_value = mock_cursor
        mock_connect.return_value = mock_connection

        rows = ResultDatabase(tad_config).fetch("tad-1")

        assert rows == [["tad-1", 1], ["tad-1", 2]]
        assert "ORDER BY id" in mock_cursor.execute.call_args[0][0]

    @patch("src.core.database.psycopg2.connect")
    def test_delete(self, mock_connect, tad_config):
        mock_connection = MagicMock()
        mock_cursor = MagicMock()
        mock_cursor.rowcount = 5
        mock_connection.cursor.return_value = mock_cursor
        mock_connect.return_value = mock_connection

        assert ResultDatabase(tad_config).delete("tad-1") == 5
        mock_cursor.execute.assert_called_once_with(
            "DELETE FROM tad_results WHERE job_id = %s", ("tad-1",)
        )

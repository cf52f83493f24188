"""
Tests for the command-line front end.
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from src.tad.cli import build_request, execute, format_job_list, main, parse_arguments
from src.tad.errors import InvalidParameters
from src.tad.models import Aggregation, JobStatus, JobSummary

MEMORY = ["--store", "memory", "--poll-interval", "0.01"]


class TestParseArguments:
    """Tests for argument parsing and request building."""

    def test_run_defaults(self):
        args = parse_arguments(["run", "--algo", "ARIMA"])

        assert args.command == "run"
        assert args.agg_flow == "none"
        assert args.driver_memory == "512M"
        assert args.executor_instances == 1

    def test_retrieve_file_option(self):
        args = parse_arguments(["retrieve", "tad-1", "-f", "out.txt"])

        assert args.name == "tad-1"
        assert args.file == "out.txt"

    @pytest.mark.parametrize(
        "extra,aggregation",
        [
            ([], Aggregation.NONE),
            (["--agg-flow", "pod", "--pod-name", "web"], Aggregation.POD_BY_NAME),
            (["--agg-flow", "pod", "--pod-label", "app:web"], Aggregation.POD_BY_LABEL),
            (["--agg-flow", "svc", "--svc-port-name", "http"], Aggregation.SERVICE),
            (["--agg-flow", "external", "--external-ip", "10.0.0.1"], Aggregation.EXTERNAL),
        ],
    )
    def test_aggregation_mapping(self, extra, aggregation):
        _, actual, _ = build_request(parse_arguments(["run", "--algo", "EWMA", *extra]))

        assert actual is aggregation

    def test_pod_without_selector(self):
        args = parse_arguments(["run", "--algo", "EWMA", "--agg-flow", "pod"])

        with pytest.raises(InvalidParameters, match="--pod-name or --pod-label"):
            build_request(args)

    def test_time_window_and_ignore_list(self):
        args = parse_arguments(
            [
                "run",
                "--algo",
                "EWMA",
                "--start-time",
                "2022-08-11T06:26:50",
                "--end-time",
                "2022-08-12T08:26:54",
                "--ns-ignore-list",
                "kube-system, flow-aggregator",
            ]
        )

        _, _, params = build_request(args)

        assert params.start_time == datetime(2022, 8, 11, 6, 26, 50)
        assert params.end_time == datetime(2022, 8, 12, 8, 26, 54)
        assert params.ns_ignore_list == ("kube-system", "flow-aggregator")

    def test_bad_time(self):
        args = parse_arguments(["run", "--algo", "EWMA", "--start-time", "yesterday"])

        with pytest.raises(InvalidParameters, match="Invalid time window"):
            build_request(args)


class TestFormatting:
    """Tests for output formatting."""

    def test_empty_job_list_is_header_only(self):
        assert format_job_list([]).split() == ["CreationTime", "CompletionTime", "Name", "Status"]

    def test_job_list_rows(self):
        jobs = [
            JobSummary(
                job_id="tad-1",
                status=JobStatus.COMPLETED,
                created_at=datetime(2024, 1, 1, 12, 0, 0),
                completed_at=datetime(2024, 1, 1, 12, 5, 30),
            ),
            JobSummary(
                job_id="tad-2",
                status=JobStatus.RUNNING,
                created_at=datetime(2024, 1, 1, 12, 1, 0),
                completed_at=None,
            ),
        ]

        lines = format_job_list(jobs).splitlines()

        assert lines[0].split() == ["CreationTime", "CompletionTime", "Name", "Status"]
        assert "2024-01-01 12:00:00" in lines[1]
        assert "2024-01-01 12:05:30" in lines[1]
        assert lines[1].split()[-2:] == ["tad-1", "COMPLETED"]
        assert "N/A" in lines[2]
        assert lines[2].split()[-2:] == ["tad-2", "RUNNING"]


class TestExecute:
    """Exact output strings of each command."""

    def test_status(self, capsys):
        orchestrator = MagicMock()
        orchestrator.status.return_value.status = JobStatus.RUNNING

        execute(parse_arguments(["status", "tad-1"]), orchestrator, MagicMock())

        assert capsys.readouterr().out == "Status of this anomaly detection job is RUNNING\n"

    def test_delete(self, capsys):
        orchestrator = MagicMock()

        execute(parse_arguments(["delete", "tad-1"]), orchestrator, MagicMock())

        orchestrator.delete.assert_called_once_with("tad-1")
        assert capsys.readouterr().out == (
            "Successfully deleted anomaly detection job with name tad-1\n"
        )

    def test_retrieve_to_file(self, tmp_path, capsys):
        orchestrator = MagicMock()
        orchestrator.retrieve.return_value = pd.DataFrame(
            [["tad-1", "10.0.0.1", "2022-08-11T07:26:54Z", 1.0, "external", "EWMA", 1.0, False]],
            columns=[
                "id",
                "destinationIP",
                "flowEndSeconds",
                "throughput",
                "aggType",
                "algoType",
                "algoCalc",
                "anomaly",
            ],
        )
        path = tmp_path / "results.txt"

        execute(parse_arguments(["retrieve", "tad-1", "-f", str(path)]), orchestrator, MagicMock())

        content = path.read_text()
        assert content.splitlines()[0].split() == [
            "id",
            "destinationIP",
            "flowEndSeconds",
            "throughput",
            "aggType",
            "algoType",
            "algoCalc",
            "anomaly",
        ]
        assert "tad-1" in content
        assert capsys.readouterr().out == f"Results written to {path}\n"


class TestMain:
    """End-to-end runs of main() over the in-memory store."""

    def test_run_waits_for_completion(self, capsys):
        code = main(
            [
                *MEMORY,
                "run",
                "--algo",
                "EWMA",
                "--agg-flow",
                "svc",
                "--svc-port-name",
                "test_serviceportname",
            ]
        )

        out = capsys.readouterr().out.splitlines()
        assert code == 0
        assert out[0].startswith("Successfully started Throughput Anomaly Detection job with name: tad-")
        assert out[1] == "Status of this anomaly detection job is COMPLETED"

    def test_run_with_utc_window(self, capsys):
        code = main(
            [
                *MEMORY,
                "run",
                "--algo",
                "EWMA",
                "--agg-flow",
                "svc",
                "--svc-port-name",
                "test_serviceportname",
                "--start-time",
                "2022-08-11T06:26:54Z",
                "--end-time",
                "2022-08-12T00:00:00+00:00",
            ]
        )

        assert code == 0
        assert capsys.readouterr().out.splitlines()[1] == (
            "Status of this anomaly detection job is COMPLETED"
        )

    def test_list_empty(self, capsys):
        assert main([*MEMORY, "list"]) == 0

        assert capsys.readouterr().out.split() == ["CreationTime", "CompletionTime", "Name", "Status"]

    def test_seed(self, capsys):
        assert main([*MEMORY, "seed"]) == 0

        assert capsys.readouterr().out == "Inserted 90 flow records\n"

    def test_resync(self, capsys):
        assert main([*MEMORY, "resync"]) == 0

        assert capsys.readouterr().out == (
            "Resync finished: 0 jobs marked FAILED, 0 orphan resources removed\n"
        )

    def test_unknown_job(self, capsys):
        assert main([*MEMORY, "status", "tad-missing"]) == 1

        assert "Error: Job not found (job=tad-missing)\n" in capsys.readouterr().err

    def test_invalid_request(self, capsys):
        assert main([*MEMORY, "run", "--algo", "LSTM"]) == 1

        assert "Error: Unknown algorithm 'LSTM'" in capsys.readouterr().err

    @patch("src.core.database.psycopg2.connect")
    def test_unhealthy_database(self, mock_connect, capsys):
        mock_connection = MagicMock()
        mock_connection.cursor.return_value.fetchone.return_value = (0,)
        mock_connect.return_value = mock_connection

        assert main(["--store", "postgres", "list"]) == 1

        assert "Error: Database health check failed" in capsys.readouterr().err

"""
CLI for throughput anomaly detection jobs.

Usage:
    python -m src.tad.cli <command> [options]
"""

import argparse
import os
import sys
from datetime import datetime

import pandas as pd
import structlog

from src.core.logger import LOG_LEVELS, setup_logging
from src.flows.database import FlowDatabase, FlowStore, InMemoryFlowStore
from src.flows.seed import build_demo_flows

from .backend import LocalExecutionBackend
from .errors import InvalidParameters, TADError
from .models import Aggregation, JobParameters, JobSummary, ResourceRequest, TADConfig
from .orchestrator import JobOrchestrator
from .registry import InMemoryJobRegistry, JobDatabase
from .results import InMemoryResultStore, ResultDatabase

logger = structlog.get_logger(__name__)

JOB_KIND = "Throughput Anomaly Detection"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_arguments(argv: list[str] | None = None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Manage throughput anomaly detection jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Seed the flow store with demo records
        python -m src.tad.cli seed

        # Run an ARIMA job on one service and wait for it
        python -m src.tad.cli run --algo ARIMA --agg-flow svc \\
            --svc-port-name test_serviceportname

        # Inspect and clean up
        python -m src.tad.cli list
        python -m src.tad.cli retrieve tad-5ca4413d-6730-463e-8f95-86032ba28a4f
        python -m src.tad.cli delete tad-5ca4413d-6730-463e-8f95-86032ba28a4f
        """,
    )

    # Store settings
    parser.add_argument(
        "--store",
        choices=["postgres", "memory"],
        default=os.getenv("TAD_STORE", "postgres"),
        help="Where jobs, results and flows live (default: postgres or TAD_STORE env var)",
    )
    parser.add_argument(
        "--postgres-host",
        default=os.getenv("POSTGRES_HOST", "localhost"),
        help="PostgreSQL host",
    )
    parser.add_argument(
        "--postgres-port",
        type=int,
        default=int(os.getenv("POSTGRES_PORT", "5432")),
        help="PostgreSQL port",
    )
    parser.add_argument(
        "--postgres-db",
        default=os.getenv("POSTGRES_DB", "tad_db"),
        help="PostgreSQL database",
    )
    parser.add_argument(
        "--postgres-user",
        default=os.getenv("POSTGRES_USER", "tad"),
        help="PostgreSQL user",
    )
    parser.add_argument(
        "--postgres-password",
        default=os.getenv("POSTGRES_PASSWORD", "tad_password"),
        help="PostgreSQL password",
    )

    # Orchestrator behavior
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=float(os.getenv("TAD_POLL_INTERVAL", "3.0")),
        help="Seconds between status polls (default: 3.0)",
    )
    parser.add_argument(
        "--backend-workers",
        type=int,
        default=int(os.getenv("TAD_BACKEND_WORKERS", "3")),
        help="Concurrent jobs in the local backend (default: 3)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "WARNING"),
        help="Logging level (default: WARNING)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Start a job and wait for it")
    run.add_argument("--algo", required=True, help="ARIMA, EWMA or DBSCAN")
    run.add_argument(
        "--agg-flow",
        choices=["none", "pod", "svc", "external"],
        default="none",
        help="Aggregate flows by pod, service or external IP (default: none)",
    )
    run.add_argument("--pod-name", help="Pod name, with --agg-flow pod")
    run.add_argument("--pod-label", help="Pod label key:value, with --agg-flow pod")
    run.add_argument("--pod-namespace", help="Pod namespace, with --agg-flow pod")
    run.add_argument("--svc-port-name", help="Service port name, with --agg-flow svc")
    run.add_argument("--external-ip", help="Destination IP, with --agg-flow external")
    run.add_argument(
        "--ns-ignore-list",
        default="",
        help="Comma-separated namespaces whose flows are ignored",
    )
    run.add_argument("--start-time", help="Window start, e.g. 2022-08-11T06:26:50")
    run.add_argument("--end-time", help="Window end, e.g. 2022-08-12T08:26:54")
    run.add_argument("--driver-core-request", default="200m")
    run.add_argument("--driver-memory", default="512M")
    run.add_argument("--executor-core-request", default="200m")
    run.add_argument("--executor-memory", default="512M")
    run.add_argument("--executor-instances", type=int, default=1)
    run.add_argument(
        "--timeout",
        type=float,
        default=float(os.getenv("TAD_JOB_TIMEOUT", "600")),
        help="Seconds to wait for completion (default: 600)",
    )

    for name, help_text in (
        ("status", "Show the status of a job"),
        ("delete", "Delete a job and its results"),
        ("retrieve", "Print the results of a completed job"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("name", help="Job name, e.g. tad-<uuid>")
    commands.choices["retrieve"].add_argument(
        "-f", "--file", help="Write the results to this file instead of stdout"
    )

    commands.add_parser("list", help="List all jobs")
    commands.add_parser("resync", help="Reconcile jobs against the execution backend")
    commands.add_parser("seed", help="Insert demo flow records")

    return parser.parse_args(argv)


def build_config(args) -> TADConfig:
    """Build configuration from arguments"""
    return TADConfig(
        store=args.store,
        poll_interval_seconds=args.poll_interval,
        job_timeout_seconds=getattr(args, "timeout", TADConfig.job_timeout_seconds),
        backend_workers=args.backend_workers,
        postgres_host=args.postgres_host,
        postgres_port=args.postgres_port,
        postgres_database=args.postgres_db,
        postgres_user=args.postgres_user,
        postgres_password=args.postgres_password,
    )


def build_request(args) -> tuple[str, Aggregation, JobParameters]:
    """Translate run options into (algorithm, aggregation, parameters)"""
    aggregation = {
        "none": Aggregation.NONE,
        "svc": Aggregation.SERVICE,
        "external": Aggregation.EXTERNAL,
    }.get(args.agg_flow)
    if args.agg_flow == "pod":
        if args.pod_label:
            aggregation = Aggregation.POD_BY_LABEL
        elif args.pod_name:
            aggregation = Aggregation.POD_BY_NAME
        else:
            raise InvalidParameters("--agg-flow pod requires --pod-name or --pod-label")

    try:
        start_time = datetime.fromisoformat(args.start_time) if args.start_time else None
        end_time = datetime.fromisoformat(args.end_time) if args.end_time else None
    except ValueError as e:
        raise InvalidParameters(f"Invalid time window: {e}") from None

    parameters = JobParameters(
        start_time=start_time,
        end_time=end_time,
        pod_name=args.pod_name,
        pod_label=args.pod_label,
        pod_namespace=args.pod_namespace,
        service_port_name=args.svc_port_name,
        external_ip=args.external_ip,
        ns_ignore_list=tuple(ns.strip() for ns in args.ns_ignore_list.split(",") if ns.strip()),
        resources=ResourceRequest(
            driver_core_request=args.driver_core_request,
            driver_memory=args.driver_memory,
            executor_core_request=args.executor_core_request,
            executor_memory=args.executor_memory,
            executor_instances=args.executor_instances,
        ),
    )
    return args.algo, aggregation, parameters


def build_stores(config: TADConfig):
    """Create (registry, results, flows) for the configured store"""
    if config.store == "memory":
        flows = InMemoryFlowStore()
        # Nothing persists between runs, so give jobs something to read
        flows.insert_flows(build_demo_flows())
        return InMemoryJobRegistry(), InMemoryResultStore(), flows

    registry = JobDatabase(config)
    if not registry.check_health():
        raise RuntimeError("Database health check failed")
    results = ResultDatabase(config)
    flows = FlowDatabase(
        host=config.postgres_host,
        port=config.postgres_port,
        database=config.postgres_database,
        user=config.postgres_user,
        password=config.postgres_password,
    )
    registry.ensure_table_exists()
    results.ensure_table_exists()
    flows.ensure_table_exists()
    return registry, results, flows


def format_job_list(jobs: list[JobSummary]) -> str:
    """Render the job listing, oldest first"""
    columns = ["CreationTime", "CompletionTime", "Name", "Status"]
    if not jobs:
        return "   ".join(columns)
    frame = pd.DataFrame(
        [
            [
                job.created_at.strftime(TIME_FORMAT),
                job.completed_at.strftime(TIME_FORMAT) if job.completed_at else "N/A",
                job.job_id,
                job.status.value,
            ]
            for job in jobs
        ],
        columns=columns,
    )
    return frame.to_string(index=False, justify="left")


def format_results(results: pd.DataFrame) -> str:
    if results.empty:
        return "\t".join(results.columns)
    return results.to_string(index=False, justify="left")


def execute(args, orchestrator: JobOrchestrator, flows: FlowStore) -> None:
    """Run one command and print its output"""
    if args.command == "run":
        algorithm, aggregation, parameters = build_request(args)
        job_id = orchestrator.submit(algorithm, aggregation, parameters)
        print(f"Successfully started {JOB_KIND} job with name: {job_id}")
        status = orchestrator.wait(job_id, timeout=args.timeout)
        print(f"Status of this anomaly detection job is {status.value}")

    elif args.command == "status":
        view = orchestrator.status(args.name)
        print(f"Status of this anomaly detection job is {view.status.value}")

    elif args.command == "list":
        print(format_job_list(orchestrator.list_jobs()))

    elif args.command == "delete":
        orchestrator.delete(args.name)
        print(f"Successfully deleted anomaly detection job with name {args.name}")

    elif args.command == "retrieve":
        output = format_results(orchestrator.retrieve(args.name))
        if args.file:
            with open(args.file, "w") as f:
                f.write(output + "\n")
            print(f"Results written to {args.file}")
        else:
            print(output)

    elif args.command == "resync":
        report = orchestrator.resync()
        print(
            f"Resync finished: {len(report.failed_jobs)} jobs marked FAILED, "
            f"{len(report.removed_resources)} orphan resources removed"
        )

    elif args.command == "seed":
        inserted = flows.insert_flows(build_demo_flows())
        print(f"Inserted {inserted} flow records")


def main(argv: list[str] | None = None):
    """Main entry point"""
    args = parse_arguments(argv)

    setup_logging(level=LOG_LEVELS[args.log_level])

    backend = None
    try:
        config = build_config(args)
        registry, results, flows = build_stores(config)
        backend = LocalExecutionBackend(
            flows, config.method_config, max_workers=config.backend_workers
        )
        orchestrator = JobOrchestrator(registry, backend, results, config)
        orchestrator.start()

        execute(args, orchestrator, flows)
        return 0

    except TADError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Command failed", command=args.command, error=str(e), exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    finally:
        if backend is not None:
            backend.shutdown(wait=False)


if __name__ == "__main__":
    sys.exit(main())

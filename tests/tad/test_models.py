"""
Tests for orchestrator models (JobStatus, JobParameters, Job, TADConfig).
"""

from datetime import datetime

import pytest

from src.tad.models import (
    Aggregation,
    Algorithm,
    Job,
    JobParameters,
    JobStatus,
    JobSummary,
    ResourceRequest,
    StatusView,
    TADConfig,
)


class TestJobStatus:
    """Tests for the status state machine."""

    def test_terminal_statuses(self):
        """Only COMPLETED and FAILED are terminal."""
        assert {s for s in JobStatus if s.is_terminal} == {JobStatus.COMPLETED, JobStatus.FAILED}

    @pytest.mark.parametrize(
        "current,new",
        [
            (JobStatus.SUBMITTED, JobStatus.RUNNING),
            (JobStatus.SUBMITTED, JobStatus.COMPLETED),
            (JobStatus.SUBMITTED, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
        ],
    )
    def test_forward_transitions_allowed(self, current, new):
        assert current.can_transition_to(new)

    @pytest.mark.parametrize(
        "current,new",
        [
            (JobStatus.RUNNING, JobStatus.SUBMITTED),
            (JobStatus.RUNNING, JobStatus.RUNNING),
            (JobStatus.COMPLETED, JobStatus.FAILED),
            (JobStatus.FAILED, JobStatus.COMPLETED),
            (JobStatus.COMPLETED, JobStatus.RUNNING),
        ],
    )
    def test_backward_and_terminal_transitions_rejected(self, current, new):
        assert not current.can_transition_to(new)


class TestJobParameters:
    """Tests for JobParameters serialization."""

    def test_round_trip_preserves_every_field(self):
        params = JobParameters(
            start_time=datetime(2022, 8, 11, 6, 26, 50),
            end_time=datetime(2022, 8, 12, 8, 26, 54),
            pod_name="test_podName",
            pod_namespace="test_namespace",
            ns_ignore_list=("kube-system", "flow-aggregator"),
            resources=ResourceRequest(driver_memory="1G", executor_instances=2),
        )

        assert JobParameters.from_dict(params.to_dict()) == params

    def test_to_dict_is_json_friendly(self):
        data = JobParameters(start_time=datetime(2022, 8, 11), ns_ignore_list=("a",)).to_dict()

        assert data["start_time"] == "2022-08-11T00:00:00"
        assert data["end_time"] is None
        assert data["ns_ignore_list"] == ["a"]
        assert data["resources"]["driver_core_request"] == "200m"


class TestJob:
    """Tests for Job rows and their views."""

    def _job(self):
        return Job(
            id="tad-1",
            algorithm=Algorithm.ARIMA,
            aggregation=Aggregation.SERVICE,
            parameters=JobParameters(service_port_name="svc"),
            status=JobStatus.RUNNING,
            created_at=datetime(2024, 1, 1),
        )

    def test_with_status_stamps_completion_when_terminal(self):
        at = datetime(2024, 1, 2)
        job = self._job().with_status(JobStatus.COMPLETED, at)

        assert job.status is JobStatus.COMPLETED
        assert job.completed_at == at

    def test_with_status_leaves_completion_unset_when_not_terminal(self):
        job = self._job().with_status(JobStatus.RUNNING, datetime(2024, 1, 2))

        assert job.completed_at is None

    def test_views(self):
        job = self._job()

        view = StatusView.from_job(job)
        summary = JobSummary.from_job(job)

        assert view.job_id == summary.job_id == "tad-1"
        assert view.status is summary.status is JobStatus.RUNNING
        assert view.aggregation is Aggregation.SERVICE
        assert summary.completed_at is None


class TestTADConfig:
    """Tests for TADConfig dataclass."""

    def test_default_config(self):
        config = TADConfig()

        assert config.store == "postgres"
        assert config.poll_interval_seconds == 3.0
        assert config.job_timeout_seconds == 600.0
        assert config.backend_workers == 3
        assert set(config.method_config) == {"ARIMA", "EWMA", "DBSCAN"}

    def test_method_config_not_shared(self):
        first, second = TADConfig(), TADConfig()
        first.method_config["EWMA"]["alpha"] = 0.9

        assert second.method_config["EWMA"]["alpha"] == 0.5

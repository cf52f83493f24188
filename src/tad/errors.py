"""
Error taxonomy for the job orchestrator.

- InvalidParameters: caller error, rejected before any side effect
- NotFound: unknown job id
- NotReady: results requested before the job COMPLETED
- SchemaMismatch: a result row violates its aggregation's column layout
- DeadlineExceeded: polling timed out, the wait can be retried
- BackendUnavailable: transient execution backend failure
- BackendResourceNotFound: the backend no longer holds the resource
- ReconciliationError: startup resync could not run, the orchestrator stays closed
- OrchestratorNotReady: an operation arrived before startup completed
"""


class TADError(Exception):
    """Base exception for the orchestrator.

    Carries the job id and last known status so that user-visible failures
    can be debugged without a follow-up query.
    """

    def __init__(self, message: str, job_id: str | None = None, last_status=None):
        self.job_id = job_id
        self.last_status = last_status
        details = []
        if job_id is not None:
            details.append(f"job={job_id}")
        if last_status is not None:
            details.append(f"last_status={getattr(last_status, 'value', last_status)}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class InvalidParameters(TADError):
    pass


class NotFound(TADError):
    pass


class NotReady(TADError):
    pass


class SchemaMismatch(TADError):
    pass


class DeadlineExceeded(TADError):
    pass


class BackendUnavailable(TADError):
    pass


class BackendResourceNotFound(TADError):
    pass


class ReconciliationError(TADError):
    pass


class OrchestratorNotReady(TADError):
    pass

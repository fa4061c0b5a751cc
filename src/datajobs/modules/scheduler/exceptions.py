class DataJobsError(Exception):
    """Base class for errors raised by the job engine."""


class JobNotFoundError(DataJobsError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobConfigurationError(DataJobsError):
    """A job is structurally unable to run (wrong type, missing workflow or function)."""


class FunctionNotFoundError(JobConfigurationError):
    pass


class StepConfigurationError(DataJobsError):
    """A single workflow step is misconfigured (missing query, unknown type...)."""


class MergeError(StepConfigurationError):
    pass


class QueryExecutionError(DataJobsError):
    """A remote query backend reported a failure."""


class WorkflowStepError(DataJobsError):
    """Raised to abort a workflow whose error handling is 'stop'."""

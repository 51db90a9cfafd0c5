"""Job store exceptions."""


class JobNotFoundError(KeyError):
    """Raised by mutating store operations for an unknown job id."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job '{self.job_id}' not found"


class JobStateError(RuntimeError):
    """An update would break a job invariant (a synchronization bug, not user error)."""

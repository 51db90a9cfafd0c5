"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from app.jobs.models import JobInputs, ProviderId, TranscriptionJob


class JobDispatcher(ABC):
    """Abstract interface for dispatching transcription jobs to providers."""

    @abstractmethod
    async def submit(self, inputs: JobInputs, providers: Iterable[ProviderId]) -> str:
        """Create a job and start its provider calls. Returns job_id without waiting."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[TranscriptionJob]:
        """Get current state of a job."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start accepting jobs."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop gracefully, cancelling in-flight provider calls."""
        ...

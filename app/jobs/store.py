"""In-memory job table.

Every read and write goes through one re-entrant lock, so a provider outcome
and the job status it implies are applied as a single atomic update even when
two providers finish at the same moment (or from executor threads).
"""

import logging
import uuid
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional

from app.jobs.errors import JobNotFoundError, JobStateError
from app.jobs.models import (
    JobInputs,
    JobMode,
    JobStatus,
    ProviderId,
    ProviderResult,
    ProviderStatus,
    TranscriptionJob,
    TranscriptionOutcome,
    utcnow,
)

logger = logging.getLogger(__name__)


class JobStore:
    """Authoritative table of transcription jobs. Sole mutator of job state."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._jobs: Dict[str, TranscriptionJob] = {}
        self._lock = RLock()
        self._clock = clock

    def create_job(self, inputs: JobInputs, providers: Iterable[ProviderId]) -> str:
        requested = tuple(ProviderId(p) for p in providers)
        if not requested:
            raise ValueError("At least one provider is required")
        if len(set(requested)) != len(requested):
            raise ValueError(f"Duplicate providers requested: {[p.value for p in requested]}")

        comparison = len(requested) > 1
        with self._lock:
            job = TranscriptionJob(
                inputs=inputs,
                mode=JobMode.COMPARISON if comparison else JobMode.SINGLE,
                providers=requested,
                provider_results=(
                    {p: ProviderResult() for p in requested} if comparison else None
                ),
                created_at=self._clock(),
            )
            while job.id in self._jobs:
                job.id = str(uuid.uuid4())
            self._jobs[job.id] = job
        return job.id

    def get(self, job_id: str) -> Optional[TranscriptionJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def snapshot(self) -> List[TranscriptionJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def set_status(self, job_id: str, status: JobStatus) -> None:
        """Move a job forward to a non-terminal ``status``.

        Terminal states are only reached through the ``record_*`` operations,
        which also write the outcome. Re-setting the current status is a no-op.
        """
        status = JobStatus(status)
        if status.is_terminal:
            raise JobStateError(f"Use record_* operations to finish job {job_id}")
        with self._lock:
            job = self._require(job_id)
            self._transition(job, status)

    def mark_provider_started(self, job_id: str, provider: ProviderId) -> None:
        with self._lock:
            job = self._require(job_id)
            now = self._clock()
            if job.provider_results is not None:
                slot = self._slot(job, provider)
                if slot.started_at is None:
                    slot.started_at = now
            elif provider not in job.providers:
                raise JobStateError(f"Job {job_id} did not request provider '{provider.value}'")
            if job.started_at is None:
                job.started_at = now
            if job.status is JobStatus.PENDING:
                self._transition(job, JobStatus.PROCESSING)

    def record_provider_outcome(
        self, job_id: str, provider: ProviderId, outcome: TranscriptionOutcome
    ) -> JobStatus:
        """Write the terminal result for one provider of a comparison job.

        The job becomes terminal once every requested provider has settled:
        completed if any provider succeeded, failed if all of them failed.
        Returns the job status after the update.
        """
        with self._lock:
            job = self._require(job_id)
            if job.mode is not JobMode.COMPARISON:
                raise JobStateError(f"Job {job_id} is not a comparison job")
            slot = self._slot(job, provider)
            new_status = ProviderStatus.COMPLETED if outcome.success else ProviderStatus.FAILED

            if slot.status.is_terminal:
                if slot.status is new_status and slot.outcome == outcome:
                    return job.status
                raise JobStateError(
                    f"Provider '{provider.value}' of job {job_id} already settled as {slot.status.value}"
                )

            now = self._clock()
            slot.status = new_status
            slot.outcome = outcome
            slot.completed_at = now
            if slot.started_at is None:
                slot.started_at = now

            if job.status is JobStatus.PENDING:
                self._transition(job, JobStatus.PROCESSING)
            if job.all_providers_settled():
                if job.any_provider_succeeded():
                    self._transition(job, JobStatus.COMPLETED)
                else:
                    job.error = "; ".join(
                        f"{p.value}: {r.outcome.error_message}"
                        for p, r in job.provider_results.items()
                    )
                    self._transition(job, JobStatus.FAILED)
            return job.status

    def record_single_outcome(self, job_id: str, outcome: TranscriptionOutcome) -> JobStatus:
        with self._lock:
            job = self._require(job_id)
            if job.mode is not JobMode.SINGLE:
                raise JobStateError(f"Job {job_id} is not a single-provider job")
            if outcome.provider not in job.providers:
                raise JobStateError(
                    f"Job {job_id} did not request provider '{outcome.provider.value}'"
                )
            if job.status.is_terminal:
                if job.result == outcome or (
                    not outcome.success and job.error == outcome.error_message
                ):
                    return job.status
                raise JobStateError(f"Job {job_id} already settled as {job.status.value}")

            if outcome.success:
                job.result = outcome
                self._transition(job, JobStatus.COMPLETED)
            else:
                job.error = outcome.error_message or "Transcription failed"
                self._transition(job, JobStatus.FAILED)
            return job.status

    def evict(self, job_id: str) -> bool:
        """Remove a terminal job. Returns False if the id is unknown."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if not job.status.is_terminal:
                raise JobStateError(f"Refusing to evict job {job_id} in status {job.status.value}")
            del self._jobs[job_id]
            return True

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _require(self, job_id: str) -> TranscriptionJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    @staticmethod
    def _slot(job: TranscriptionJob, provider: ProviderId) -> ProviderResult:
        try:
            return job.provider_results[ProviderId(provider)]
        except (KeyError, ValueError):
            raise JobStateError(
                f"Job {job.id} did not request provider '{getattr(provider, 'value', provider)}'"
            ) from None

    def _transition(self, job: TranscriptionJob, status: JobStatus) -> None:
        if status is job.status:
            return
        if job.status.is_terminal or status.rank < job.status.rank:
            raise JobStateError(
                f"Illegal transition for job {job.id}: {job.status.value} -> {status.value}"
            )
        job.status = status
        if status.is_terminal:
            job.completed_at = self._clock()
            logger.info("Job %s %s", job.id, status.value)

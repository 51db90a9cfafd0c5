"""Read-only job projection served to polling clients."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.jobs.models import JobMode, JobStatus, TranscriptionJob, TranscriptionOutcome
from app.jobs.store import JobStore


class ProviderResultView(BaseModel):
    status: str
    result: Optional[TranscriptionOutcome] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ComparisonSummary(BaseModel):
    """Which provider finished its transcription first, and by how much."""

    faster: str
    time_difference_seconds: float


class JobView(BaseModel):
    job_id: str
    status: JobStatus
    mode: JobMode
    providers: List[str]
    file_name: str
    language_code: str
    options: Dict[str, Any]
    result: Optional[TranscriptionOutcome] = None
    error: Optional[str] = None
    provider_results: Optional[Dict[str, ProviderResultView]] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_time_seconds: Optional[float] = None
    comparison: Optional[ComparisonSummary] = None

    @classmethod
    def from_job(cls, job: TranscriptionJob) -> "JobView":
        provider_results = None
        if job.provider_results is not None:
            provider_results = {}
            for provider, slot in job.provider_results.items():
                outcome = slot.outcome
                provider_results[provider.value] = ProviderResultView(
                    status=slot.status.value,
                    result=outcome if outcome is not None and outcome.success else None,
                    error=outcome.error_message if outcome is not None and not outcome.success else None,
                    started_at=slot.started_at,
                    completed_at=slot.completed_at,
                )
        return cls(
            job_id=job.id,
            status=job.status,
            mode=job.mode,
            providers=[p.value for p in job.providers],
            file_name=job.inputs.file_name,
            language_code=job.inputs.language_code,
            options=dict(job.inputs.options),
            result=job.result,
            error=job.error,
            provider_results=provider_results,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            total_time_seconds=_total_time(job),
            comparison=_compare(job),
        )


def _total_time(job: TranscriptionJob) -> Optional[float]:
    if job.completed_at is None:
        return None
    begun = job.started_at or job.created_at
    return round((job.completed_at - begun).total_seconds(), 2)


def _compare(job: TranscriptionJob) -> Optional[ComparisonSummary]:
    """Only for comparison jobs in which every provider succeeded."""
    if job.provider_results is None or not job.status.is_terminal:
        return None
    outcomes = [slot.outcome for slot in job.provider_results.values()]
    if any(o is None or not o.success for o in outcomes):
        return None
    fastest = min(outcomes, key=lambda o: o.duration_seconds)
    slowest = max(o.duration_seconds for o in outcomes)
    return ComparisonSummary(
        faster=fastest.provider.value,
        time_difference_seconds=round(slowest - fastest.duration_seconds, 2),
    )


class JobQueryService:
    """Thin read-only facade over the job store. Never waits on provider tasks."""

    def __init__(self, store: JobStore):
        self._store = store

    def query(self, job_id: str) -> Optional[JobView]:
        job = self._store.get(job_id)
        if job is None:
            return None
        return JobView.from_job(job)

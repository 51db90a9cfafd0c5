"""Transcription job data model for async processing."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderId(str, Enum):
    AWS = "aws"
    DEEPGRAM = "deepgram"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        # completed and failed share a rank: neither follows the other
        return {"pending": 0, "processing": 1}.get(self.value, 2)


class ProviderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ProviderStatus.PENDING


class JobMode(str, Enum):
    SINGLE = "single"
    COMPARISON = "comparison"


class TranscriptionOutcome(BaseModel):
    """Normalized result of one provider call, successful or not."""
    provider: ProviderId
    success: bool
    transcript: Optional[str] = None
    confidence: Optional[float] = None
    detected_language: Optional[str] = None
    error_message: Optional[str] = None
    duration_seconds: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def failure(
        cls, provider: ProviderId, message: str, duration_seconds: float = 0.0, **metadata
    ) -> "TranscriptionOutcome":
        return cls(
            provider=provider,
            success=False,
            error_message=message,
            duration_seconds=round(duration_seconds, 2),
            metadata=metadata,
        )


class ProviderResult(BaseModel):
    """Per-provider slot of a comparison job."""
    status: ProviderStatus = ProviderStatus.PENDING
    outcome: Optional[TranscriptionOutcome] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobInputs(BaseModel):
    """Immutable inputs captured when a job is created."""
    file_name: str
    file_path: str
    language_code: str = "en-US"
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class TranscriptionJob(BaseModel):
    """Tracks the lifecycle of one submitted transcription request."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    inputs: JobInputs
    mode: JobMode
    providers: Tuple[ProviderId, ...]
    result: Optional[TranscriptionOutcome] = None
    error: Optional[str] = None
    provider_results: Optional[Dict[ProviderId, ProviderResult]] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def all_providers_settled(self) -> bool:
        if self.provider_results is None:
            return False
        return all(r.status.is_terminal for r in self.provider_results.values())

    def any_provider_succeeded(self) -> bool:
        if self.provider_results is None:
            return False
        return any(
            r.status is ProviderStatus.COMPLETED for r in self.provider_results.values()
        )

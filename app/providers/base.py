"""Base adapter interface for speech-to-text providers."""

import time
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import Any, Dict, FrozenSet, Optional

from app.jobs.models import ProviderId, TranscriptionOutcome


class TranscriptionAdapter(ABC):
    """Abstract base class for transcription back-ends.

    To add a provider:
    1. Add its id to ``ProviderId``
    2. Subclass TranscriptionAdapter and implement transcribe()
    3. Register an instance in ``app.providers.registry.build_registry``

    Implementations must never raise out of transcribe(): every failure mode
    (bad credentials, quota, unsupported format, network errors) comes back
    as a failed TranscriptionOutcome.
    """

    provider_id: ProviderId
    supported_formats: FrozenSet[str] = frozenset()

    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        file_name: str,
        language: str = "en-US",
        options: Optional[Dict[str, Any]] = None,
    ) -> TranscriptionOutcome:
        """Run one transcription call and return the normalized outcome."""
        ...

    def is_configured(self) -> bool:
        """Whether credentials are present. Unconfigured adapters still report failures."""
        return True

    def is_format_supported(self, file_name: str) -> bool:
        return file_extension(file_name) in self.supported_formats

    def unsupported_format(self, file_name: str, started: float) -> TranscriptionOutcome:
        ext = file_extension(file_name) or "unknown"
        return self.failed(
            f"Unsupported format: {ext}. {self.display_name} supports: "
            f"{', '.join(sorted(self.supported_formats))}",
            started,
        )

    @property
    def display_name(self) -> str:
        return self.provider_id.value

    def failed(self, message: str, started: float, **metadata) -> TranscriptionOutcome:
        return TranscriptionOutcome.failure(
            self.provider_id, message, elapsed_since(started), **metadata
        )


def file_extension(file_name: str) -> str:
    return PurePath(file_name).suffix.lstrip(".").lower()


def elapsed_since(started: float) -> float:
    return round(time.monotonic() - started, 2)

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from app.jobs.models import JobInputs, ProviderId, TranscriptionOutcome
from app.providers.base import TranscriptionAdapter


class FakeAdapter(TranscriptionAdapter):
    """Scripted provider: succeeds, reports a failure, or raises, after an optional wait."""

    supported_formats = frozenset({"wav", "mp3"})

    def __init__(
        self,
        provider_id: ProviderId,
        transcript: str = "hello",
        error: Optional[str] = None,
        raises: Optional[BaseException] = None,
        delay: float = 0.0,
        gate: Optional[asyncio.Event] = None,
    ):
        self.provider_id = provider_id
        self.transcript = transcript
        self.error = error
        self.raises = raises
        self.delay = delay
        self.gate = gate
        self.calls: List[Dict[str, Any]] = []

    async def transcribe(self, audio, file_name, language="en-US", options=None):
        self.calls.append(
            {"audio": audio, "file_name": file_name, "language": language, "options": options}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return TranscriptionOutcome.failure(self.provider_id, self.error)
        return TranscriptionOutcome(
            provider=self.provider_id, success=True, transcript=self.transcript, confidence=0.9
        )


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "clip.wav"
    path.write_bytes(b"RIFF\x00\x00\x00\x00WAVEfmt ")
    return path


@pytest.fixture
def inputs(audio_file):
    return JobInputs(
        file_name="clip.wav",
        file_path=str(audio_file),
        language_code="en-US",
        options={"deepgram_model": "nova-3"},
    )


def ok(provider: ProviderId, transcript: str = "hello") -> TranscriptionOutcome:
    return TranscriptionOutcome(provider=provider, success=True, transcript=transcript)


def failed(provider: ProviderId, message: str = "boom") -> TranscriptionOutcome:
    return TranscriptionOutcome.failure(provider, message)

"""Deepgram pre-recorded transcription adapter (REST over httpx)."""

import logging
import mimetypes
import time
from typing import Any, Dict, Optional

import httpx

from app.jobs.models import ProviderId, TranscriptionOutcome
from app.providers.base import TranscriptionAdapter, elapsed_since

logger = logging.getLogger(__name__)

DEEPGRAM_SUPPORTED_FORMATS = frozenset({
    "mp3", "wav", "flac", "ogg", "m4a", "mp4", "aac", "wma", "opus", "amr",
    "3gp", "aiff", "aif", "ape", "avi", "dss", "m4p", "m4v", "mov", "mpc",
    "mpg", "mpeg", "qt", "ra", "rm", "voc", "wv", "webm",
})


class DeepgramAdapter(TranscriptionAdapter):
    """Sends the whole file to ``/v1/listen`` and reads the first channel's best alternative."""

    provider_id = ProviderId.DEEPGRAM
    supported_formats = DEEPGRAM_SUPPORTED_FORMATS

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepgram.com",
        default_model: str = "nova-3",
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._timeout = timeout
        self._transport = transport

    @property
    def display_name(self) -> str:
        return "Deepgram"

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def transcribe(
        self,
        audio: bytes,
        file_name: str,
        language: str = "en-US",
        options: Optional[Dict[str, Any]] = None,
    ) -> TranscriptionOutcome:
        started = time.monotonic()
        options = options or {}
        model = options.get("deepgram_model") or self._default_model

        if not self.is_format_supported(file_name):
            return self.unsupported_format(file_name, started)
        if not self._api_key:
            return self.failed("Deepgram API key is not configured", started, model=model)

        params = {
            "model": model,
            "smart_format": "true",
            "punctuate": "true",
            "diarize": "true",
        }
        # Deepgram takes the primary subtag: "en", not "en-US"
        if language == "auto":
            params["detect_language"] = "true"
        else:
            params["language"] = language.split("-")[0]

        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        headers = {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": content_type,
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post("/v1/listen", params=params, headers=headers, content=audio)
            if response.status_code >= 400:
                return self.failed(_error_message(response), started, model=model)
            payload = response.json()
            channel = payload["results"]["channels"][0]
            alternative = channel["alternatives"][0]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Deepgram request for %s failed: %s", file_name, e)
            return self.failed(str(e) or type(e).__name__, started, model=model)

        return TranscriptionOutcome(
            provider=self.provider_id,
            success=True,
            transcript=alternative.get("transcript", ""),
            confidence=alternative.get("confidence"),
            detected_language=channel.get("detected_language"),
            duration_seconds=elapsed_since(started),
            metadata={
                "model": model,
                "request_id": payload.get("metadata", {}).get("request_id"),
            },
        )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Deepgram returned HTTP {response.status_code}"
    if not isinstance(body, dict):
        return f"Deepgram returned HTTP {response.status_code}"
    message = body.get("err_msg") or body.get("message") or body.get("reason")
    if message:
        return message
    return f"Deepgram returned HTTP {response.status_code}"

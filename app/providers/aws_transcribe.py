"""AWS Transcribe adapter.

Uploads the audio to S3, starts a batch transcription job, polls it until it
leaves the QUEUED/IN_PROGRESS states, then downloads the transcript JSON.
boto3 is synchronous, so every SDK call runs in the loop's default executor.
"""

import asyncio
import functools
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from app.jobs.models import ProviderId, TranscriptionOutcome
from app.providers.base import TranscriptionAdapter, elapsed_since, file_extension

logger = logging.getLogger(__name__)

AWS_SUPPORTED_FORMATS = frozenset({"amr", "flac", "m4a", "mp3", "mp4", "ogg", "webm", "wav"})

_RUNNING_STATES = ("QUEUED", "IN_PROGRESS")


class AwsTranscribeAdapter(TranscriptionAdapter):
    provider_id = ProviderId.AWS
    supported_formats = AWS_SUPPORTED_FORMATS

    def __init__(
        self,
        region: str,
        bucket: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        poll_interval: float = 5.0,
        max_speaker_labels: int = 10,
        s3_client=None,
        transcribe_client=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._region = region
        self._bucket = bucket
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._poll_interval = poll_interval
        self._max_speaker_labels = max_speaker_labels
        self._s3 = s3_client
        self._transcribe = transcribe_client
        self._transport = transport
        self._clock = clock

    @property
    def display_name(self) -> str:
        return "AWS Transcribe"

    def is_configured(self) -> bool:
        return bool(self._bucket)

    def _clients(self):
        if self._s3 is None or self._transcribe is None:
            credentials = {}
            if self._access_key_id and self._secret_access_key:
                credentials = {
                    "aws_access_key_id": self._access_key_id,
                    "aws_secret_access_key": self._secret_access_key,
                }
            session = boto3.Session(region_name=self._region, **credentials)
            if self._s3 is None:
                self._s3 = session.client("s3")
            if self._transcribe is None:
                self._transcribe = session.client("transcribe")
        return self._s3, self._transcribe

    async def _call(self, fn, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, **kwargs))

    async def transcribe(
        self,
        audio: bytes,
        file_name: str,
        language: str = "en-US",
        options: Optional[Dict[str, Any]] = None,
    ) -> TranscriptionOutcome:
        started = time.monotonic()
        # unique per call, even within one millisecond
        stamp = f"{int(self._clock() * 1000)}-{uuid.uuid4().hex}"
        job_name = f"transcription-{stamp}"

        if not self.is_format_supported(file_name):
            return self.unsupported_format(file_name, started)
        if not self._bucket:
            return self.failed("AWS S3 bucket is not configured", started)

        try:
            s3, transcribe = self._clients()

            key = f"transcriptions/{stamp}-{file_name}"
            await self._call(s3.put_object, Bucket=self._bucket, Key=key, Body=audio)
            media_uri = f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

            request: Dict[str, Any] = {
                "TranscriptionJobName": job_name,
                "MediaFormat": file_extension(file_name),
                "Media": {"MediaFileUri": media_uri},
                "Settings": {
                    "ShowSpeakerLabels": True,
                    "MaxSpeakerLabels": self._max_speaker_labels,
                },
            }
            if language == "auto":
                request["IdentifyLanguage"] = True
            else:
                request["LanguageCode"] = language
            await self._call(transcribe.start_transcription_job, **request)

            while True:
                await asyncio.sleep(self._poll_interval)
                response = await self._call(
                    transcribe.get_transcription_job, TranscriptionJobName=job_name
                )
                job = response.get("TranscriptionJob")
                if not job:
                    return self.failed("Job not found", started, job_name=job_name)
                state = job.get("TranscriptionJobStatus")
                if state not in _RUNNING_STATES:
                    break

            if state == "FAILED":
                return self.failed(
                    job.get("FailureReason") or "Transcription failed", started, job_name=job_name
                )
            if state != "COMPLETED":
                return self.failed(f"Unexpected job status: {state}", started, job_name=job_name)

            transcript_uri = (job.get("Transcript") or {}).get("TranscriptFileUri")
            if not transcript_uri:
                return self.failed("Transcript URL not found", started, job_name=job_name)

            async with httpx.AsyncClient(transport=self._transport) as client:
                transcript_response = await client.get(transcript_uri)
                transcript_response.raise_for_status()
            data = transcript_response.json()
            transcript = data["results"]["transcripts"][0]["transcript"]
        except (BotoCoreError, ClientError, httpx.HTTPError, ValueError, KeyError, IndexError) as e:
            logger.warning("AWS Transcribe job %s failed: %s", job_name, e)
            return self.failed(str(e) or type(e).__name__, started, job_name=job_name)

        return TranscriptionOutcome(
            provider=self.provider_id,
            success=True,
            transcript=transcript,
            detected_language=job.get("LanguageCode") if language == "auto" else None,
            duration_seconds=elapsed_since(started),
            metadata={"job_name": job_name},
        )

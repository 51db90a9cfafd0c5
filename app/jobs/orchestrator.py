"""In-process orchestrator that fans a job out to its providers with asyncio.

Each requested provider runs as its own task, so a slow or failing provider
never holds up or aborts its siblings. A per-job settle task waits for all
of them and then releases the uploaded input file exactly once.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Coroutine, Iterable, List, Optional, Set

from app.jobs.dispatcher import JobDispatcher
from app.jobs.models import (
    JobInputs,
    JobMode,
    ProviderId,
    TranscriptionJob,
    TranscriptionOutcome,
)
from app.jobs.store import JobStore
from app.providers.base import TranscriptionAdapter
from app.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class TranscriptionOrchestrator(JobDispatcher):
    """Creates jobs and runs one concurrent task per requested provider."""

    def __init__(
        self,
        store: JobStore,
        registry: ProviderRegistry,
        release_input: Optional[Callable[[str], Any]] = None,
        provider_timeout: float = 600.0,
    ):
        """
        release_input: callable(file_path)
            Frees the job's input artifact (e.g. deletes the uploaded file).
            Called once per job after every provider task has settled.
        """
        self._store = store
        self._registry = registry
        self._release_input = release_input
        self._provider_timeout = provider_timeout
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

    @property
    def store(self) -> JobStore:
        return self._store

    async def submit(self, inputs: JobInputs, providers: Iterable[ProviderId]) -> str:
        if not self._running:
            raise RuntimeError("Orchestrator is not running")

        requested = tuple(ProviderId(p) for p in providers)
        adapters = {p: self._registry.require(p) for p in requested}
        job_id = self._store.create_job(inputs, requested)
        job = self._store.get(job_id)

        provider_tasks = [
            self._spawn(self._run_provider(job, p, adapters[p]), name=f"{job_id}:{p.value}")
            for p in requested
        ]
        self._spawn(self._settle(job, provider_tasks), name=f"{job_id}:settle")

        logger.info(
            "Job %s submitted (%s: %s)",
            job_id, job.mode.value, ", ".join(p.value for p in requested),
        )
        return job_id

    async def get_status(self, job_id: str) -> Optional[TranscriptionJob]:
        return self._store.get(job_id)

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait until every in-flight job has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            await asyncio.sleep(0)

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_provider(
        self, job: TranscriptionJob, provider: ProviderId, adapter: TranscriptionAdapter
    ) -> TranscriptionOutcome:
        self._store.mark_provider_started(job.id, provider)
        started = time.monotonic()

        try:
            outcome = await asyncio.wait_for(
                self._invoke(job, adapter), timeout=self._provider_timeout
            )
        except asyncio.TimeoutError:
            outcome = TranscriptionOutcome.failure(
                provider,
                f"{provider.value} timed out after {self._provider_timeout:g}s",
                time.monotonic() - started,
            )
        except Exception as e:
            logger.exception("Provider %s raised for job %s", provider.value, job.id)
            outcome = TranscriptionOutcome.failure(
                provider, f"{type(e).__name__}: {e}", time.monotonic() - started
            )

        if outcome.success:
            logger.info("Provider %s completed job %s", provider.value, job.id)
        else:
            logger.warning(
                "Provider %s failed for job %s: %s", provider.value, job.id, outcome.error_message
            )

        if job.mode is JobMode.COMPARISON:
            self._store.record_provider_outcome(job.id, provider, outcome)
        else:
            self._store.record_single_outcome(job.id, outcome)
        return outcome

    async def _invoke(self, job: TranscriptionJob, adapter: TranscriptionAdapter) -> TranscriptionOutcome:
        loop = asyncio.get_running_loop()
        audio = await loop.run_in_executor(None, Path(job.inputs.file_path).read_bytes)
        return await adapter.transcribe(
            audio,
            job.inputs.file_name,
            job.inputs.language_code,
            dict(job.inputs.options),
        )

    async def _settle(self, job: TranscriptionJob, provider_tasks: List[asyncio.Task]) -> None:
        try:
            results = await asyncio.gather(*provider_tasks, return_exceptions=True)
        finally:
            self._release(job)

        for provider, result in zip(job.providers, results):
            if isinstance(result, asyncio.CancelledError):
                logger.info("Provider %s cancelled for job %s", provider.value, job.id)
            elif isinstance(result, BaseException):
                logger.error(
                    "Provider task %s for job %s raised", provider.value, job.id, exc_info=result
                )

    def _release(self, job: TranscriptionJob) -> None:
        if self._release_input is None:
            return
        try:
            self._release_input(job.inputs.file_path)
        except OSError:
            logger.exception("Failed to release input %s of job %s", job.inputs.file_path, job.id)

import asyncio
import logging

import pytest

from app.jobs.models import JobMode, JobStatus, ProviderId, ProviderStatus
from app.jobs.orchestrator import TranscriptionOrchestrator
from app.jobs.query import JobQueryService
from app.jobs.store import JobStore
from app.providers.registry import ProviderRegistry
from conftest import FakeAdapter

AWS = ProviderId.AWS
DG = ProviderId.DEEPGRAM


def _orchestrator(*adapters, timeout=5.0):
    store = JobStore()
    released = []
    orchestrator = TranscriptionOrchestrator(
        store,
        ProviderRegistry(adapters),
        release_input=released.append,
        provider_timeout=timeout,
    )
    return orchestrator, store, released


@pytest.mark.asyncio
async def test_submit_returns_before_providers_finish(inputs) -> None:
    gate = asyncio.Event()
    orchestrator, store, released = _orchestrator(
        FakeAdapter(AWS, gate=gate), FakeAdapter(DG, gate=gate)
    )
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    job = store.get(job_id)
    assert job.status in (JobStatus.PENDING, JobStatus.PROCESSING)
    assert not job.status.is_terminal

    gate.set()
    await orchestrator.wait_idle()
    assert store.get(job_id).status is JobStatus.COMPLETED
    assert released == [inputs.file_path]


@pytest.mark.asyncio
async def test_one_success_one_failure_completes_job(inputs) -> None:
    orchestrator, store, released = _orchestrator(
        FakeAdapter(AWS, transcript="hello", delay=0.01),
        FakeAdapter(DG, error="quota exceeded", delay=0.02),
    )
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.provider_results[AWS].status is ProviderStatus.COMPLETED
    assert job.provider_results[AWS].outcome.transcript == "hello"
    assert job.provider_results[DG].status is ProviderStatus.FAILED
    assert job.provider_results[DG].outcome.error_message == "quota exceeded"
    assert job.completed_at is not None
    assert released == [inputs.file_path]


@pytest.mark.asyncio
async def test_all_providers_failing_fails_job(inputs) -> None:
    orchestrator, store, released = _orchestrator(
        FakeAdapter(AWS, error="bad credentials"),
        FakeAdapter(DG, raises=ConnectionError("reset by peer")),
    )
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.status is JobStatus.FAILED
    assert job.provider_results[AWS].outcome.error_message == "bad credentials"
    assert job.provider_results[DG].outcome.error_message == "ConnectionError: reset by peer"
    assert released == [inputs.file_path]


@pytest.mark.asyncio
async def test_single_provider_that_raises_fails_job(inputs) -> None:
    orchestrator, store, released = _orchestrator(FakeAdapter(AWS, raises=RuntimeError("boom")))
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS])
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.mode is JobMode.SINGLE
    assert job.status is JobStatus.FAILED
    assert job.result is None
    assert job.error == "RuntimeError: boom"
    assert released == [inputs.file_path]


@pytest.mark.asyncio
async def test_single_provider_success_sets_result(inputs) -> None:
    adapter = FakeAdapter(DG, transcript="good morning")
    orchestrator, store, _ = _orchestrator(adapter)
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [DG])
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.result.transcript == "good morning"
    assert job.provider_results is None
    assert adapter.calls[0]["audio"].startswith(b"RIFF")
    assert adapter.calls[0]["file_name"] == "clip.wav"
    assert adapter.calls[0]["language"] == "en-US"
    assert adapter.calls[0]["options"] == {"deepgram_model": "nova-3"}


@pytest.mark.asyncio
async def test_simultaneous_completions_record_both_results(inputs, caplog) -> None:
    caplog.set_level(logging.INFO, logger="app.jobs.store")
    gate = asyncio.Event()
    orchestrator, store, _ = _orchestrator(
        FakeAdapter(AWS, transcript="a", gate=gate), FakeAdapter(DG, transcript="b", gate=gate)
    )
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await asyncio.sleep(0.01)
    gate.set()
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.provider_results[AWS].outcome.transcript == "a"
    assert job.provider_results[DG].outcome.transcript == "b"
    terminal = [r for r in caplog.records if r.getMessage() == f"Job {job_id} completed"]
    assert len(terminal) == 1


@pytest.mark.asyncio
async def test_providers_run_concurrently(inputs) -> None:
    orchestrator, store, _ = _orchestrator(
        FakeAdapter(AWS, delay=0.2), FakeAdapter(DG, delay=0.2)
    )
    await orchestrator.start()
    loop = asyncio.get_running_loop()

    started = loop.time()
    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await orchestrator.wait_idle()

    assert loop.time() - started < 0.35
    assert store.get(job_id).status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_timed_out_provider_is_recorded_as_failed(inputs) -> None:
    orchestrator, store, released = _orchestrator(
        FakeAdapter(AWS, delay=5), FakeAdapter(DG, transcript="quick"), timeout=0.05
    )
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.provider_results[AWS].status is ProviderStatus.FAILED
    assert job.provider_results[AWS].outcome.error_message == "aws timed out after 0.05s"
    assert released == [inputs.file_path]


@pytest.mark.asyncio
async def test_missing_input_file_fails_every_provider(inputs, audio_file) -> None:
    orchestrator, store, _ = _orchestrator(FakeAdapter(AWS), FakeAdapter(DG))
    await orchestrator.start()
    audio_file.unlink()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await orchestrator.wait_idle()

    job = store.get(job_id)
    assert job.status is JobStatus.FAILED
    assert job.provider_results[AWS].outcome.error_message.startswith("FileNotFoundError")


@pytest.mark.asyncio
async def test_observed_statuses_never_go_backwards(inputs) -> None:
    orchestrator, store, _ = _orchestrator(
        FakeAdapter(AWS, delay=0.05), FakeAdapter(DG, error="nope", delay=0.1)
    )
    query = JobQueryService(store)
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    observed = []
    while True:
        view = query.query(job_id)
        observed.append(view.status)
        if view.status.is_terminal:
            break
        await asyncio.sleep(0.005)
    await orchestrator.wait_idle()
    observed.append(query.query(job_id).status)

    ranks = [s.rank for s in observed]
    assert ranks == sorted(ranks)
    assert JobStatus.PROCESSING in observed
    assert observed[-1] is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_partial_results_visible_while_processing(inputs) -> None:
    gate = asyncio.Event()
    orchestrator, store, _ = _orchestrator(
        FakeAdapter(AWS, transcript="early"), FakeAdapter(DG, gate=gate)
    )
    await orchestrator.start()

    job_id = await orchestrator.submit(inputs, [AWS, DG])
    for _ in range(100):
        view = JobQueryService(store).query(job_id)
        if view.provider_results["aws"].status == "completed":
            break
        await asyncio.sleep(0.005)

    assert view.status is JobStatus.PROCESSING
    assert view.provider_results["aws"].result.transcript == "early"
    assert view.provider_results["deepgram"].status == "pending"

    gate.set()
    await orchestrator.wait_idle()


@pytest.mark.asyncio
async def test_unregistered_provider_rejected_before_job_creation(inputs) -> None:
    orchestrator, store, released = _orchestrator(FakeAdapter(DG))
    await orchestrator.start()

    with pytest.raises(ValueError):
        await orchestrator.submit(inputs, [AWS, DG])
    assert len(store) == 0
    assert released == []


@pytest.mark.asyncio
async def test_submit_requires_started_orchestrator(inputs) -> None:
    orchestrator, _, _ = _orchestrator(FakeAdapter(DG))
    with pytest.raises(RuntimeError):
        await orchestrator.submit(inputs, [DG])


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_jobs_and_releases_input(inputs) -> None:
    gate = asyncio.Event()
    orchestrator, store, released = _orchestrator(
        FakeAdapter(AWS, gate=gate), FakeAdapter(DG, gate=gate)
    )
    await orchestrator.start()
    job_id = await orchestrator.submit(inputs, [AWS, DG])
    await asyncio.sleep(0.01)

    await orchestrator.stop()

    assert released == [inputs.file_path]
    assert not store.get(job_id).status.is_terminal

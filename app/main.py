"""Transcription Compare Service - FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import v1_router
from app.api.v1.health import router as health_root_router
from app.api.v1 import health as health_api
from app.api.v1 import jobs as jobs_api
from app.jobs.orchestrator import TranscriptionOrchestrator
from app.jobs.query import JobQueryService
from app.jobs.store import JobStore
from app.jobs.sweeper import RetentionSweeper
from app.providers.registry import build_registry
from app.storage.uploads import UploadStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic.

    Tests may preset ``app.state.provider_registry`` and ``app.state.upload_dir``
    to swap in fake adapters and a scratch upload directory.
    """
    print(f"Starting Transcription Compare Service on port {settings.compute_port}")

    registry = getattr(app.state, "provider_registry", None) or build_registry()
    for provider, ok in registry.configured().items():
        print(f"  Provider: {provider} ({'configured' if ok else 'missing credentials'})")

    upload_store = UploadStore(
        base_dir=getattr(app.state, "upload_dir", None),
        ttl_seconds=settings.job_retention_seconds,
    )
    print(f"Upload dir: {upload_store.base_dir}")

    store = JobStore()
    orchestrator = TranscriptionOrchestrator(
        store,
        registry,
        release_input=upload_store.release,
        provider_timeout=settings.provider_timeout_seconds,
    )
    sweeper = RetentionSweeper(
        store,
        retention_seconds=settings.job_retention_seconds,
        interval_seconds=settings.sweep_interval_seconds,
        cleanup=upload_store.cleanup_expired,
    )
    await orchestrator.start()
    await sweeper.start()
    print(
        f"Job orchestrator started (retention {settings.job_retention_seconds}s, "
        f"sweep every {settings.sweep_interval_seconds}s)"
    )

    # Wire services into API endpoints
    jobs_api.set_dispatcher(orchestrator)
    jobs_api.set_query_service(JobQueryService(store))
    jobs_api.set_upload_store(upload_store)
    health_api.set_registry(registry)
    health_api.set_store(store)
    app.state.job_store = store
    app.state.orchestrator = orchestrator
    app.state.sweeper = sweeper

    yield

    # Shutdown
    print("Shutting down Transcription Compare Service")
    await sweeper.stop()
    await orchestrator.stop()
    upload_store.cleanup_expired()


app = FastAPI(
    title="Transcription Compare Service",
    description="Asynchronous transcription jobs across AWS Transcribe and Deepgram",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints

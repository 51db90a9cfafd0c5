"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

router = APIRouter()

# Set by main.py during lifespan
_registry = None
_store = None


def set_registry(registry):
    global _registry
    _registry = registry


def set_store(store):
    global _store
    _store = store


@router.get("/health")
async def health_check():
    """Service health, provider configuration, and job table size."""
    return {
        "status": "healthy",
        "providers": _registry.configured() if _registry is not None else {},
        "jobs_in_memory": len(_store) if _store is not None else 0,
        "python_version": sys.version,
        "platform": platform.platform(),
    }

"""Temporary storage for uploaded audio files."""

import logging
import os
import shutil
import time
import uuid
from typing import Optional

from app.config import settings

logger = logging.getLogger(__name__)


class UploadStore:
    """Owns the upload directory: allocates input paths and releases them.

    Each job's input file is released once by the orchestrator after all its
    providers have settled. ``cleanup_expired`` catches files orphaned by a
    crash or an aborted request.
    """

    def __init__(self, base_dir: Optional[str] = None, ttl_seconds: int = 3600):
        self._base_dir = base_dir or settings.upload_dir
        os.makedirs(self._base_dir, exist_ok=True)
        self._ttl_seconds = ttl_seconds

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def new_path(self, original_filename: str) -> str:
        """Unique path for an upload, keeping the original extension."""
        ext = os.path.splitext(original_filename or "")[1].lower()
        unique = f"file-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
        return os.path.join(self._base_dir, f"{unique}{ext}")

    def release(self, path: str) -> bool:
        """Delete an input file. Returns False if it was already gone."""
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        logger.debug("Released upload %s", path)
        return True

    def cleanup_expired(self) -> int:
        """Remove uploads older than TTL. Returns count of removed files."""
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            path = os.path.join(self._base_dir, entry)
            try:
                age = now - os.path.getmtime(path)
            except FileNotFoundError:
                # released by its job between listdir and stat
                continue
            if age <= self._ttl_seconds:
                continue
            if os.path.isdir(path):
                shutil.rmtree(path, ignore_errors=True)
            else:
                self.release(path)
            removed += 1
        return removed

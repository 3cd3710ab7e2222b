"""
Backup video provider.

Deterministic fallback for development, tests and outages of the primary
provider. Tasks complete immediately; fetching a result copies the configured
sample video into storage.
"""
import asyncio
import os
import secrets
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from photo2video.config import Settings
from photo2video.services.providers.base import (
    ErrorKind,
    NormalizedStatus,
    ProviderResult,
    TaskCreated,
    TaskStatus,
    VideoAsset,
    VideoProvider,
)
from photo2video.services.storage import LocalStorage, StorageError
from photo2video.utils.logger import logger

SAMPLE_DURATION = 5.0
SAMPLE_WIDTH = 1920
SAMPLE_HEIGHT = 1080


class BackupAdapter(VideoProvider):
    name = "backup"
    display_name = "Backup Provider (Test)"

    def __init__(self, settings: Settings, storage: Optional[LocalStorage] = None):
        self.settings = settings
        self.storage = storage or LocalStorage(settings.storage_dir, settings.storage_url)

    def is_enabled(self) -> bool:
        # Always enabled as fallback
        return True

    async def create_task(self, payload: Dict[str, Any]) -> ProviderResult[TaskCreated]:
        task_id = f"{self.name}_{uuid.uuid4().hex[:13]}_{secrets.token_hex(4)}"
        logger.info("backup.create_task", extra={"provider_task_id": task_id})

        return ProviderResult.success(TaskCreated(
            provider_task_id=task_id,
            status="queued",
            raw={
                "message": "Task queued in backup provider",
                "image_url": payload.get("image_url", ""),
                "format": payload.get("format", "16:9"),
                "preset": payload.get("preset", "default"),
            },
        ))

    async def poll_status(self, task_id: str) -> ProviderResult[TaskStatus]:
        logger.debug("backup.poll_status", extra={"provider_task_id": task_id})
        return ProviderResult.success(TaskStatus(
            status=NormalizedStatus.SUCCEEDED,
            progress=100,
            message="Video ready",
            raw={"task_id": task_id, "phase": "completed"},
        ))

    async def fetch_result(self, task_id: str) -> ProviderResult[VideoAsset]:
        sample = self._find_sample_video()
        if sample is None:
            logger.warning(
                "backup.sample_missing",
                extra={"provider_task_id": task_id, "error": str(self.settings.backup_sample_video)},
            )
            return ProviderResult.failure(
                ErrorKind.MISSING_ASSET,
                "Could not generate video: sample file not found "
                f"(BACKUP_SAMPLE_VIDEO={self.settings.backup_sample_video})",
            )

        try:
            video_url = await asyncio.to_thread(self.storage.upload, sample, f"videos/{task_id}.mp4")
        except (StorageError, OSError) as exc:
            return ProviderResult.failure(ErrorKind.MISSING_ASSET, f"Could not store sample video: {exc}")

        return ProviderResult.success(VideoAsset(
            video_url=video_url,
            # Thumbnail generation is not provided by this adapter
            thumbnail_url=None,
            duration=SAMPLE_DURATION,
            width=SAMPLE_WIDTH,
            height=SAMPLE_HEIGHT,
            raw={
                "task_id": task_id,
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "provider": self.name,
            },
        ))

    async def cancel_task(self, task_id: str) -> bool:
        # Tasks complete instantly, nothing to cancel
        logger.info("backup.cancel_ignored", extra={"provider_task_id": task_id})
        return False

    def _find_sample_video(self) -> Optional[Path]:
        configured = self.settings.backup_sample_video
        if not configured:
            return None
        path = Path(configured)
        if path.is_file() and os.access(path, os.R_OK):
            return path
        return None

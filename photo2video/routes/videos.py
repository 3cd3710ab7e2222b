"""
Video generation API Routes

Queue a generation job for an uploaded photo and poll its progress. The job
itself runs in the worker; these endpoints only create and read it.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from photo2video.config import Settings, get_settings
from photo2video.database import get_db
from photo2video.middleware.auth import get_user_id
from photo2video.middleware.correlation import get_correlation_id
from photo2video.services import job_manager
from photo2video.services.credit_ledger import UserNotFoundError
from photo2video.services.providers import NoProviderAvailableError, ProviderRegistry
from photo2video.utils.logger import logger

router = APIRouter()

# Rate limiter
from slowapi import Limiter
from slowapi.util import get_remote_address
limiter = Limiter(key_func=get_remote_address)


def get_registry() -> ProviderRegistry:
    return ProviderRegistry.default()


class GenerateRequest(BaseModel):
    provider: Optional[str] = None


@router.post("/{video_id}/generate", status_code=202)
@limiter.limit("10/minute")
async def generate_video(
    request: Request,
    video_id: int,
    generate_request: Optional[GenerateRequest] = None,
    user_id: int = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    """
    Queue video generation. Debits credits_per_video credits up front.

    Rate limited to 10 requests per minute per IP.
    """
    preferred = generate_request.provider if generate_request else None

    try:
        job = await job_manager.enqueue_generation(
            db,
            registry,
            video_id=video_id,
            user_id=user_id,
            credits_per_video=settings.credits_per_video,
            max_attempts=settings.default_max_attempts,
            preferred_provider=preferred or settings.video_provider,
        )
    except (job_manager.VideoNotFoundError, UserNotFoundError):
        raise HTTPException(status_code=404, detail="Video not found")
    except job_manager.InsufficientCreditsError as exc:
        raise HTTPException(status_code=402, detail=str(exc))
    except job_manager.GenerationInProgressError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NoProviderAvailableError as exc:
        logger.error("videos.no_provider", extra={"video_id": video_id, "error": str(exc)})
        raise HTTPException(status_code=503, detail="Video generation is temporarily unavailable")

    logger.info(
        "videos.generation_queued",
        extra={"job_id": job.id, "video_id": video_id, "user_id": user_id, "correlation_id": get_correlation_id()},
    )
    return {
        "success": True,
        "job_id": job.id,
        "video_id": video_id,
        "provider": job.provider,
        "status": job.status,
        "message": "Video generation started",
    }


@router.get("/{video_id}/status")
async def get_video_status(
    video_id: int,
    user_id: int = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    status = await job_manager.get_generation_status(db, video_id, user_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return status

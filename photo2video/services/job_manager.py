"""
Database-backed generation job queue.

Usage:
    job = await job_manager.enqueue_generation(db, registry, video_id, user_id)
    jobs = await job_manager.list_due_jobs(db, limit=5)
    await job_manager.update_job(db, job.id, status="processing", ...)
    status = await job_manager.get_generation_status(db, video_id, user_id)
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_
from datetime import datetime
from typing import Optional, Dict, Any, List

from photo2video.models.generation_job import GenerationJob, JobStatus
from photo2video.models.user import User
from photo2video.models.video import Video, VideoStatus
from photo2video.services import credit_ledger
from photo2video.services.credit_ledger import InsufficientCreditsError
from photo2video.services.providers.registry import ProviderRegistry
from photo2video.utils.logger import logger


class JobNotFoundError(LookupError):
    pass


class VideoNotFoundError(LookupError):
    pass


class GenerationInProgressError(Exception):
    pass


async def enqueue_generation(
    db: AsyncSession,
    registry: ProviderRegistry,
    video_id: int,
    user_id: int,
    credits_per_video: int = 1,
    max_attempts: int = 3,
    preferred_provider: Optional[str] = None,
) -> GenerationJob:
    """
    Create a queued job for a video and debit its credit in one commit.

    The debit happens here, once per job; the worker never charges.
    """
    video = await get_video(db, video_id)
    if video is None or video.user_id != user_id:
        raise VideoNotFoundError(f"Video {video_id} not found")

    if video.status == VideoStatus.PROCESSING.value:
        raise GenerationInProgressError("Video is already being generated")

    user = await db.get(User, user_id)
    if user is None:
        raise credit_ledger.UserNotFoundError(f"User {user_id} not found")
    if user.credits < credits_per_video:
        raise InsufficientCreditsError(credits_per_video, user.credits)

    provider = registry.get_best_provider(preferred_provider)

    job = GenerationJob(
        video_id=video.id,
        user_id=user_id,
        provider=provider.name,
        status=JobStatus.QUEUED.value,
        input_params={
            "image_url": video.original_image,
            "format": video.format,
            "preset": video.preset,
        },
        attempts=0,
        max_attempts=max_attempts,
    )
    db.add(job)
    await db.flush()

    try:
        # Guarded UPDATE: a concurrent request may have spent the credit since the check above
        await credit_ledger.debit_for_job(db, user, job, credits_per_video)
    except InsufficientCreditsError:
        await db.rollback()
        raise
    video.status = VideoStatus.PROCESSING.value
    await db.commit()

    logger.info(
        "job.enqueued",
        extra={"job_id": job.id, "video_id": video.id, "user_id": user_id, "provider": provider.name},
    )
    return job


async def get_latest_job_for_video(db: AsyncSession, video_id: int) -> Optional[GenerationJob]:
    result = await db.execute(
        select(GenerationJob)
        .where(GenerationJob.video_id == video_id)
        .order_by(GenerationJob.created_at.desc(), GenerationJob.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_generation_status(
    db: AsyncSession,
    video_id: int,
    user_id: int,
) -> Optional[Dict[str, Any]]:
    """Video status plus its latest job, for client polling"""
    video = await get_video(db, video_id)
    if video is None or video.user_id != user_id:
        return None

    job = await get_latest_job_for_video(db, video_id)
    progress = None
    if job and isinstance(job.result_data, dict):
        progress = job.result_data.get("progress")

    return {
        "video_id": video.id,
        "video_status": video.status,
        "result_video": video.result_video,
        "thumbnail": video.thumbnail,
        "duration": video.duration,
        "progress": progress,
        "job": job.to_dict() if job else None,
    }


async def list_due_jobs(db: AsyncSession, limit: int) -> List[GenerationJob]:
    """
    Oldest-first batch of jobs the worker should act on.

    Queued jobs need attempts left to be started; processing jobs are always
    due so they can reach a terminal state.
    """
    result = await db.execute(
        select(GenerationJob)
        .where(
            or_(
                and_(
                    GenerationJob.status == JobStatus.QUEUED.value,
                    GenerationJob.attempts < GenerationJob.max_attempts,
                ),
                GenerationJob.status == JobStatus.PROCESSING.value,
            )
        )
        .order_by(GenerationJob.created_at.asc(), GenerationJob.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def update_job(db: AsyncSession, job_id: int, **fields: Any) -> None:
    """Single-row update keyed by job id, committed immediately"""
    fields["updated_at"] = datetime.utcnow()
    result = await db.execute(
        update(GenerationJob)
        .where(GenerationJob.id == job_id)
        .values(**fields)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise JobNotFoundError(f"Job {job_id} not found")
    await db.commit()


async def get_video(db: AsyncSession, video_id: int) -> Optional[Video]:
    result = await db.execute(select(Video).where(Video.id == video_id))
    return result.scalar_one_or_none()


async def update_video(db: AsyncSession, video_id: int, **fields: Any) -> None:
    fields["updated_at"] = datetime.utcnow()
    result = await db.execute(
        update(Video)
        .where(Video.id == video_id)
        .values(**fields)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise VideoNotFoundError(f"Video {video_id} not found")
    await db.commit()

"""
Generation worker: polls generation_jobs and drives each job through the
provider state machine.

    queued -> processing -> succeeded | failed
    failed re-queues while attempts < max_attempts

Can run as:
  1. FastAPI background task (same process, RUN_WORKER_IN_APP=true)
  2. Standalone worker: photo2video-worker [--daemon] [--sleep SECONDS]

Without --daemon a single pass runs and the process exits, for cron-style
external schedulers.
"""
import argparse
import asyncio
import signal
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from photo2video.config import Settings, get_settings
from photo2video.models.generation_job import GenerationJob, JobStatus
from photo2video.models.user import User
from photo2video.models.video import Video, VideoStatus
from photo2video.services import job_manager
from photo2video.services.job_manager import JobNotFoundError, VideoNotFoundError
from photo2video.services.notifier import Notifier, TelegramNotifier, VideoNotice
from photo2video.services.providers import NormalizedStatus, ProviderRegistry, VideoProvider
from photo2video.utils.logger import logger
from photo2video.utils.metrics import inc

# Per-job outcomes reported in a pass summary
OUTCOME_STARTED = "started"
OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_RETRIED = "retried"
OUTCOME_FAILED = "failed"
OUTCOME_PENDING = "pending"
OUTCOME_SKIPPED = "skipped"

# Outcomes that changed job state
PROGRESS_OUTCOMES = frozenset({OUTCOME_STARTED, OUTCOME_SUCCEEDED, OUTCOME_RETRIED, OUTCOME_FAILED})


class GenerationWorker:
    """
    Single-process polling worker.

    Jobs in a pass are handled one at a time, oldest first. A failure inside
    one job becomes a failed attempt for that job only; database errors abort
    the whole pass.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        registry: ProviderRegistry,
        notifier: Notifier,
        settings: Settings,
        sleep_interval: Optional[float] = None,
        max_concurrent_jobs: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.notifier = notifier
        self.settings = settings
        self.sleep_interval = sleep_interval if sleep_interval is not None else settings.worker_sleep_interval
        self.max_concurrent_jobs = max_concurrent_jobs or settings.max_concurrent_jobs

        self.processed = 0
        self.failed = 0
        self._stop = asyncio.Event()

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    async def run(self, daemon: bool = False) -> Optional[Dict[str, Any]]:
        logger.info(
            "worker.started",
            extra={"daemon": daemon, "sleep_interval": self.sleep_interval, "count": self.max_concurrent_jobs},
        )
        if not daemon:
            summary = await self.run_once()
            logger.info("worker.stopped", extra={"processed": self.processed, "failed": self.failed})
            return summary

        while not self._stop.is_set():
            try:
                summary = await self.run_pass()
            except Exception as exc:
                inc("worker.pass_error")
                logger.error(
                    "worker.pass_failed",
                    extra={"error": str(exc)[:500], "error_type": type(exc).__name__},
                    exc_info=True,
                )
                summary = None

            if summary and summary["batch_full"] and summary["progressed"] and not self._stop.is_set():
                # More due jobs are likely waiting
                continue
            await self._sleep()

        logger.info("worker.stopped", extra={"processed": self.processed, "failed": self.failed})
        return None

    async def run_once(self) -> Dict[str, Any]:
        """One pass; database errors propagate to the caller"""
        return await self.run_pass()

    def shutdown(self) -> None:
        """Stop after the current pass"""
        if not self._stop.is_set():
            logger.info("worker.shutdown_requested")
        self._stop.set()

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.sleep_interval)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    async def run_pass(self) -> Dict[str, Any]:
        outcomes: Dict[str, int] = {}

        async with self.session_factory() as db:
            jobs = await job_manager.list_due_jobs(db, self.max_concurrent_jobs)
            if jobs:
                logger.info("worker.batch", extra={"count": len(jobs)})

            for job in jobs:
                outcome = await self._process_safely(db, job)
                outcomes[outcome] = outcomes.get(outcome, 0) + 1

        progressed = sum(n for outcome, n in outcomes.items() if outcome in PROGRESS_OUTCOMES)
        return {
            "jobs": len(jobs),
            "batch_full": len(jobs) >= self.max_concurrent_jobs,
            "progressed": progressed,
            "outcomes": outcomes,
        }

    async def _process_safely(self, db: AsyncSession, job: GenerationJob) -> str:
        """Per-job error boundary"""
        job_id = job.id
        try:
            outcome = await self.process_job(db, job)
        except SQLAlchemyError:
            raise
        except (JobNotFoundError, VideoNotFoundError) as exc:
            logger.warning("worker.job_skipped", extra={"job_id": job_id, "error": str(exc)})
            outcome = OUTCOME_SKIPPED
        except Exception as exc:
            logger.error(
                "worker.job_error",
                extra={"job_id": job_id, "error": str(exc)[:500], "error_type": type(exc).__name__},
                exc_info=True,
            )
            try:
                outcome = await self._handle_attempt_failure(
                    db, job, str(exc)[:1000], count_attempt=job.status == JobStatus.QUEUED.value,
                )
            except JobNotFoundError:
                outcome = OUTCOME_SKIPPED

        if outcome != OUTCOME_SKIPPED:
            self.processed += 1
        if outcome == OUTCOME_FAILED:
            self.failed += 1
        inc(f"worker.job_{outcome}")
        return outcome

    async def process_job(self, db: AsyncSession, job: GenerationJob) -> str:
        video = await job_manager.get_video(db, job.video_id)
        if video is None:
            logger.warning("worker.video_not_found", extra={"job_id": job.id, "video_id": job.video_id})
            return OUTCOME_SKIPPED

        if job.status == JobStatus.QUEUED.value:
            return await self._start_job(db, job)
        if job.status == JobStatus.PROCESSING.value:
            return await self._check_job_status(db, job, video)

        logger.warning("worker.unexpected_status", extra={"job_id": job.id, "status": job.status})
        return OUTCOME_SKIPPED

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _resolve_provider(self, job: GenerationJob) -> Optional[VideoProvider]:
        provider = self.registry.get_provider(job.provider)
        if provider is not None:
            return provider

        # Orphaned job: the stored provider name no longer resolves
        provider = self.registry.get_provider_by_task_id(job.provider_task_id)
        if provider is not None:
            logger.warning(
                "worker.provider_inferred",
                extra={"job_id": job.id, "provider": provider.name, "provider_task_id": job.provider_task_id},
            )
        return provider

    async def _start_job(self, db: AsyncSession, job: GenerationJob) -> str:
        provider = self._resolve_provider(job)
        if provider is None:
            return await self._handle_attempt_failure(
                db, job, f"Provider not found: {job.provider}", count_attempt=True,
            )

        logger.info(
            "worker.job_starting",
            extra={"job_id": job.id, "provider": provider.name, "attempt": job.attempts + 1},
        )
        result = await provider.create_task(dict(job.input_params or {}))
        if not result.ok:
            return await self._handle_attempt_failure(db, job, str(result.error), count_attempt=True)

        attempts = job.attempts + 1
        task_id = result.value.provider_task_id
        await job_manager.update_job(
            db,
            job.id,
            status=JobStatus.PROCESSING.value,
            provider_task_id=task_id,
            attempts=attempts,
            started_at=datetime.utcnow(),
            result_data=result.to_dict(),
            error_message=None,
        )
        await job_manager.update_video(db, job.video_id, status=VideoStatus.PROCESSING.value)

        logger.info(
            "worker.job_started",
            extra={"job_id": job.id, "provider": provider.name, "provider_task_id": task_id, "attempts": attempts},
        )
        return OUTCOME_STARTED

    async def _check_job_status(self, db: AsyncSession, job: GenerationJob, video: Video) -> str:
        if not job.provider_task_id:
            return await self._handle_attempt_failure(db, job, "Missing provider task id", count_attempt=False)

        provider = self._resolve_provider(job)
        if provider is None:
            return await self._handle_attempt_failure(
                db, job, f"Provider not found: {job.provider}", count_attempt=False,
            )

        poll = await provider.poll_status(job.provider_task_id)
        await job_manager.update_job(db, job.id, result_data=poll.to_dict())

        if not poll.ok:
            return await self._handle_attempt_failure(db, job, str(poll.error), count_attempt=False)

        status = poll.value.status
        if status == NormalizedStatus.SUCCEEDED:
            return await self._complete_job(db, job, video, provider)
        if status == NormalizedStatus.FAILED:
            message = poll.value.message or "Video generation failed"
            return await self._handle_attempt_failure(db, job, message, count_attempt=False)

        logger.debug(
            "worker.job_pending",
            extra={"job_id": job.id, "status": status.value, "progress": poll.value.progress},
        )
        return OUTCOME_PENDING

    async def _complete_job(
        self,
        db: AsyncSession,
        job: GenerationJob,
        video: Video,
        provider: VideoProvider,
    ) -> str:
        fetched = await provider.fetch_result(job.provider_task_id)
        if not fetched.ok:
            return await self._handle_attempt_failure(db, job, str(fetched.error), count_attempt=False)

        asset = fetched.value
        await job_manager.update_job(
            db,
            job.id,
            status=JobStatus.SUCCEEDED.value,
            result_data=fetched.to_dict(),
            error_message=None,
            completed_at=datetime.utcnow(),
        )
        await job_manager.update_video(
            db,
            job.video_id,
            status=VideoStatus.COMPLETED.value,
            result_video=asset.video_url,
            thumbnail=asset.thumbnail_url,
            duration=asset.duration,
        )

        logger.info(
            "worker.job_succeeded",
            extra={"job_id": job.id, "video_id": job.video_id, "provider": provider.name},
        )
        await self._notify(db, job, video)
        return OUTCOME_SUCCEEDED

    async def _handle_attempt_failure(
        self,
        db: AsyncSession,
        job: GenerationJob,
        message: str,
        count_attempt: bool,
    ) -> str:
        """
        Re-queue the job, or fail it permanently once the attempt budget is
        spent. The credit debited at creation is not refunded.
        """
        attempts = job.attempts + 1 if count_attempt else job.attempts
        attempts = min(attempts, job.max_attempts)

        if attempts >= job.max_attempts:
            await job_manager.update_job(
                db,
                job.id,
                status=JobStatus.FAILED.value,
                attempts=attempts,
                error_message=message,
                completed_at=datetime.utcnow(),
            )
            await job_manager.update_video(db, job.video_id, status=VideoStatus.FAILED.value)
            logger.error(
                "worker.job_failed",
                extra={"job_id": job.id, "attempts": attempts, "max_attempts": job.max_attempts, "error": message[:500]},
            )
            return OUTCOME_FAILED

        # provider_task_id is kept until the next successful start replaces it
        await job_manager.update_job(
            db,
            job.id,
            status=JobStatus.QUEUED.value,
            attempts=attempts,
            error_message=None,
        )
        logger.warning(
            "worker.job_retry",
            extra={"job_id": job.id, "attempts": attempts, "max_attempts": job.max_attempts, "error": message[:500]},
        )
        return OUTCOME_RETRIED

    async def _notify(self, db: AsyncSession, job: GenerationJob, video: Video) -> None:
        user = await db.get(User, job.user_id)
        if user is None or not user.telegram_notifications or not user.telegram_chat_id:
            return

        app_url = self.settings.app_url.rstrip("/")
        notice = VideoNotice(
            video_id=video.id,
            title=video.title or "Your Video",
            watch_url=f"{app_url}/dashboard/generations",
            share_url=f"{app_url}/gallery/{video.id}",
        )
        try:
            await self.notifier.notify(user.telegram_chat_id, notice)
        except Exception as exc:
            logger.error("worker.notify_failed", extra={"job_id": job.id, "error": str(exc)[:500]})


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def create_worker(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    sleep_interval: Optional[float] = None,
) -> GenerationWorker:
    """Wire a worker from settings"""
    if session_factory is None:
        from photo2video.database import AsyncSessionLocal
        session_factory = AsyncSessionLocal

    settings = settings or get_settings()
    return GenerationWorker(
        session_factory=session_factory,
        registry=ProviderRegistry.default(lambda: settings),
        notifier=TelegramNotifier(settings.telegram_bot_token, timeout=settings.telegram_timeout),
        settings=settings,
        sleep_interval=sleep_interval,
    )


async def main(daemon: bool = False, sleep_interval: Optional[float] = None) -> None:
    """Run worker as standalone process."""
    from photo2video.database import engine, init_db
    await init_db()

    worker = create_worker(sleep_interval=sleep_interval)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.shutdown)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await worker.run(daemon=daemon)
    finally:
        await engine.dispose()


def cli(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Photo2Video generation worker")
    parser.add_argument("--daemon", action="store_true", help="keep polling instead of a single pass")
    parser.add_argument("--sleep", type=float, default=None, help="seconds between passes in daemon mode")
    args = parser.parse_args(argv)
    asyncio.run(main(daemon=args.daemon, sleep_interval=args.sleep))


if __name__ == "__main__":
    cli()

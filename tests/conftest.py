"""
Shared fixtures: an in-memory SQLite database per test, settings pointing at
a temporary storage dir, and a scriptable fake provider.
"""
import os

os.environ.setdefault("LOG_FILE", "false")

import itertools
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from photo2video.config import Settings
from photo2video.database import create_engine_and_session, init_db
from photo2video.models import GenerationJob, JobStatus, User, Video
from photo2video.services import credit_ledger
from photo2video.services.providers import (
    ErrorKind,
    NormalizedStatus,
    ProviderRegistry,
    ProviderResult,
    TaskCreated,
    TaskStatus,
    VideoAsset,
    VideoProvider,
)
from photo2video.utils import metrics


_user_seq = itertools.count(1)


class ScriptedProvider(VideoProvider):
    """
    Provider whose answers are queued up by the test.

    Each list is consumed in order; the last entry repeats once the list is
    down to one item.
    """

    name = "fake"
    display_name = "Scripted Provider"

    def __init__(
        self,
        create_results: Optional[List[ProviderResult]] = None,
        poll_results: Optional[List[ProviderResult]] = None,
        fetch_results: Optional[List[ProviderResult]] = None,
    ):
        self.create_results = list(create_results or [created("fake_task_1")])
        self.poll_results = list(poll_results or [polled(NormalizedStatus.PROCESSING, 50)])
        self.fetch_results = list(fetch_results or [fetched("https://cdn.test/video.mp4")])
        self.calls: List[tuple] = []

    def is_enabled(self) -> bool:
        return True

    @staticmethod
    def _next(results: List[Any]) -> Any:
        value = results.pop(0) if len(results) > 1 else results[0]
        if isinstance(value, Exception):
            raise value
        return value

    async def create_task(self, payload: Dict[str, Any]) -> ProviderResult[TaskCreated]:
        self.calls.append(("create_task", payload))
        return self._next(self.create_results)

    async def poll_status(self, task_id: str) -> ProviderResult[TaskStatus]:
        self.calls.append(("poll_status", task_id))
        return self._next(self.poll_results)

    async def fetch_result(self, task_id: str) -> ProviderResult[VideoAsset]:
        self.calls.append(("fetch_result", task_id))
        return self._next(self.fetch_results)

    async def cancel_task(self, task_id: str) -> bool:
        return False

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


def created(task_id: str) -> ProviderResult[TaskCreated]:
    return ProviderResult.success(TaskCreated(provider_task_id=task_id, status="pending"))


def polled(status: NormalizedStatus, progress: int = 0, message: Optional[str] = None) -> ProviderResult[TaskStatus]:
    return ProviderResult.success(TaskStatus(status=status, progress=progress, message=message))


def fetched(video_url: str, thumbnail_url: Optional[str] = "https://cdn.test/thumb.jpg") -> ProviderResult[VideoAsset]:
    return ProviderResult.success(VideoAsset(
        video_url=video_url,
        thumbnail_url=thumbnail_url,
        duration=5.0,
        width=1920,
        height=1080,
    ))


def upstream_error(message: str = "boom") -> ProviderResult:
    return ProviderResult.failure(ErrorKind.UPSTREAM, message)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def sample_video(tmp_path):
    path = tmp_path / "sample.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path


@pytest.fixture
def settings(tmp_path, sample_video):
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        app_url="https://photo2video.test",
        kling_enabled=False,
        kling_api_key="",
        kling_secret_key="",
        backup_sample_video=str(sample_video),
        storage_dir=str(tmp_path / "public"),
        storage_url="/storage",
        telegram_bot_token="",
        worker_sleep_interval=0.01,
        max_concurrent_jobs=5,
    )


@pytest_asyncio.fixture
async def session_factory(settings):
    engine, factory = create_engine_and_session(settings.database_url)
    await init_db(engine)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def scripted_provider():
    return ScriptedProvider()


@pytest.fixture
def registry(settings, scripted_provider):
    registry = ProviderRegistry.default(lambda: settings)
    registry.register("fake", lambda s: scripted_provider)
    return registry


@pytest.fixture
def make_user(session_factory):
    async def _make_user(credits: int = 5, chat_id: Optional[int] = None, notifications: bool = True) -> User:
        async with session_factory() as session:
            user = User(
                email=f"user{next(_user_seq)}@example.test",
                name="Test User",
                credits=0,
                telegram_chat_id=chat_id,
                telegram_notifications=notifications,
            )
            session.add(user)
            await session.commit()
            if credits:
                # Seed through the ledger so balances reconcile
                await credit_ledger.grant_payment_credits(session, user.id, payment_id=user.id * 1000, amount=credits)
            return user
    return _make_user


@pytest.fixture
def make_video(session_factory):
    async def _make_video(user_id: int, title: str = "Beach day", status: str = "pending") -> Video:
        async with session_factory() as session:
            video = Video(
                user_id=user_id,
                original_image="https://cdn.test/photo.jpg",
                format="16:9",
                preset="cinematic",
                title=title,
                status=status,
            )
            session.add(video)
            await session.commit()
            return video
    return _make_video


@pytest.fixture
def make_job(session_factory):
    async def _make_job(
        video: Video,
        provider: str = "fake",
        status: str = JobStatus.QUEUED.value,
        attempts: int = 0,
        max_attempts: int = 3,
        provider_task_id: Optional[str] = None,
        age_seconds: int = 0,
    ) -> GenerationJob:
        async with session_factory() as session:
            job = GenerationJob(
                video_id=video.id,
                user_id=video.user_id,
                provider=provider,
                provider_task_id=provider_task_id,
                status=status,
                input_params={"image_url": video.original_image, "format": video.format, "preset": video.preset},
                attempts=attempts,
                max_attempts=max_attempts,
                created_at=datetime.utcnow() - timedelta(seconds=age_seconds),
            )
            session.add(job)
            await session.commit()
            return job
    return _make_job


@pytest.fixture
def load(session_factory):
    """Fresh read of a row in a new session"""
    async def _load(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)
    return _load

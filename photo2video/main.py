import asyncio
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from photo2video.config import get_settings
from photo2video.database import init_db
from photo2video.middleware.correlation import CorrelationMiddleware
from photo2video.routes import providers, videos
from photo2video.utils.logger import logger
from photo2video.utils.metrics import get_snapshot
from photo2video.worker import GenerationWorker, create_worker

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.state.limiter = videos.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-User-ID", "X-Correlation-ID"],
)
app.add_middleware(CorrelationMiddleware)

_worker: Optional[GenerationWorker] = None
_worker_task: Optional[asyncio.Task] = None


@app.on_event("startup")
async def startup_event():
    global _worker, _worker_task
    logger.info("app.starting")
    await init_db()

    if settings.run_worker_in_app:
        _worker = create_worker(settings)
        _worker_task = asyncio.create_task(_worker.run(daemon=True))
        logger.info("app.worker_attached", extra={"sleep_interval": _worker.sleep_interval})

    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")


@app.on_event("shutdown")
async def shutdown_event():
    if _worker is not None and _worker_task is not None:
        _worker.shutdown()
        await _worker_task


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    return get_snapshot()


app.include_router(providers.router, prefix="/api/providers", tags=["Providers"])
app.include_router(videos.router, prefix="/api/videos", tags=["Videos"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "photo2video.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )

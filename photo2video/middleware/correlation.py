"""
Correlation ID middleware for request tracing.

Accepts X-Correlation-ID from the client or generates a UUID4, keeps it in a
contextvar for the duration of the request and echoes it in the response.
"""
import uuid
import time
import contextvars
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from photo2video.utils.logger import logger
from photo2video.utils.metrics import inc, observe

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return correlation_id_var.get("")


class CorrelationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        token = correlation_id_var.set(cid)

        user_id = request.headers.get("x-user-id", "")
        start = time.monotonic()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = round((time.monotonic() - start) * 1000)
            inc("http.error")
            logger.error(
                "request.failed",
                extra={
                    "correlation_id": cid,
                    "method": method,
                    "path": path,
                    "user_id": user_id,
                    "duration_ms": duration_ms,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                }
            )
            raise
        finally:
            correlation_id_var.reset(token)

        duration_ms = round((time.monotonic() - start) * 1000)
        status = response.status_code
        observe("http.duration_ms", duration_ms)

        log_fn = logger.warning if status >= 400 else logger.info
        log_fn(
            "request.completed",
            extra={
                "correlation_id": cid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": duration_ms,
                "user_id": user_id,
            }
        )

        response.headers["X-Correlation-ID"] = cid
        return response

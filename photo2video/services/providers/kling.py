"""
Kling AI image-to-video adapter.

Endpoints (relative to KLING_API_URL):
    POST /video/generate            create a task
    GET  /video/task/{id}           task status and result
    POST /video/task/{id}/cancel    cancel a running task
"""
from typing import Any, Dict, Optional

import httpx

from photo2video.config import Settings
from photo2video.services.providers.base import (
    ErrorKind,
    NormalizedStatus,
    ProviderRequestError,
    ProviderResult,
    TaskCreated,
    TaskStatus,
    VideoAsset,
    VideoProvider,
    normalize_status,
)
from photo2video.utils.logger import logger
from photo2video.utils.metrics import track_duration

DEFAULT_PROMPT = "Make this image animated"
DEFAULT_DURATION = "5"
DEFAULT_CFG_SCALE = 1.5


class KlingAdapter(VideoProvider):
    name = "kling"
    display_name = "Kling AI"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client

    def is_enabled(self) -> bool:
        return self.settings.kling_configured

    # ------------------------------------------------------------------
    # Task id prefixing
    # ------------------------------------------------------------------

    def _wrap_task_id(self, upstream_id: str) -> str:
        if upstream_id.startswith(f"{self.name}_"):
            return upstream_id
        return f"{self.name}_{upstream_id}"

    def _unwrap_task_id(self, task_id: str) -> str:
        prefix = f"{self.name}_"
        return task_id[len(prefix):] if task_id.startswith(prefix) else task_id

    # ------------------------------------------------------------------
    # Provider operations
    # ------------------------------------------------------------------

    async def create_task(self, payload: Dict[str, Any]) -> ProviderResult[TaskCreated]:
        if not self.is_enabled():
            return ProviderResult.failure(
                ErrorKind.DISABLED,
                "Kling provider is not enabled. Please configure KLING_ENABLED, KLING_API_KEY and KLING_SECRET_KEY.",
            )

        try:
            data = self._prepare_request_data(payload)
            logger.info("kling.create_task", extra={"provider": self.name})
            response = await self._request("POST", "/video/generate", "create_task", data)
        except ProviderRequestError as exc:
            return ProviderResult(error=exc.error)

        upstream_id = response.get("task_id")
        if not upstream_id:
            return ProviderResult.failure(ErrorKind.UPSTREAM, "Kling API response is missing task_id")

        return ProviderResult.success(TaskCreated(
            provider_task_id=self._wrap_task_id(str(upstream_id)),
            status=response.get("task_status") or "pending",
            raw=response,
        ))

    async def poll_status(self, task_id: str) -> ProviderResult[TaskStatus]:
        if not self.is_enabled():
            return ProviderResult.failure(ErrorKind.DISABLED, "Kling provider is not enabled.")

        try:
            response = await self._request(
                "GET", f"/video/task/{self._unwrap_task_id(task_id)}", "poll_status"
            )
        except ProviderRequestError as exc:
            return ProviderResult(error=exc.error)

        try:
            progress = int(float(response.get("task_progress") or 0))
        except (TypeError, ValueError):
            progress = 0

        return ProviderResult.success(TaskStatus(
            status=normalize_status(response.get("task_status")),
            progress=progress,
            message=response.get("task_status_msg"),
            raw=response,
        ))

    async def fetch_result(self, task_id: str) -> ProviderResult[VideoAsset]:
        status = await self.poll_status(task_id)
        if not status.ok:
            return ProviderResult(error=status.error)

        if status.value.status != NormalizedStatus.SUCCEEDED:
            return ProviderResult.failure(
                ErrorKind.NOT_READY,
                f"Task not completed yet (status: {status.value.status.value})",
            )

        response = status.value.raw
        task_result = response.get("task_result") or {}
        video_url = task_result.get("video_url")
        if not video_url:
            return ProviderResult.failure(ErrorKind.UPSTREAM, "Kling task succeeded without a video_url")

        return ProviderResult.success(VideoAsset(
            video_url=video_url,
            thumbnail_url=task_result.get("cover_url") or None,
            duration=_to_float(task_result.get("duration")),
            width=_to_int(task_result.get("width")),
            height=_to_int(task_result.get("height")),
            raw=response,
        ))

    async def cancel_task(self, task_id: str) -> bool:
        if not self.is_enabled():
            return False

        try:
            await self._request(
                "POST", f"/video/task/{self._unwrap_task_id(task_id)}/cancel", "cancel_task", {}
            )
        except ProviderRequestError as exc:
            logger.error(
                "kling.cancel_failed",
                extra={"provider_task_id": task_id, "error": exc.error.message[:500]},
            )
            return False
        return True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _prepare_request_data(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        image = payload.get("image_url")
        if not image:
            raise ProviderRequestError(ErrorKind.INVALID_REQUEST, "image_url is required")

        aspect_ratio = payload.get("format") or "16:9"
        if aspect_ratio not in self.supported_formats():
            raise ProviderRequestError(ErrorKind.INVALID_REQUEST, f"Unsupported format: {aspect_ratio}")

        motion_mode = payload.get("preset") or "default"
        if motion_mode not in self.supported_presets():
            raise ProviderRequestError(ErrorKind.INVALID_REQUEST, f"Unsupported preset: {motion_mode}")

        return {
            "image": image,
            "prompt": payload.get("prompt") or DEFAULT_PROMPT,
            "duration": str(payload.get("duration") or DEFAULT_DURATION),
            "aspect_ratio": aspect_ratio,
            "cfg_scale": payload.get("cfg_scale", DEFAULT_CFG_SCALE),
            "motion_mode": motion_mode,
        }

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.settings.kling_api_url.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self.settings.kling_api_key}",
            "Content-Type": "application/json",
        }

        async with track_duration(self.name, operation):
            try:
                if self._client is not None:
                    response = await self._client.request(
                        method, url, headers=headers, json=data, timeout=self.settings.kling_timeout
                    )
                else:
                    async with httpx.AsyncClient(timeout=self.settings.kling_timeout) as client:
                        response = await client.request(method, url, headers=headers, json=data)
            except httpx.TimeoutException as exc:
                raise ProviderRequestError(ErrorKind.TRANSPORT, f"Kling API request timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise ProviderRequestError(ErrorKind.TRANSPORT, f"Kling API request failed: {exc}") from exc

            if not response.is_success:
                raise ProviderRequestError(
                    ErrorKind.UPSTREAM,
                    f"Kling API error ({response.status_code}): {response.text[:500]}",
                )

            try:
                decoded = response.json()
            except ValueError as exc:
                raise ProviderRequestError(ErrorKind.UPSTREAM, "Invalid JSON response from Kling API") from exc

            if not isinstance(decoded, dict):
                raise ProviderRequestError(ErrorKind.UPSTREAM, "Invalid JSON response from Kling API")

            # Kling reports errors in-band as {"code": <non-zero>, "message": ...}
            code = decoded.get("code")
            if decoded.get("error") or (code not in (None, 0, "0")):
                message = decoded.get("message") or decoded.get("error") or f"code {code}"
                raise ProviderRequestError(ErrorKind.UPSTREAM, f"Kling API error: {message}")

        # Some deployments wrap the task in a "data" envelope
        body = decoded.get("data")
        return body if isinstance(body, dict) else decoded


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None

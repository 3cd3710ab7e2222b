"""
Completion notifications.

notify() makes one delivery attempt and reports success as a bool. It never
raises; the worker treats notification as fire-and-forget.
"""
import html
import json
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from photo2video.utils.logger import logger
from photo2video.utils.metrics import inc

TELEGRAM_API_URL = "https://api.telegram.org"


@dataclass
class VideoNotice:
    video_id: int
    title: str
    watch_url: str
    share_url: str


class Notifier:
    """Base notifier: delivers nothing."""

    async def notify(self, chat_handle: Union[int, str, None], notice: VideoNotice) -> bool:
        return False


class TelegramNotifier(Notifier):
    """Sends "video ready" messages through the Telegram Bot API"""

    def __init__(
        self,
        bot_token: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        api_url: str = TELEGRAM_API_URL,
    ):
        self.bot_token = bot_token
        self.timeout = timeout
        self._client = client
        self.api_url = api_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.bot_token)

    async def notify(self, chat_handle: Union[int, str, None], notice: VideoNotice) -> bool:
        if not self.is_configured():
            logger.warning("notifier.not_configured", extra={"video_id": notice.video_id})
            return False
        if not chat_handle:
            return False

        payload = {
            "chat_id": chat_handle,
            "text": build_video_ready_message(notice),
            "parse_mode": "HTML",
            "reply_markup": json.dumps(build_video_buttons(notice)),
        }

        try:
            data = await self._send("sendMessage", payload)
        except Exception as exc:
            inc("telegram.error")
            logger.error(
                "notifier.send_failed",
                extra={"chat_id": chat_handle, "video_id": notice.video_id, "error": str(exc)[:500]},
            )
            return False

        if data.get("ok"):
            inc("telegram.success")
            logger.info("notifier.sent", extra={"chat_id": chat_handle, "video_id": notice.video_id})
            return True

        inc("telegram.error")
        logger.error(
            "notifier.rejected",
            extra={"chat_id": chat_handle, "error": str(data.get("description", "Unknown error"))[:500]},
        )
        return False

    async def _send(self, method: str, payload: dict) -> dict:
        url = f"{self.api_url}/bot{self.bot_token}/{method}"
        if self._client is not None:
            response = await self._client.post(url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)

        data = response.json()
        return data if isinstance(data, dict) else {"ok": False}


def build_video_ready_message(notice: VideoNotice) -> str:
    title = html.escape(notice.title or "Your Video")
    return (
        "🎬 <b>Video Ready!</b>\n\n"
        f"Your video \"<b>{title}</b>\" has been generated successfully.\n\n"
        "Click the button below to watch and share!"
    )


def build_video_buttons(notice: VideoNotice) -> dict:
    return {
        "inline_keyboard": [
            [
                {"text": "▶️ Watch Video", "url": notice.watch_url},
                {"text": "🔗 Share", "url": notice.share_url},
            ],
            [
                {"text": "📥 Download", "callback_data": f"download_{notice.video_id}"},
            ],
        ],
    }

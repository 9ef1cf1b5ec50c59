from __future__ import annotations

"""Telegram notification gateway for device transitions."""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import aiohttp
from loguru import logger

from .config import Settings
from .models import DeviceConfig, EventKind, ensure_utc


def format_duration(duration: timedelta | None) -> str:
    """Render a duration as hours and minutes, e.g. `2год 5хв` or `7хв`."""
    if duration is None:
        return "невідомо"
    total_minutes = max(int(duration.total_seconds()), 0) // 60
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}год {minutes}хв"
    return f"{minutes}хв"


def format_transition_message(kind: EventKind, when: datetime, duration: timedelta | None, tz: ZoneInfo) -> str:
    """Build the chat message for one transition in local time."""
    local = ensure_utc(when).astimezone(tz)
    if kind == "up":
        return f"🟢 {local:%H:%M} Світло з'явилось\n🕓 Його не було {format_duration(duration)}"
    return f"🔴 {local:%H:%M} Світло зникло\n🕓 Воно було {format_duration(duration)}"


class TelegramNotifier:
    """Send transition messages and swap the chat avatar, best effort only."""

    def __init__(self, settings: Settings, session: aiohttp.ClientSession | None = None) -> None:
        self.settings = settings
        self.api_base = settings.TELEGRAM_API_BASE.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=settings.REQUEST_TIMEOUT_SEC)
        self.tz = ZoneInfo(settings.NOTIFY_TIMEZONE)
        self.avatars: dict[EventKind, Path] = {
            "up": Path(settings.GREEN_AVATAR_PATH),
            "down": Path(settings.RED_AVATAR_PATH),
        }
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this notifier created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _call(self, bot_token: str, method: str, data: Any) -> dict[str, Any]:
        """POST one Bot API method and return the decoded JSON body."""
        session = await self._get_session()
        url = f"{self.api_base}/bot{bot_token}/{method}"
        async with session.post(url, data=data, timeout=self.timeout) as response:
            return await response.json(content_type=None)

    async def send_text(self, bot_token: str, chat_id: str, text: str) -> int | None:
        """Send a text message and return its message id, or None on failure."""
        if not bot_token or not chat_id:
            return None
        try:
            payload = await self._call(bot_token, "sendMessage", {"chat_id": chat_id, "text": text})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("telegram sendMessage failed chat={}: {}", chat_id, exc)
            return None
        if not payload.get("ok"):
            logger.error("telegram sendMessage rejected chat={}: {}", chat_id, payload.get("description"))
            return None
        message_id = (payload.get("result") or {}).get("message_id")
        return int(message_id) if message_id else None

    async def delete_message(self, bot_token: str, chat_id: str, message_id: int) -> bool:
        """Delete one chat message; failures are logged only."""
        try:
            payload = await self._call(bot_token, "deleteMessage", {"chat_id": chat_id, "message_id": str(message_id)})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("telegram deleteMessage failed chat={} message={}: {}", chat_id, message_id, exc)
            return False
        return bool(payload.get("ok"))

    async def set_chat_photo(self, bot_token: str, chat_id: str, photo_path: Path, after_message_id: int) -> bool:
        """Replace the chat avatar, then delete the service message it produces.

        Telegram posts the "photo changed" notice right after our text, so its
        id is `after_message_id + 1`.
        """
        if not bot_token or not chat_id:
            return False
        try:
            photo = await asyncio.to_thread(photo_path.read_bytes)
        except OSError as exc:
            logger.warning("avatar image unavailable path={}: {}", photo_path, exc)
            return False

        form = aiohttp.FormData()
        form.add_field("chat_id", chat_id)
        form.add_field("photo", photo, filename=photo_path.name, content_type="image/png")
        try:
            payload = await self._call(bot_token, "setChatPhoto", form)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("telegram setChatPhoto failed chat={}: {}", chat_id, exc)
            return False
        if not payload.get("ok"):
            logger.warning("telegram setChatPhoto rejected chat={}: {}", chat_id, payload.get("description"))
            return False

        if after_message_id > 0:
            await asyncio.sleep(self.settings.AVATAR_DELETE_DELAY_SEC)
            await self.delete_message(bot_token, chat_id, after_message_id + 1)
        return True

    async def notify_transition(
        self,
        device: DeviceConfig,
        kind: EventKind,
        when: datetime,
        duration: timedelta | None,
    ) -> bool:
        """Notify the device channel about a transition; return whether the text went out."""
        if not device.configured or device.paused:
            return False

        text = format_transition_message(kind, when, duration, self.tz)
        message_id = await self.send_text(device.bot_token, device.chat_id, text)
        if message_id is None:
            return False
        await self.set_chat_photo(device.bot_token, device.chat_id, self.avatars[kind], message_id)
        return True

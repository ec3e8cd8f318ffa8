"""Telegram API client adapter used for reminder delivery."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from fuel_tracker.services.reminders import ReminderNotifier

logger = logging.getLogger(__name__)


class TelegramClient(Protocol):
    """Interface for Telegram API interactions."""

    async def send_message(self, chat_id: int, text: str) -> None:
        """Send a text message to a Telegram chat."""

    async def close(self) -> None:
        """Release network resources."""


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def send_message(self, chat_id: int, text: str) -> None:
        """Send a message using Telegram's sendMessage API."""
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()


@dataclass
class TelegramReminderNotifier(ReminderNotifier):
    """Delivers intake reminders to a single Telegram chat."""

    client: TelegramClient
    chat_id: int

    async def notify(self, text: str) -> None:
        await self.client.send_message(chat_id=self.chat_id, text=text)


@dataclass
class LoggingReminderNotifier(ReminderNotifier):
    """Writes reminders to the log when no messenger is configured."""

    async def notify(self, text: str) -> None:
        logger.info("Reminder: %s", text)

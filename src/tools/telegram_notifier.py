"""
Telegram notification sink for publish failures.

Pushes plain-text messages to a single chat through the Bot API without
long-polling.  A missing ``TELEGRAM_BOT_TOKEN`` or ``TELEGRAM_CHAT_ID``
turns every call into a logged no-op.  Delivery errors are logged and never
raised, so a failed notification cannot mask the error being reported.
"""

import logging
import os
from typing import Any, Optional

from telegram import Bot

from src.models import Post, SinglePost, ThreadPost

logger = logging.getLogger(__name__)

_MAX_MESSAGE_LENGTH = 4096


def _truncate(text: str, max_length: int = _MAX_MESSAGE_LENGTH) -> str:
    """Truncate *text* to fit within Telegram's message size limit."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n...(truncated)"


def format_failure_message(
    platform: str,
    error: Any,
    thread_id: str,
    post: Optional[Post] = None,
    image_url: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> str:
    """Build the operator-facing upload failure report."""
    lines = [
        f"FAILED TO UPLOAD POST TO {platform.upper()}",
        "",
        f"Error message: {error}",
        f"Thread ID: {thread_id or 'unknown'}",
        "",
    ]
    if isinstance(post, ThreadPost):
        lines += ["Main post:", post.main_post, "", "Reply post:", post.reply_post]
    elif isinstance(post, SinglePost):
        lines += ["Post:", post.text]
    elif post:
        lines += ["Post:", str(post)]
    else:
        lines.append("Post: (none)")

    if image_url:
        lines += ["", f"Image URL: {image_url}", f"MIME type: {mime_type or 'unknown'}"]
    return "\n".join(lines)


class TelegramNotifier:
    """
    Lightweight Telegram notification sender.

    Args:
        bot_token: Telegram Bot API token.  Falls back to
            ``TELEGRAM_BOT_TOKEN``.
        chat_id: Target chat ID.  Falls back to ``TELEGRAM_CHAT_ID``.
        bot: Pre-built ``telegram.Bot``.  Injected in tests.

    Usage::

        notifier = TelegramNotifier()
        await notifier.notify_upload_failure("twitter", exc, run_id, post)
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        bot: Optional[Any] = None,
    ) -> None:
        self._bot_token: str = bot_token or os.environ.get("TELEGRAM_BOT_TOKEN", "")
        self._chat_id: str = chat_id or os.environ.get("TELEGRAM_CHAT_ID", "")
        self._bot: Optional[Any] = bot
        if self._bot is None and self._bot_token:
            self._bot = Bot(token=self._bot_token)

    @property
    def is_configured(self) -> bool:
        return bool(self._bot is not None and self._chat_id)

    async def send(self, message: str) -> bool:
        """
        Send a plain text message to the configured chat.

        Returns:
            ``True`` when the message was delivered.
        """
        if not self.is_configured:
            logger.warning(
                "[NOTIFY] TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID not set. "
                "Cannot send notification: %s",
                message.splitlines()[0] if message else "",
            )
            return False

        try:
            await self._bot.send_message(chat_id=self._chat_id, text=_truncate(message))
        except Exception:
            logger.exception(
                "[NOTIFY] Failed to send message to chat_id=%s", self._chat_id
            )
            return False
        return True

    async def notify_upload_failure(
        self,
        platform: str,
        error: Any,
        thread_id: str,
        post: Optional[Post] = None,
        image_url: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> bool:
        """Report a failed upload. Never raises."""
        message = format_failure_message(
            platform, error, thread_id, post, image_url=image_url, mime_type=mime_type
        )
        return await self.send(message)


__all__ = ["TelegramNotifier", "format_failure_message"]

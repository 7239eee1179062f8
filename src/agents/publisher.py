"""
Publisher Agent -- hands the finished post to the platform adapter.

Dispatch by platform:

- **instagram**: image required; the caption is published with it.
- **twitter**: single tweet or two-part thread; media on the first part
  only, never in text-only mode.
- **linkedin**: image post when an image exists and text-only mode is off,
  otherwise a text post.
- **slack**: no upload adapter; the publish is skipped with a warning.

Any adapter failure is reported to the notification sink and then
re-raised so the run is marked failed.  Notification problems never mask
the original error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from src.config import Settings
from src.models import Platform, Post, PublishStatus, SinglePost, ThreadPost
from src.tools.image_generation import download_image
from src.tools.instagram_client import InstagramClient
from src.tools.linkedin_client import LinkedInClient
from src.tools.telegram_notifier import TelegramNotifier
from src.tools.twitter import TweetMedia, TweetRequest, resolve_twitter_client
from src.utils import ensure_signature

logger = logging.getLogger("Publisher")


@dataclass(frozen=True)
class PublishOutcome:
    status: PublishStatus
    url: Optional[str] = None


class PublisherAgent:
    """Platform dispatch with failure escalation.

    Args:
        settings: Run settings (text-only mode, organization posting,
            Twitter strategy flags, signature).
        instagram: Instagram adapter; its session cache lives as long as
            this agent.
        notifier: Failure notification sink.
        image_loader: Coroutine function returning ``(bytes, mime_type)``
            for an image URL.
        twitter_factory: Builds a Twitter client for the call.
        linkedin_factory: Builds a LinkedIn client from a credentials
            payload (``None`` for environment configuration).
    """

    def __init__(
        self,
        settings: Settings,
        instagram: Optional[InstagramClient] = None,
        notifier: Optional[TelegramNotifier] = None,
        image_loader: Callable[[str], Awaitable[Tuple[bytes, str]]] = download_image,
        twitter_factory: Callable[..., Any] = resolve_twitter_client,
        linkedin_factory: Callable[[Optional[Dict[str, Any]]], Any] = LinkedInClient.from_credentials,
    ) -> None:
        self.settings = settings
        self.instagram = instagram or InstagramClient()
        self.notifier = notifier or TelegramNotifier()
        self.image_loader = image_loader
        self.twitter_factory = twitter_factory
        self.linkedin_factory = linkedin_factory
        self.logger = logging.getLogger("Publisher")

    # ------------------------------------------------------------------
    # Per-platform uploads
    # ------------------------------------------------------------------

    async def _load_image(self, image_url: Optional[str]) -> Optional[Tuple[bytes, str]]:
        if not image_url:
            return None
        return await self.image_loader(image_url)

    async def _upload_instagram(
        self,
        caption: str,
        image_url: Optional[str],
        credentials: Optional[Dict[str, Any]],
    ) -> Optional[str]:
        image = None if self.settings.text_only_mode else await self._load_image(image_url)
        result = await self.instagram.upload_photo(
            photo=image[0] if image else None,
            caption=caption,
            credentials=credentials,
        )
        return result.get("url")

    async def _upload_twitter(
        self,
        post: Post,
        image_url: Optional[str],
        credentials: Optional[Dict[str, Any]],
    ) -> Optional[str]:
        client = self.twitter_factory(
            credentials=credentials,
            api_only=self.settings.twitter_api_only,
            use_delegated_auth=self.settings.use_delegated_auth,
        )
        image = None if self.settings.text_only_mode else await self._load_image(image_url)
        media = TweetMedia(data=image[0], mime_type=image[1]) if image else None

        if isinstance(post, ThreadPost):
            result = await client.upload_thread(
                [
                    TweetRequest(
                        text=ensure_signature(post.main_post, self.settings.signature),
                        media=media,
                    ),
                    TweetRequest(text=post.reply_post),
                ]
            )
        else:
            result = await client.upload_tweet(
                TweetRequest(
                    text=ensure_signature(post.primary_text, self.settings.signature),
                    media=media,
                )
            )
        return result.get("url")

    async def _upload_linkedin(
        self,
        post: Post,
        image_url: Optional[str],
        credentials: Optional[Dict[str, Any]],
    ) -> Optional[str]:
        client = self.linkedin_factory(credentials)
        text = ensure_signature(post.primary_text, self.settings.signature)
        to_org = self.settings.post_to_linkedin_organization

        if not self.settings.text_only_mode and image_url:
            image, _ = await self.image_loader(image_url)
            result = await client.create_image_post(text, image, post_to_organization=to_org)
        else:
            result = await client.create_text_post(text, post_to_organization=to_org)
        return result.get("url")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def upload_post(
        self,
        platform: Platform,
        post: Optional[Post],
        caption: str = "",
        image_url: Optional[str] = None,
        mime_type: Optional[str] = None,
        credentials: Optional[Dict[str, Any]] = None,
        thread_id: str = "unknown",
    ) -> PublishOutcome:
        """Publish to *platform*.

        Returns:
            :class:`PublishOutcome` with ``success`` and the post URL, or
            ``skipped`` for platforms without an adapter.

        Raises:
            Exception: Whatever the adapter raised, after the failure has
                been reported to the notification sink.
        """
        if platform is Platform.SLACK:
            self.logger.warning("[PUBLISH] No upload adapter for slack, skipping publish")
            return PublishOutcome(status=PublishStatus.SKIPPED)

        post = post or SinglePost(text=caption)
        self.logger.info("[PUBLISH] Uploading %s to %s", post.kind, platform.value)
        try:
            if platform is Platform.INSTAGRAM:
                url = await self._upload_instagram(caption or post.primary_text, image_url, credentials)
            elif platform is Platform.TWITTER:
                url = await self._upload_twitter(post, image_url, credentials)
            else:
                url = await self._upload_linkedin(post, image_url, credentials)
        except Exception as exc:
            self.logger.error("[PUBLISH] Failed to upload to %s: %s", platform.value, exc)
            await self.notifier.notify_upload_failure(
                platform.value,
                exc,
                thread_id,
                post,
                image_url=image_url,
                mime_type=mime_type,
            )
            raise

        self.logger.info("[PUBLISH] Published to %s: %s", platform.value, url)
        return PublishOutcome(status=PublishStatus.SUCCESS, url=url)


__all__ = ["PublisherAgent", "PublishOutcome"]

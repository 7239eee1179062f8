"""
Async X/Twitter publishing client.

Signs requests with OAuth 1.0a user context (``authlib``'s
``AsyncOAuth1Client``, an ``httpx.AsyncClient`` subclass).

Authentication strategies, checked in priority order by
:func:`resolve_twitter_client`:

1. Explicit per-call credentials
   (``{apiKey, apiKeySecret, accessToken, accessTokenSecret}``).
2. API-key-only mode from ``TWITTER_*`` environment variables.
3. Delegated user token: app keys from the environment plus a user token
   obtained by an external exchange (``TWITTER_USER_ID``,
   ``TWITTER_USER_TOKEN``, ``TWITTER_USER_TOKEN_SECRET``).

Media is uploaded through the v1.1 upload endpoint and attached only to
the first tweet of a thread.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from authlib.integrations.httpx_client import AsyncOAuth1Client

from src.exceptions import (
    PlatformAuthError,
    PlatformError,
    PlatformRateLimitError,
    PreconditionError,
    RetryExhaustedError,
    TwitterAPIError,
)
from src.utils import is_transient_platform_error, retry_async

logger = logging.getLogger(__name__)

PLATFORM = "twitter"
MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0


@dataclass
class TweetMedia:
    """Binary media to attach to a tweet."""

    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class TweetRequest:
    text: str
    media: Optional[TweetMedia] = None


def tweet_url(tweet_id: str) -> str:
    return f"https://x.com/i/web/status/{tweet_id}"


class TwitterClient:
    """X/Twitter publisher for single tweets and two-part threads.

    Args:
        api_key: Consumer key.
        api_key_secret: Consumer secret.
        access_token: User access token.
        access_token_secret: User access token secret.
        client_factory: Callable building the signed HTTP client. Injected
            in tests.
        max_attempts: Attempt budget per API call.
        retry_delay: Seconds between attempts.

    Raises:
        PreconditionError: If any of the four values is missing.

    Usage::

        client = TwitterClient.from_env()
        result = await client.upload_tweet(TweetRequest(text="Hello"))
        print(result["url"])
    """

    TWEETS_URL: str = "https://api.twitter.com/2/tweets"
    MEDIA_UPLOAD_URL: str = "https://upload.twitter.com/1.1/media/upload.json"

    def __init__(
        self,
        api_key: Optional[str],
        api_key_secret: Optional[str],
        access_token: Optional[str],
        access_token_secret: Optional[str],
        client_factory: Callable[..., Any] = AsyncOAuth1Client,
        timeout: float = 60.0,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("api key", api_key),
                ("api key secret", api_key_secret),
                ("access token", access_token),
                ("access token secret", access_token_secret),
            )
            if not value
        ]
        if missing:
            raise PreconditionError(f"Missing Twitter credentials: {', '.join(missing)}")

        self._api_key = api_key
        self._api_key_secret = api_key_secret
        self._access_token = access_token
        self._access_token_secret = access_token_secret
        self._client_factory = client_factory
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Constructors, one per strategy
    # ------------------------------------------------------------------

    @classmethod
    def from_credentials(cls, credentials: Dict[str, Any], **kwargs: Any) -> "TwitterClient":
        return cls(
            api_key=credentials.get("apiKey"),
            api_key_secret=credentials.get("apiKeySecret"),
            access_token=credentials.get("accessToken"),
            access_token_secret=credentials.get("accessTokenSecret"),
            **kwargs,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "TwitterClient":
        return cls(
            api_key=os.environ.get("TWITTER_API_KEY"),
            api_key_secret=os.environ.get("TWITTER_API_KEY_SECRET"),
            access_token=os.environ.get("TWITTER_ACCESS_TOKEN"),
            access_token_secret=os.environ.get("TWITTER_ACCESS_TOKEN_SECRET"),
            **kwargs,
        )

    @classmethod
    def from_delegated_auth(cls, user_id: Optional[str] = None, **kwargs: Any) -> "TwitterClient":
        """Build from a user token issued by an external auth delegate.

        Raises:
            PreconditionError: If the user ID or the user token is missing.
        """
        user_id = user_id or os.environ.get("TWITTER_USER_ID")
        if not user_id:
            raise PreconditionError("Twitter user ID not found")
        token = os.environ.get("TWITTER_USER_TOKEN")
        token_secret = os.environ.get("TWITTER_USER_TOKEN_SECRET")
        if not token or not token_secret:
            raise PreconditionError(
                f"Delegated Twitter token not found for user {user_id}. Set "
                "TWITTER_USER_TOKEN and TWITTER_USER_TOKEN_SECRET."
            )
        logger.info("Using delegated Twitter auth for user %s", user_id)
        return cls(
            api_key=os.environ.get("TWITTER_API_KEY"),
            api_key_secret=os.environ.get("TWITTER_API_KEY_SECRET"),
            access_token=token,
            access_token_secret=token_secret,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _session(self) -> Any:
        return self._client_factory(
            self._api_key,
            client_secret=self._api_key_secret,
            token=self._access_token,
            token_secret=self._access_token_secret,
            timeout=self.timeout,
        )

    @staticmethod
    def _check(response: httpx.Response, action: str) -> None:
        if response.status_code == 429:
            raise PlatformRateLimitError(
                f"Twitter rate limit hit while trying to {action}", PLATFORM
            )
        if response.status_code in (401, 403):
            raise PlatformAuthError(
                f"Twitter rejected the credentials while trying to {action} "
                f"(HTTP {response.status_code}): {response.text[:300]}",
                PLATFORM,
            )
        if response.status_code >= 400:
            raise TwitterAPIError(
                f"Twitter API error while trying to {action}: HTTP "
                f"{response.status_code} {response.text[:300]}",
                PLATFORM,
            )

    async def _call(
        self, func: Callable[..., Any], *args: Any, operation: str, request_unsent: bool, **kwargs: Any
    ) -> Any:
        """Run one API step under the attempt budget.

        Media uploads may be resent after any network failure. Tweet
        creation is resent only when the request never left the client, so
        a retry cannot post the same tweet twice.
        """
        try:
            return await retry_async(
                func,
                *args,
                max_attempts=self.max_attempts,
                delay=self._retry_delay,
                retryable_exceptions=(PlatformError,),
                retry_if=lambda exc: is_transient_platform_error(exc, request_unsent=request_unsent),
                operation_name=operation,
                **kwargs,
            )
        except RetryExhaustedError as exc:
            raise exc.last_error

    async def _upload_media(self, session: Any, media: TweetMedia) -> str:
        try:
            response = await session.post(
                self.MEDIA_UPLOAD_URL,
                files={"media": ("media", media.data, media.mime_type)},
            )
        except httpx.HTTPError as exc:
            raise TwitterAPIError(f"Twitter media upload failed: {exc}", PLATFORM) from exc
        self._check(response, "upload media")
        media_id = response.json().get("media_id_string")
        if not media_id:
            raise TwitterAPIError("Twitter media upload returned no media id", PLATFORM)
        logger.info("Twitter media uploaded: %s (%d bytes)", media_id, len(media.data))
        return media_id

    async def _create_tweet(
        self,
        session: Any,
        text: str,
        media_id: Optional[str] = None,
        in_reply_to: Optional[str] = None,
    ) -> str:
        payload: Dict[str, Any] = {"text": text}
        if media_id:
            payload["media"] = {"media_ids": [media_id]}
        if in_reply_to:
            payload["reply"] = {"in_reply_to_tweet_id": in_reply_to}
        try:
            response = await session.post(self.TWEETS_URL, json=payload)
        except httpx.HTTPError as exc:
            raise TwitterAPIError(f"Twitter post failed: {exc}", PLATFORM) from exc
        self._check(response, "create a tweet")
        tweet_id = (response.json().get("data") or {}).get("id")
        if not tweet_id:
            raise TwitterAPIError("Twitter post returned no tweet id", PLATFORM)
        return tweet_id

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def upload_tweet(self, request: TweetRequest) -> Dict[str, Any]:
        """Publish a single tweet, with media when given.

        Returns:
            Dict with ``id`` and ``url``.
        """
        result = await self.upload_thread([request])
        return {"id": result["ids"][0], "url": result["url"]}

    async def upload_thread(self, requests: Sequence[TweetRequest]) -> Dict[str, Any]:
        """Publish tweets as a reply chain.

        Only the first request's media is uploaded; media on later parts
        is ignored.

        Returns:
            Dict with ``ids`` (in order) and ``url`` of the first tweet.

        Raises:
            PreconditionError: If *requests* is empty.
        """
        if not requests:
            raise PreconditionError("Cannot upload an empty Twitter thread")

        ids: List[str] = []
        async with self._session() as session:
            first = requests[0]
            media_id = None
            if first.media:
                media_id = await self._call(
                    self._upload_media,
                    session,
                    first.media,
                    operation="twitter_media_upload",
                    request_unsent=False,
                )
            previous = await self._call(
                self._create_tweet,
                session,
                first.text,
                media_id=media_id,
                operation="twitter_create_tweet",
                request_unsent=True,
            )
            ids.append(previous)
            for request in requests[1:]:
                previous = await self._call(
                    self._create_tweet,
                    session,
                    request.text,
                    in_reply_to=previous,
                    operation="twitter_create_tweet",
                    request_unsent=True,
                )
                ids.append(previous)

        logger.info("Twitter %s published: %s", "thread" if len(ids) > 1 else "tweet", ids[0])
        return {"ids": ids, "url": tweet_url(ids[0])}


def resolve_twitter_client(
    credentials: Optional[Dict[str, Any]] = None,
    api_only: bool = False,
    use_delegated_auth: bool = False,
    **kwargs: Any,
) -> TwitterClient:
    """Pick the authentication strategy for this call.

    Explicit credentials win; otherwise API-key mode is used unless
    delegated auth is enabled and API-only mode is not.
    """
    if credentials:
        return TwitterClient.from_credentials(credentials, **kwargs)
    if api_only or not use_delegated_auth:
        return TwitterClient.from_env(**kwargs)
    return TwitterClient.from_delegated_auth(**kwargs)


__all__ = [
    "TwitterClient",
    "TweetMedia",
    "TweetRequest",
    "resolve_twitter_client",
    "tweet_url",
]

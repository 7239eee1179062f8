"""
Async Instagram client wrapper.

Wraps the synchronous ``instagrapi`` library (Instagram private API) with
``asyncio.to_thread`` to provide an async interface.

Session handling:
    - One logged-in ``instagrapi.Client`` is cached per adapter instance,
      keyed by username.  A request for the same username reuses it.
    - Any credential mismatch or a login-required error invalidates the
      cache completely; the next attempt logs in from scratch.

Upload policy:
    - The image is always re-normalized for Instagram before upload.
    - Up to two attempts with a fixed 3 second delay.
    - Verification challenges are fatal (``PlatformChallengeError``).
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from instagrapi import Client
from instagrapi.exceptions import (
    BadPassword,
    ChallengeRequired,
    LoginRequired,
    PleaseWaitFewMinutes,
    TwoFactorRequired,
    UserNotFound,
)

from src.exceptions import (
    InstagramError,
    PlatformAuthError,
    PlatformChallengeError,
    PlatformRateLimitError,
    PlatformUploadError,
    PreconditionError,
    RetryExhaustedError,
)
from src.tools.image_normalizer import INSTAGRAM_PROFILE, normalize_image
from src.utils import retry_async

logger = logging.getLogger(__name__)

PLATFORM = "instagram"
MAX_UPLOAD_ATTEMPTS = 2
RETRY_DELAY_SECONDS = 3.0

CHALLENGE_MESSAGE = (
    "Instagram requires verification. Log in to the Instagram app, complete "
    "the security check, then reconnect your account."
)


# ======================================================================
# ERROR CLASSIFICATION
# ======================================================================


def _message(exc: BaseException) -> str:
    return str(getattr(exc, "message", "") or exc)


def _is_challenge(exc: BaseException) -> bool:
    if isinstance(exc, ChallengeRequired):
        return True
    text = _message(exc).lower()
    return "checkpoint" in text or "challenge_required" in text


def _is_login_required(exc: BaseException) -> bool:
    if isinstance(exc, LoginRequired):
        return True
    return "login_required" in _message(exc).lower()


def map_login_error(exc: Exception) -> Exception:
    """Translate an ``instagrapi`` login failure into the project hierarchy."""
    if _is_challenge(exc):
        return PlatformChallengeError(CHALLENGE_MESSAGE, PLATFORM)
    if isinstance(exc, BadPassword):
        return PlatformAuthError(
            "Incorrect Instagram password. Update your credentials and reconnect.",
            PLATFORM,
        )
    if isinstance(exc, UserNotFound):
        return PlatformAuthError(
            "Instagram user not found. Check the username.", PLATFORM
        )
    if isinstance(exc, TwoFactorRequired):
        return PlatformAuthError(
            "Instagram two-factor authentication is enabled. Disable it or "
            "use an app-specific login.",
            PLATFORM,
        )
    if isinstance(exc, PleaseWaitFewMinutes) or "wait a few minutes" in _message(exc).lower():
        return PlatformRateLimitError(
            "Instagram rate limit hit. Wait a few minutes before trying again.",
            PLATFORM,
        )
    return InstagramError(f"Failed to log in to Instagram: {_message(exc)}", PLATFORM)


def resolve_credentials(credentials: Optional[Dict[str, Any]]) -> Tuple[str, str]:
    """Return ``(username, password)`` from *credentials* or the environment.

    Raises:
        PreconditionError: If either value is missing.
    """
    credentials = credentials or {}
    username = credentials.get("username") or os.environ.get("INSTAGRAM_USERNAME", "")
    password = credentials.get("password") or os.environ.get("INSTAGRAM_PASSWORD", "")
    if not username or not password:
        raise PreconditionError(
            "Instagram credentials not provided. Pass username/password or set "
            "INSTAGRAM_USERNAME and INSTAGRAM_PASSWORD."
        )
    return username, password


# ======================================================================
# CLIENT
# ======================================================================


class InstagramClient:
    """Async Instagram photo publisher with an instance-scoped session cache.

    Args:
        client_factory: Zero-argument callable returning a fresh
            ``instagrapi.Client``.  Injected in tests.
        retry_delay: Seconds between upload attempts.

    Usage::

        ig = InstagramClient()
        result = await ig.upload_photo(photo=jpeg_bytes, caption="Hello")
        print(result["url"])
    """

    def __init__(
        self,
        client_factory: Callable[[], Any] = Client,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        self._client_factory = client_factory
        self._retry_delay = retry_delay
        self._client: Optional[Any] = None
        self._session_username: Optional[str] = None

    @property
    def session_username(self) -> Optional[str]:
        return self._session_username

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def invalidate_session(self) -> None:
        """Drop the cached session entirely."""
        if self._session_username:
            logger.info("Instagram session invalidated for %s", self._session_username)
        self._client = None
        self._session_username = None

    async def login(self, username: str, password: str) -> Any:
        """Log in unless a session for *username* is already cached.

        Raises:
            PlatformChallengeError: On checkpoint / challenge.
            PlatformAuthError: On bad password, unknown user or 2FA.
            PlatformRateLimitError: When Instagram asks to wait.
            InstagramError: On any other login failure.
        """
        if self._client is not None and self._session_username == username:
            logger.debug("Reusing Instagram session for %s", username)
            return self._client

        self.invalidate_session()
        client = self._client_factory()
        logger.info("Logging in to Instagram as %s", username)
        try:
            await asyncio.to_thread(client.login, username, password)
        except Exception as exc:
            raise map_login_error(exc) from exc

        self._client = client
        self._session_username = username
        return client

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def _upload_once(self, jpeg: bytes, caption: str, username: str, password: str) -> Any:
        client = await self.login(username, password)

        def _upload() -> Any:
            with tempfile.TemporaryDirectory() as tmp_dir:
                path = Path(tmp_dir) / "post.jpg"
                path.write_bytes(jpeg)
                return client.photo_upload(path, caption)

        try:
            return await asyncio.to_thread(_upload)
        except Exception as exc:
            if _is_challenge(exc):
                raise PlatformChallengeError(CHALLENGE_MESSAGE, PLATFORM) from exc
            raise

    def _on_retry(self, exc: Exception, attempt: int) -> None:
        if _is_login_required(exc):
            logger.warning(
                "Instagram session expired on attempt %d, re-authenticating", attempt
            )
            self.invalidate_session()

    async def upload_photo(
        self,
        photo: Optional[bytes],
        caption: str,
        credentials: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Normalize *photo* and publish it with *caption*.

        Args:
            photo: Encoded image bytes. Required.
            caption: Post caption.
            credentials: Optional ``{"username", "password"}``; falls back
                to ``INSTAGRAM_USERNAME`` / ``INSTAGRAM_PASSWORD``.

        Returns:
            Dict with ``media_id``, ``code`` and ``url``.

        Raises:
            PreconditionError: If *photo* or credentials are missing.
            ImageNormalizationError: If the image cannot be decoded.
            PlatformChallengeError: If Instagram demands verification.
            PlatformUploadError: When both attempts fail.
        """
        if not photo:
            raise PreconditionError("Image is required for Instagram posts")

        username, password = resolve_credentials(credentials)
        jpeg = normalize_image(photo, INSTAGRAM_PROFILE)

        try:
            media = await retry_async(
                self._upload_once,
                jpeg,
                caption,
                username,
                password,
                max_attempts=MAX_UPLOAD_ATTEMPTS,
                delay=self._retry_delay,
                retry_if=lambda exc: not isinstance(exc, (PlatformAuthError, PreconditionError)),
                on_retry=self._on_retry,
                operation_name="instagram_upload",
            )
        except RetryExhaustedError as exc:
            raise PlatformUploadError(
                f"Failed to upload to Instagram after {exc.attempts} attempts: "
                f"{_message(exc.last_error)}",
                PLATFORM,
            ) from exc.last_error

        code = getattr(media, "code", None)
        result = {
            "media_id": str(getattr(media, "pk", "") or getattr(media, "id", "")),
            "code": code,
            "url": f"https://www.instagram.com/p/{code}/" if code else None,
        }
        logger.info("Instagram photo published: %s", result["url"] or result["media_id"])
        return result


__all__ = [
    "InstagramClient",
    "map_login_error",
    "resolve_credentials",
    "CHALLENGE_MESSAGE",
    "MAX_UPLOAD_ATTEMPTS",
]

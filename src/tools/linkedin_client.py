"""
Async LinkedIn REST client.

Publishes UGC posts through the LinkedIn v2 REST API with ``httpx``.

Author identity:
    Resolved per call as ``urn:li:person:<id>`` or
    ``urn:li:organization:<id>``.  Posting as an organization is opt-in
    (``post_to_organization``); a client configured with only an
    organization ID posts as that organization.

Image posts are a three-step protocol and abort on the first failing step:
    1. ``POST /assets?action=registerUpload`` for the author.
    2. Binary upload of the normalized image to the returned upload URL.
    3. ``POST /ugcPosts`` referencing the registered asset.

HTTP 429 raises ``LinkedInRateLimitError``; 401/403 raise
``PlatformAuthError``; anything else non-2xx raises ``LinkedInAPIError``.

Each step runs under a small fixed-delay attempt budget. Rate limits are
retried everywhere. Network failures are retried for the register and upload
steps; the final ``ugcPosts`` create is resent only when its request never
reached LinkedIn.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Optional

import httpx

from src.exceptions import (
    ConfigurationError,
    LinkedInAPIError,
    LinkedInRateLimitError,
    PlatformAuthError,
    PlatformError,
    RetryExhaustedError,
)
from src.tools.image_normalizer import LINKEDIN_PROFILE, normalize_image
from src.utils import is_transient_platform_error, retry_async

logger = logging.getLogger(__name__)

PLATFORM = "linkedin"
IMAGE_RECIPE = "urn:li:digitalmediaRecipe:feedshare-image"
UPLOAD_MECHANISM = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"
MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0

PERSON_SCOPES = ["openid", "profile", "email", "w_member_social"]
ORGANIZATION_SCOPES = ["w_organization_social", "r_organization_social"]


def required_scopes(post_to_organization: bool = False) -> List[str]:
    """OAuth scopes needed to post as a member or as an organization."""
    if post_to_organization:
        return PERSON_SCOPES + ORGANIZATION_SCOPES
    return list(PERSON_SCOPES)


def post_url(urn: str) -> str:
    return f"https://www.linkedin.com/feed/update/{urn}/"


class LinkedInClient:
    """LinkedIn UGC post publisher.

    Explicit arguments take precedence over ``LINKEDIN_ACCESS_TOKEN``,
    ``LINKEDIN_PERSON_URN`` and ``LINKEDIN_ORGANIZATION_ID``.

    Args:
        access_token: OAuth 2.0 bearer token.
        person_urn: Member ID (the part after ``urn:li:person:``).
        organization_id: Organization ID.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempt budget per API step.
        retry_delay: Seconds between attempts.

    Raises:
        ConfigurationError: If the access token is missing, or if neither
            a person URN nor an organization ID is available.
    """

    BASE_URL: str = "https://api.linkedin.com/v2"

    def __init__(
        self,
        access_token: Optional[str] = None,
        person_urn: Optional[str] = None,
        organization_id: Optional[str] = None,
        timeout: float = 60.0,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        self.access_token = access_token or os.environ.get("LINKEDIN_ACCESS_TOKEN", "")
        self.person_urn = _strip_urn(
            person_urn or os.environ.get("LINKEDIN_PERSON_URN", ""), "person"
        )
        self.organization_id = _strip_urn(
            organization_id or os.environ.get("LINKEDIN_ORGANIZATION_ID", ""),
            "organization",
        )
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._retry_delay = retry_delay

        if not self.access_token:
            raise ConfigurationError(
                "Missing LinkedIn access token. Pass it explicitly or set the "
                "LINKEDIN_ACCESS_TOKEN environment variable."
            )
        if not self.person_urn and not self.organization_id:
            raise ConfigurationError(
                "Must provide at least one of personUrn or organizationId."
            )

    @classmethod
    def from_credentials(
        cls, credentials: Optional[Dict[str, Any]], **kwargs: Any
    ) -> "LinkedInClient":
        """Build from a ``{accessToken, personUrn, organizationId}`` payload."""
        credentials = credentials or {}
        return cls(
            access_token=credentials.get("accessToken") or credentials.get("access_token"),
            person_urn=credentials.get("personUrn") or credentials.get("person_urn"),
            organization_id=credentials.get("organizationId")
            or credentials.get("organization_id"),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def author_urn(self, post_to_organization: bool = False) -> str:
        """Resolve the author URN for a post.

        Raises:
            ConfigurationError: If the identifier for the selected mode is
                missing.
        """
        if post_to_organization or not self.person_urn:
            if not self.organization_id:
                raise ConfigurationError(
                    "Missing organization ID. Pass it explicitly or set the "
                    "LINKEDIN_ORGANIZATION_ID environment variable."
                )
            return f"urn:li:organization:{self.organization_id}"
        return f"urn:li:person:{self.person_urn}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "X-Restli-Protocol-Version": "2.0.0",
        }

    @staticmethod
    def _check(response: httpx.Response, action: str) -> None:
        if response.status_code == 429:
            raise LinkedInRateLimitError(
                f"LinkedIn rate limit hit while trying to {action}", PLATFORM
            )
        if response.status_code in (401, 403):
            raise PlatformAuthError(
                f"LinkedIn rejected the access token while trying to {action} "
                f"(HTTP {response.status_code})",
                PLATFORM,
            )
        if response.status_code >= 400:
            raise LinkedInAPIError(
                f"LinkedIn API error while trying to {action}: HTTP "
                f"{response.status_code} {response.text[:300]}",
                PLATFORM,
            )

    async def _post_json(
        self, client: httpx.AsyncClient, path: str, payload: Dict[str, Any], action: str
    ) -> httpx.Response:
        try:
            response = await client.post(
                f"{self.BASE_URL}{path}", headers=self._headers(), json=payload
            )
        except httpx.HTTPError as exc:
            raise LinkedInAPIError(f"LinkedIn request failed ({action}): {exc}", PLATFORM) from exc
        self._check(response, action)
        return response

    async def _call(
        self, func: Callable[..., Any], *args: Any, request_unsent: bool, operation: str
    ) -> Any:
        try:
            return await retry_async(
                func,
                *args,
                max_attempts=self.max_attempts,
                delay=self._retry_delay,
                retryable_exceptions=(PlatformError,),
                retry_if=lambda exc: is_transient_platform_error(exc, request_unsent=request_unsent),
                operation_name=operation,
            )
        except RetryExhaustedError as exc:
            raise exc.last_error

    async def _upload_image(self, client: httpx.AsyncClient, upload_url: str, data: bytes) -> None:
        try:
            upload = await client.post(
                upload_url,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/octet-stream",
                },
                content=data,
            )
        except httpx.HTTPError as exc:
            raise LinkedInAPIError(f"Failed to upload image: {exc}", PLATFORM) from exc
        self._check(upload, "upload an image")

    @staticmethod
    def _share_payload(
        author: str,
        text: str,
        media_category: str = "NONE",
        media: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        share_content: Dict[str, Any] = {
            "shareCommentary": {"text": text},
            "shareMediaCategory": media_category,
        }
        if media:
            share_content["media"] = media
        return {
            "author": author,
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share_content},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }

    @staticmethod
    def _post_urn(response: httpx.Response) -> str:
        urn = response.headers.get("x-restli-id", "")
        if not urn:
            try:
                urn = response.json().get("id", "")
            except ValueError:
                urn = ""
        return urn

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    async def create_text_post(
        self, text: str, post_to_organization: bool = False
    ) -> Dict[str, Any]:
        """Publish a text-only post.

        Returns:
            Dict with ``urn`` and ``url`` of the new post.
        """
        author = self.author_urn(post_to_organization)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await self._call(
                self._post_json,
                client,
                "/ugcPosts",
                self._share_payload(author, text),
                "create a post",
                request_unsent=True,
                operation="linkedin_create_post",
            )
        urn = self._post_urn(response)
        logger.info("LinkedIn text post published as %s: %s", author, urn)
        return {"urn": urn, "url": post_url(urn) if urn else None}

    async def create_image_post(
        self,
        text: str,
        image: bytes,
        post_to_organization: bool = False,
        image_title: str = "Image title",
        image_description: str = "Image description",
    ) -> Dict[str, Any]:
        """Register, upload and publish an image post.

        Args:
            text: Post commentary.
            image: Encoded source image; normalized before upload.
            post_to_organization: Post as the configured organization.

        Returns:
            Dict with ``urn``, ``url`` and ``asset``.

        Raises:
            ImageNormalizationError: If the image cannot be decoded.
            LinkedInAPIError: If any step fails. No post is created then.
        """
        author = self.author_urn(post_to_organization)
        processed = normalize_image(image, LINKEDIN_PROFILE)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            register = await self._call(
                self._post_json,
                client,
                "/assets?action=registerUpload",
                {
                    "registerUploadRequest": {
                        "recipes": [IMAGE_RECIPE],
                        "owner": author,
                        "serviceRelationships": [
                            {
                                "relationshipType": "OWNER",
                                "identifier": "urn:li:userGeneratedContent",
                            }
                        ],
                    }
                },
                "register an image upload",
                request_unsent=False,
                operation="linkedin_register_upload",
            )
            value = register.json().get("value") or {}
            asset = value.get("asset")
            upload_url = (
                (value.get("uploadMechanism") or {}).get(UPLOAD_MECHANISM) or {}
            ).get("uploadUrl")
            if not asset or not upload_url:
                raise LinkedInAPIError(
                    "LinkedIn registerUpload response is missing the asset or upload URL",
                    PLATFORM,
                )

            await self._call(
                self._upload_image,
                client,
                upload_url,
                processed,
                request_unsent=False,
                operation="linkedin_upload_image",
            )
            logger.info("LinkedIn image uploaded: %s (%d bytes)", asset, len(processed))

            media = [
                {
                    "status": "READY",
                    "description": {"text": image_description},
                    "media": asset,
                    "title": {"text": image_title},
                }
            ]
            response = await self._call(
                self._post_json,
                client,
                "/ugcPosts",
                self._share_payload(author, text, "IMAGE", media),
                "create an image post",
                request_unsent=True,
                operation="linkedin_create_image_post",
            )

        urn = self._post_urn(response)
        logger.info("LinkedIn image post published as %s: %s", author, urn)
        return {"urn": urn, "url": post_url(urn) if urn else None, "asset": asset}


def _strip_urn(value: str, kind: str) -> str:
    prefix = f"urn:li:{kind}:"
    return value[len(prefix):] if value.startswith(prefix) else value


__all__ = ["LinkedInClient", "required_scopes", "post_url"]

"""
Image generation client for post visuals.

Calls an OpenAI-compatible ``/images/generations`` endpoint (Laozhang.ai by
default, overridable through ``IMAGE_API_BASE_URL``).  Generation is never
allowed to abort the visuals stage: callers use :func:`generate_or_fallback`,
which degrades to a harvested image or a placeholder URL.
"""

import logging
import mimetypes
import os
from typing import Any, Dict, Optional, Sequence, Tuple
from urllib.parse import quote_plus, urlparse

import httpx

from src.exceptions import ImageGenerationError
from src.utils import with_retry

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


def placeholder_image_url(text: str = "Content+Automation", size: str = "1080x1080") -> str:
    """URL of a neutral placeholder image labelled with *text*."""
    label = text if "+" in text else quote_plus(text)
    return f"https://placehold.co/{size}/png?text={label}"


def guess_mime_type(url: str) -> str:
    """Guess the MIME type from the URL path, defaulting to JPEG."""
    path = urlparse(url).path
    guessed, _ = mimetypes.guess_type(path)
    if guessed and guessed.startswith("image/"):
        return guessed
    if "format=png" in url or "/png" in path:
        return "image/png"
    return DEFAULT_MIME_TYPE


class ImageGenerationClient:
    """Image generation via an OpenAI-compatible images endpoint.

    Args:
        api_key: API key.  Falls back to ``IMAGE_API_KEY``.
        base_url: API root.  Falls back to ``IMAGE_API_BASE_URL``.
        model: Image model identifier.

    Usage::

        client = ImageGenerationClient()
        result = await client.generate_image("Sunset over a tech conference")
        print(result["url"])
    """

    BASE_URL: str = "https://api.laozhang.ai/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = "gemini-3-pro-image-preview",
    ) -> None:
        self.api_key: str = api_key or os.environ.get("IMAGE_API_KEY", "")
        self.base_url: str = (
            base_url or os.environ.get("IMAGE_API_BASE_URL") or self.BASE_URL
        ).rstrip("/")
        self.model = model

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Image generation
    # ------------------------------------------------------------------

    @with_retry(
        max_attempts=2,
        delay=2.0,
        retryable_exceptions=(httpx.TransportError,),
    )
    async def generate_image(
        self,
        prompt: str,
        size: str = "1024x1024",
    ) -> Dict[str, Any]:
        """Generate an image from a text prompt.

        Args:
            prompt: Text description of the desired image.
            size: Image dimensions as ``"WxH"``.

        Returns:
            Dict with keys ``url``, ``mime_type``, ``prompt_used`` and
            ``model``.

        Raises:
            ImageGenerationError: If unconfigured, if the API returns a
                non-2xx status, or if the response holds no image URL.
        """
        if not self.is_configured:
            raise ImageGenerationError("IMAGE_API_KEY not configured")

        async with httpx.AsyncClient(timeout=120.0) as client:
            response = await client.post(
                f"{self.base_url}/images/generations",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "size": size,
                    "n": 1,
                },
            )

        if response.status_code != 200:
            raise ImageGenerationError(
                f"Image API error {response.status_code}: {response.text[:300]}"
            )

        items = response.json().get("data") or []
        if not items or "url" not in items[0]:
            keys = list(items[0].keys()) if items else []
            raise ImageGenerationError(f"Unexpected image API response format: {keys}")

        image_url = items[0]["url"]
        logger.info(
            "Image generated: size=%s, prompt_len=%d",
            size,
            len(prompt),
        )
        return {
            "url": image_url,
            "mime_type": guess_mime_type(image_url),
            "prompt_used": prompt,
            "model": self.model,
        }


async def download_image(url: str, timeout: float = 60.0) -> Tuple[bytes, str]:
    """Download *url* and return ``(bytes, mime_type)``.

    Raises:
        ImageGenerationError: On HTTP failure or an empty body.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise ImageGenerationError(f"Failed to download image {url}: {exc}") from exc

    if not response.content:
        raise ImageGenerationError(f"Downloaded image is empty: {url}")
    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    mime_type = content_type if content_type.startswith("image/") else guess_mime_type(url)
    logger.debug("Image downloaded: %s (%d bytes, %s)", url, len(response.content), mime_type)
    return response.content, mime_type


async def generate_or_fallback(
    client: ImageGenerationClient,
    prompt: str,
    image_options: Sequence[str] = (),
) -> Tuple[str, str]:
    """Generate an image, degrading instead of failing.

    Order: generated image, first harvested ``image_options`` URL,
    placeholder image.

    Returns:
        ``(image_url, mime_type)``.
    """
    try:
        result = await client.generate_image(prompt)
        return result["url"], result["mime_type"]
    except Exception as exc:
        logger.warning("Image generation failed, using fallback image: %s", exc)

    for option in image_options:
        if option:
            return option, guess_mime_type(option)

    url = placeholder_image_url()
    return url, guess_mime_type(url)


__all__ = [
    "ImageGenerationClient",
    "generate_or_fallback",
    "download_image",
    "placeholder_image_url",
    "guess_mime_type",
    "DEFAULT_MIME_TYPE",
]

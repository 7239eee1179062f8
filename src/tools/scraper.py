"""
Page scraping: Firecrawl for structured scrapes, httpx + BeautifulSoup as
the basic fallback.

Both paths raise :class:`~src.exceptions.ScrapeError` on failure so the
relevancy stage can tell "could not fetch" apart from "fetched, nothing
relevant".  An empty page body counts as a failure.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from src.exceptions import ScrapeError

logger = logging.getLogger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)


@dataclass
class ScrapeResult:
    """Text of a page plus any image URLs harvested while scraping it."""

    url: str
    text: str
    images: List[str] = field(default_factory=list)


# ======================================================================
# BASIC FETCH
# ======================================================================


def html_to_text(html: str) -> str:
    """Extract visible text from *html*, whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return " ".join(soup.get_text(separator=" ").split())


async def fetch_page_text(url: str, timeout: float = 20.0) -> ScrapeResult:
    """Fetch *url* and return its visible text.

    Raises:
        ScrapeError: On HTTP failure or when the page has no text.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            html = response.text
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ScrapeError(f"Basic fetch failed for {url}: {exc}") from exc

    text = html_to_text(html)
    if not text:
        raise ScrapeError(f"Basic fetch returned no text for {url}")

    logger.debug("Basic fetch: url=%s, chars=%d", url, len(text))
    return ScrapeResult(url=url, text=text)


# ======================================================================
# FIRECRAWL
# ======================================================================


class FirecrawlClient:
    """Async Firecrawl scrape client.

    Args:
        api_key: Firecrawl API key.  Falls back to ``FIRECRAWL_API_KEY``,
            then ``FIRE_CRAWL_API_KEY``.
    """

    BASE_URL: str = "https://api.firecrawl.dev/v1"

    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key: str = (
            api_key
            or os.environ.get("FIRECRAWL_API_KEY")
            or os.environ.get("FIRE_CRAWL_API_KEY", "")
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _harvest_images(data: Dict[str, Any]) -> List[str]:
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}
        images: List[str] = []
        for key in ("ogImage", "image"):
            value = metadata.get(key)
            candidates = value if isinstance(value, list) else [value]
            for candidate in candidates:
                if isinstance(candidate, str) and candidate.startswith("http") and candidate not in images:
                    images.append(candidate)
        screenshot = data.get("screenshot")
        if isinstance(screenshot, str) and screenshot.startswith("http") and screenshot not in images:
            images.append(screenshot)
        return images

    async def scrape(self, url: str, timeout: float = 60.0) -> ScrapeResult:
        """Scrape *url* as markdown plus screenshot.

        Raises:
            ScrapeError: If unconfigured, on HTTP failure, or when the
                response carries no markdown.
        """
        if not self.is_configured:
            raise ScrapeError("Firecrawl API key not configured")

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    f"{self.BASE_URL}/scrape",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={"url": url, "formats": ["markdown", "screenshot"]},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ScrapeError(f"Firecrawl scrape failed for {url}: {exc}") from exc

        if not isinstance(payload, dict):
            raise ScrapeError(f"Firecrawl returned a non-object body for {url}")
        if not payload.get("success", True):
            raise ScrapeError(
                f"Firecrawl scrape failed for {url}: {payload.get('error', 'unknown error')}"
            )

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise ScrapeError(f"Firecrawl returned malformed data for {url}")
        markdown = data.get("markdown") or ""
        markdown = markdown.strip() if isinstance(markdown, str) else ""
        if not markdown:
            raise ScrapeError(f"Firecrawl returned no content for {url}")

        images = self._harvest_images(data)
        logger.debug(
            "Firecrawl scrape: url=%s, chars=%d, images=%d",
            url,
            len(markdown),
            len(images),
        )
        return ScrapeResult(url=url, text=markdown, images=images)


__all__ = ["ScrapeResult", "FirecrawlClient", "fetch_page_text", "html_to_text"]

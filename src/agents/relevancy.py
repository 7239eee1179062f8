"""
Relevancy Agent -- fetches each candidate URL and keeps the relevant ones.

Fetch policy per URL:

- Protected platforms (Instagram, Facebook, Twitter/X) block scrapers, so
  they go straight to the basic page-text fetch.
- Everything else tries the advanced Firecrawl scrape first (markdown plus
  screenshot) and falls back to the basic fetch on any failure.
- If every fetch path fails, the URL is dropped.  It is never retried.

Each fetched page is then checked by the LLM against the business context
unless the bypass flag is set, in which case every fetched page is kept.
Checks for different URLs run concurrently; results are merged by
position so ``relevant_links[i]`` always matches ``page_contents[i]`` and
discovery order is preserved.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence
from urllib.parse import urlparse

from src.exceptions import ScrapeError
from src.models import RelevancyResult
from src.tools.llm import LLMClient
from src.tools.scraper import FirecrawlClient, ScrapeResult, fetch_page_text

logger = logging.getLogger("Relevancy")

PROTECTED_DOMAINS = ("instagram.com", "facebook.com", "twitter.com", "x.com")

BUSINESS_CONTEXT = """Your business publishes timely, useful social media content about the topics and places your audience searches for: news, events, product launches, releases and practical guides."""

RELEVANCY_SYSTEM_PROMPT = f"""You are a highly regarded marketing employee.
You're provided with a webpage containing content a third party submitted to you claiming it's relevant to your business context.
Your task is to carefully read over the entire page, and determine whether or not the content is actually relevant to your context.

<business-context>
{BUSINESS_CONTEXT}
</business-context>

Content is relevant when it is specific, current and substantial enough to build a post around.
Listing pages without substance, login walls, error pages and unrelated content are not relevant.

Given this context, examine the webpage content closely, and determine if the content is relevant to your context.
Respond with JSON: {{"reasoning": "<why or why not>", "relevant": true | false}}."""


def is_protected_url(url: str) -> bool:
    """True when *url* is hosted on a platform known to block scrapers."""
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in PROTECTED_DOMAINS)


@dataclass
class VerificationOutcome:
    """Parallel sequences of relevant links and their page contents."""

    relevant_links: List[str] = field(default_factory=list)
    page_contents: List[str] = field(default_factory=list)
    image_options: List[str] = field(default_factory=list)


class RelevancyAgent:
    """Fetch-and-check filter over candidate URLs.

    Args:
        llm: LLM used for the relevancy verdict.
        firecrawl: Advanced scrape client.
        basic_fetch: Coroutine function used for the basic page-text fetch.
        skip_check: Accept every successfully fetched page without asking
            the LLM.
    """

    def __init__(
        self,
        llm: LLMClient,
        firecrawl: FirecrawlClient,
        basic_fetch: Callable[[str], Awaitable[ScrapeResult]] = fetch_page_text,
        skip_check: bool = False,
    ) -> None:
        self.llm = llm
        self.firecrawl = firecrawl
        self.basic_fetch = basic_fetch
        self.skip_check = skip_check
        self.logger = logging.getLogger("Relevancy")

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def get_url_contents(self, url: str) -> ScrapeResult:
        """Fetch *url* following the protected / advanced / basic policy.

        Raises:
            ScrapeError: If every applicable fetch path failed.
        """
        if is_protected_url(url):
            self.logger.info("Protected platform, using basic fetch: %s", url)
            return await self.basic_fetch(url)

        if self.firecrawl.is_configured:
            try:
                return await self.firecrawl.scrape(url)
            except ScrapeError as exc:
                self.logger.info("Advanced scrape failed, falling back to basic fetch: %s", exc)
        else:
            self.logger.debug("Firecrawl not configured, using basic fetch for %s", url)

        return await self.basic_fetch(url)

    # ------------------------------------------------------------------
    # Relevancy
    # ------------------------------------------------------------------

    async def is_relevant(self, content: str, system_prompt: str = RELEVANCY_SYSTEM_PROMPT) -> bool:
        """Ask the LLM whether *content* fits the business context."""
        result = await self.llm.generate_structured(
            content,
            RelevancyResult,
            system=system_prompt,
            temperature=0.0,
        )
        self.logger.debug("Relevancy verdict=%s: %s", result.relevant, result.reasoning[:200])
        return result.relevant

    async def verify_link(self, url: str) -> Optional[ScrapeResult]:
        """Return the fetched page when it is relevant, else ``None``."""
        try:
            page = await self.get_url_contents(url)
        except ScrapeError as exc:
            self.logger.warning("Skipping %s, could not fetch content: %s", url, exc)
            return None

        if self.skip_check:
            return page

        try:
            relevant = await self.is_relevant(page.text)
        except Exception as exc:
            self.logger.warning("Skipping %s, relevancy check failed: %s", url, exc)
            return None

        if not relevant:
            self.logger.info("Not relevant, dropping %s", url)
            return None
        return page

    async def verify_links(self, links: Sequence[str]) -> VerificationOutcome:
        """Verify *links* concurrently and merge the survivors in order."""
        results = await asyncio.gather(*(self.verify_link(url) for url in links))

        outcome = VerificationOutcome()
        for url, page in zip(links, results):
            if page is None:
                continue
            outcome.relevant_links.append(url)
            outcome.page_contents.append(page.text)
            for image in page.images:
                if image not in outcome.image_options:
                    outcome.image_options.append(image)

        self.logger.info(
            "Relevancy: kept %d of %d links (bypass=%s)",
            len(outcome.relevant_links),
            len(links),
            self.skip_check,
        )
        return outcome


__all__ = [
    "RelevancyAgent",
    "VerificationOutcome",
    "is_protected_url",
    "PROTECTED_DOMAINS",
    "RELEVANCY_SYSTEM_PROMPT",
]

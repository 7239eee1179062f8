"""
Async Serper (Google Search API) client for content discovery.

Discovery must never fail the pipeline: without ``SERPER_API_KEY`` the
client returns a fixed pair of placeholder events, and any HTTP or parse
failure yields an empty list.
"""

import logging
import os
from typing import Any, List, Optional

import httpx

from src.models import CandidateEvent

logger = logging.getLogger(__name__)


PLACEHOLDER_EVENTS: List[CandidateEvent] = [
    CandidateEvent(
        title="Mock Event 1",
        link="https://example.com/1",
        snippet="A placeholder event returned because no search API key is configured.",
        date="Tomorrow",
    ),
    CandidateEvent(
        title="Mock Event 2",
        link="https://example.com/2",
        snippet="A second placeholder event for running the pipeline without credentials.",
        date="Weekend",
    ),
]


class SerperClient:
    """Async client for the Serper search endpoint.

    Args:
        api_key: Serper API key.  Falls back to the ``SERPER_API_KEY``
            environment variable.

    Usage::

        client = SerperClient()
        events = await client.search("AI News", "San Francisco")
    """

    BASE_URL: str = "https://google.serper.dev"

    def __init__(self, api_key: Optional[str] = None, num_results: int = 10) -> None:
        self.api_key: str = api_key or os.environ.get("SERPER_API_KEY", "")
        self.num_results = num_results

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def build_query(search_query: str, location: str) -> str:
        return f"{search_query or ''} {location or ''}".strip()

    async def search(self, search_query: str, location: str = "") -> List[CandidateEvent]:
        """Search for candidate content.

        Args:
            search_query: Free-text query (may be empty).
            location: Free-text location (may be empty).

        Returns:
            Candidate events in provider order; placeholders when no key is
            configured; an empty list on any provider failure.
        """
        if not self.is_configured:
            logger.warning("SERPER_API_KEY not set, returning placeholder events")
            return [CandidateEvent(**event.to_dict()) for event in PLACEHOLDER_EVENTS]

        query = self.build_query(search_query, location)
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(
                    f"{self.BASE_URL}/search",
                    headers={
                        "X-API-KEY": self.api_key,
                        "Content-Type": "application/json",
                    },
                    json={"q": query, "num": self.num_results},
                )
                response.raise_for_status()
                data: Any = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Serper search failed for %r: %s", query, exc)
            return []

        if not isinstance(data, dict):
            logger.error("Serper search for %r returned a non-object body", query)
            return []
        organic = data.get("organic") or []
        if not isinstance(organic, list):
            logger.error("Serper search for %r returned malformed results", query)
            return []

        events = [
            CandidateEvent(
                title=str(item.get("title", "")),
                link=str(item.get("link", "")),
                snippet=str(item.get("snippet", "")),
                date=str(item.get("date", "")),
            )
            for item in organic
            if isinstance(item, dict) and item.get("link")
        ]

        logger.info("Serper search: query=%r, results=%d", query, len(events))
        return events


__all__ = ["SerperClient", "PLACEHOLDER_EVENTS"]

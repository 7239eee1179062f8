"""
Discovery Agent -- finds candidate content and curates a short list.

Two steps:

1. **Discover**: query the search provider for ``"<query> <location>"``.
   Never fails: without a key the provider returns placeholder events, and
   provider errors yield an empty list.
2. **Curate**: ask the LLM to pick the 3-5 most relevant items.  Any LLM or
   parse failure falls back to the first three events.

Curation seeds ``relevant_links`` / ``page_contents`` with the selected
links and snippets plus an initial report built from them, so later stages
always have something to degrade to.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from src.models import CandidateEvent, CurationResult
from src.tools.llm import LLMClient
from src.tools.search import SerperClient

logger = logging.getLogger("Discovery")

MAX_CURATED_ITEMS = 5
FALLBACK_ITEM_COUNT = 3
EMPTY_CURATION_REPORT = "No content available to curate."

CURATION_SYSTEM_PROMPT = """You are a content curator for a social media team.
You pick the search results most worth turning into a post for the audience described by the style guide.
Prefer concrete, recent and specific items over generic listings."""

CURATION_PROMPT = """Style/Tone: {style}

Search topic: {query}

Review the following search results:
{events}

Select the top 3-5 most relevant items.
Return JSON of the form {{"items": [{{"title": "...", "snippet": "...", "link": "..."}}]}}.
Only use links that appear in the search results."""


@dataclass
class CurationOutcome:
    """Selected items plus the parallel link/content sequences they seed."""

    selected: List[CandidateEvent] = field(default_factory=list)
    relevant_links: List[str] = field(default_factory=list)
    page_contents: List[str] = field(default_factory=list)
    report: str = EMPTY_CURATION_REPORT


def build_initial_report(search_query: str, selected: Sequence[CandidateEvent]) -> str:
    """Summarise the curated items as a starting report."""
    if not selected:
        return EMPTY_CURATION_REPORT
    lines = [f"Curated Content for {search_query}:", ""]
    for item in selected:
        lines.append(f"- {item.title}: {item.snippet}" if item.snippet else f"- {item.title}")
    return "\n".join(lines)


class DiscoveryAgent:
    """Search-backed discovery followed by LLM curation.

    Args:
        search: Search provider client.
        llm: LLM used for curation.
    """

    def __init__(self, search: SerperClient, llm: LLMClient) -> None:
        self.search = search
        self.llm = llm
        self.logger = logging.getLogger("Discovery")

    async def discover(self, search_query: str, location: str = "") -> List[CandidateEvent]:
        """Return candidate events in provider order. Never raises."""
        self.logger.info(
            "Discovering content: query=%r, location=%r", search_query, location
        )
        events = await self.search.search(search_query, location)
        self.logger.info("Discovered %d candidate events", len(events))
        return events

    async def _select(
        self, events: Sequence[CandidateEvent], search_query: str, style_prompt: str
    ) -> List[CandidateEvent]:
        prompt = CURATION_PROMPT.format(
            style=style_prompt or "Professional and engaging",
            query=search_query,
            events=json.dumps([event.to_dict() for event in events], ensure_ascii=False),
        )
        result = await self.llm.generate_structured(
            prompt,
            CurationResult,
            system=CURATION_SYSTEM_PROMPT,
            temperature=0.0,
        )
        by_link = {event.link: event for event in events}
        selected: List[CandidateEvent] = []
        for item in result.items[:MAX_CURATED_ITEMS]:
            original = by_link.get(item.link)
            selected.append(
                CandidateEvent(
                    title=item.title or (original.title if original else ""),
                    link=item.link,
                    snippet=item.snippet or (original.snippet if original else ""),
                    date=original.date if original else "",
                )
            )
        return selected

    async def curate(
        self,
        events: Sequence[CandidateEvent],
        search_query: str,
        style_prompt: str = "",
    ) -> CurationOutcome:
        """Pick at most five events and seed the content sequences."""
        if not events:
            self.logger.warning("No events to curate")
            return CurationOutcome()

        try:
            selected = await self._select(events, search_query, style_prompt)
        except Exception as exc:
            self.logger.warning(
                "Curation failed, falling back to first %d events: %s",
                FALLBACK_ITEM_COUNT,
                exc,
            )
            selected = []

        if not selected:
            selected = list(events[:FALLBACK_ITEM_COUNT])

        self.logger.info("Curated %d of %d events", len(selected), len(events))
        return CurationOutcome(
            selected=selected,
            relevant_links=[item.link for item in selected],
            page_contents=[item.snippet for item in selected],
            report=build_initial_report(search_query, selected),
        )


__all__ = [
    "DiscoveryAgent",
    "CurationOutcome",
    "build_initial_report",
    "EMPTY_CURATION_REPORT",
    "MAX_CURATED_ITEMS",
]

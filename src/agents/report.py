"""
Report Agent -- merges fetched page contents into one marketing report.

Blank page contents are ignored.  When nothing usable remains the prior
report is returned unchanged (or a default notice when there is none), so
a run with no fetched content degrades instead of failing.

LLM output is parsed with a three-step ladder that never raises:

1. the span inside ``<report>...</report>``;
2. otherwise the output with ``<thinking>`` spans removed;
3. otherwise the raw output.

The quality check judges a finished report. A report under the length
threshold is insufficient without asking the LLM. A failed LLM check counts
as sufficient so a flaky provider never loops the run back to discovery.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from src.models import QualityCheckResult
from src.tools.llm import LLMClient

logger = logging.getLogger("Report")

DEFAULT_REPORT = (
    "No detailed content available to generate report. Using initial summaries."
)

_REPORT_RE = re.compile(r"<report>([\s\S]*?)</report>")
_THINKING_RE = re.compile(r"<thinking>[\s\S]*?</thinking>")

REPORT_SYSTEM_PROMPT = """You are a highly regarded marketing employee.
You have been tasked with writing a marketing report on content submitted to you by a third party, which will be used to craft social media posts.

The report should:
- Open with a short summary of what the content is about.
- Cover the key details: what is new, who is involved, when and where it happens, and why the audience should care.
- Stay factual. Only include details found in the content.
- Be concise, skipping boilerplate such as navigation text, cookie notices and unrelated links.

Follow this process:
Step 1. Read every piece of content carefully.
Step 2. Write your notes and thoughts inside a "<thinking>" tag.
Step 3. Write the final report inside a "<report>" tag. This should be the last text you write."""


QUALITY_SYSTEM_PROMPT = """You review marketing reports before they are turned into social media posts.

Be lenient. A report is sufficient if it:
- Covers at least two or three relevant items, or one item in useful detail.
- Gives information related to the topic.
- Can be used to write an engaging post.

Mark it insufficient only when it is empty or off-topic. Explain your verdict in one or two sentences in "feedback"."""


def format_quality_prompt(report: str, search_query: str, location: str, platform: str) -> str:
    where = f" in \"{location}\"" if location else ""
    return (
        f"Review the following report:\n{report}\n\n"
        f"Is this content sufficient and relevant for a {platform or 'social media'} post "
        f"about \"{search_query}\"{where}?"
    )


def format_report_prompt(page_contents: Sequence[str]) -> str:
    """Wrap each content block in an indexed ``<Content>`` tag."""
    blocks = "\n\n".join(
        f"<Content index={{{index}}}>\n{content}\n</Content>"
        for index, content in enumerate(page_contents, start=1)
    )
    return (
        "The following text contains summaries, or entire pages from the content "
        "I submitted to you. Please review the content and generate a report on it.\n"
        f"{blocks}"
    )


def parse_report(generation: str) -> str:
    """Extract the report from an LLM generation. Never raises."""
    match = _REPORT_RE.search(generation)
    if match:
        return match.group(1).strip()
    logger.warning("Could not find <report> tags in generation, using raw output")
    without_thinking = _THINKING_RE.sub("", generation).strip()
    return without_thinking or generation


class ReportAgent:
    """LLM-backed report synthesis.

    Args:
        llm: LLM client used for synthesis.
    """

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm
        self.logger = logging.getLogger("Report")

    async def synthesize(self, page_contents: Sequence[str], prior_report: str = "") -> str:
        """Return a report over the non-blank *page_contents*.

        Args:
            page_contents: Fetched page texts, in discovery order.
            prior_report: Report already in state; returned unchanged when
                there is nothing to synthesize.
        """
        valid = [content for content in page_contents if content and content.strip()]
        if not valid:
            self.logger.warning(
                "No valid page contents to generate report. Using existing report or default."
            )
            return prior_report or DEFAULT_REPORT

        generation = await self.llm.generate_text(
            format_report_prompt(valid),
            system=REPORT_SYSTEM_PROMPT,
            temperature=0.0,
        )
        report = parse_report(generation)
        self.logger.info(
            "Report synthesized from %d page(s): %d chars", len(valid), len(report)
        )
        return report

    async def check_quality(
        self,
        report: str,
        search_query: str = "",
        location: str = "",
        platform: str = "",
        min_length: int = 50,
    ) -> QualityCheckResult:
        """Judge whether *report* can carry a post.

        Returns:
            The verdict. Too-short reports are rejected without an LLM call;
            an LLM failure yields a sufficient verdict.
        """
        stripped = (report or "").strip()
        if len(stripped) < min_length:
            self.logger.warning(
                "Report too short for quality check (%d < %d chars)", len(stripped), min_length
            )
            return QualityCheckResult(
                sufficient=False, feedback="Content report is too short or empty"
            )

        try:
            verdict = await self.llm.generate_structured(
                format_quality_prompt(stripped, search_query, location, platform),
                QualityCheckResult,
                system=QUALITY_SYSTEM_PROMPT,
                temperature=0.0,
            )
        except Exception as exc:
            self.logger.warning("Quality check failed, proceeding with report: %s", exc)
            return QualityCheckResult(
                sufficient=True, feedback="Quality check failed, proceeding anyway"
            )

        self.logger.info(
            "Quality check: %s (%s)",
            "sufficient" if verdict.sufficient else "insufficient",
            verdict.feedback[:200],
        )
        return verdict


__all__ = [
    "ReportAgent",
    "format_quality_prompt",
    "format_report_prompt",
    "parse_report",
    "DEFAULT_REPORT",
    "REPORT_SYSTEM_PROMPT",
    "QUALITY_SYSTEM_PROMPT",
]

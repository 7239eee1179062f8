"""
Post Type Agent -- decides between a long-form thread and a short post.

Pure decision stage: temperature 0, structured output.  Report groups are
classified independently and in order, one decision per group.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from src.models import PostType, PostTypeDecision, PostTypeResult, ReportGroup
from src.tools.llm import LLMClient

logger = logging.getLogger("PostType")

POST_TYPE_SYSTEM_PROMPT = """You're a highly skilled marketer, working to craft new social media content for your Twitter & LinkedIn pages.
You're given a report (or reports) on a topic. Based on the report(s), you should determine if this report should be used to generate a long form 'thread' like post, or a shorter, more concise and straightforward post.

To do this, you should consider the following points:
- If the report is on a new product, release, academic paper, or similar major announcement, it's likely that you should generate a long form 'thread' like post.
- If the report is on a new method of doing something, a smaller feature, an event or general news, it is likely that you should generate a shorter, more concise and straightforward post.
- Writing long form threads should be reserved for only the most detailed, interesting, and technical reports. All other reports should be categorized as a post.

Respond with JSON: {"reason": "<the reasoning behind your decision>", "type": "thread" | "post"}."""


def format_report_group_prompt(group: ReportGroup) -> str:
    """Render one report group for the classifier."""
    if len(group.reports) == 1:
        key_details = group.key_details[0] if group.key_details else ""
        return (
            "Here are the key details for the report:\n"
            f"<key-details>\n{key_details or 'no key details'}\n</key-details>\n\n"
            "And here is the full report:\n"
            f"<report>\n{group.reports[0]}\n</report>\n\n"
            "Please take your time, and identify the best type of post to generate "
            "for this report, and why!"
        )

    sections = []
    for index, report in enumerate(group.reports):
        details = group.key_details[index] if index < len(group.key_details) else ""
        sections.append(
            f'<report index="{index}">\n{report}\n</report>\n'
            f'<key-details index="{index}">\n{details or "no key details"}\n</key-details>'
        )
    body = "\n\n".join(sections)
    return (
        "Here are all of the key details & reports I've written for this post:\n"
        f"<key-details-and-reports>\n{body}\n</key-details-and-reports>\n\n"
        "Please take your time, and identify the best type of post to generate "
        "for these reports, and why!"
    )


class PostTypeAgent:
    """Thread-vs-post classifier.

    Args:
        llm: LLM client with structured output.
    """

    def __init__(self, llm: LLMClient) -> None:
        self.llm = llm
        self.logger = logging.getLogger("PostType")

    async def classify_group(self, group: ReportGroup) -> PostTypeDecision:
        result = await self.llm.generate_structured(
            format_report_group_prompt(group),
            PostTypeResult,
            system=POST_TYPE_SYSTEM_PROMPT,
            temperature=0.0,
        )
        return PostTypeDecision(reason=result.reason, post_type=PostType(result.type))

    async def classify(self, groups: Sequence[ReportGroup]) -> List[PostTypeDecision]:
        """Classify each group in order.

        Raises:
            StructuredOutputError: If a verdict cannot be parsed.
        """
        decisions: List[PostTypeDecision] = []
        for group in groups:
            decision = await self.classify_group(group)
            self.logger.info(
                "Post type: %s (%s)", decision.post_type.value, decision.reason[:120]
            )
            decisions.append(decision)
        return decisions


__all__ = ["PostTypeAgent", "format_report_group_prompt", "POST_TYPE_SYSTEM_PROMPT"]

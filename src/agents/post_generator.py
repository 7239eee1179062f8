"""
Post Generator Agent -- turns the report into final post copy.

Preconditions (fatal, never retried):
    - the report is non-empty (``"No report found"``);
    - at least one relevant link exists (``"No relevant links found"``).

Prompt template depends on the platform: image-first platforms get a
caption-style prompt (emoji, hashtags, call to action), text platforms a
marketing-post prompt.  A ``thread`` decision on a platform that supports
reply chaining asks for ``<main_post>`` + ``<reply_post>``; when either is
missing the output degrades to a single post.

The schedule date is picked once here: a random allowed time slot on the
next configured weekday (Saturday by default) strictly after now.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from src.exceptions import PreconditionError
from src.models import Platform, Post, PostType, SinglePost, ThreadPost
from src.tools.llm import LLMClient
from src.utils import DEFAULT_SIGNATURE, SATURDAY, ensure_signature, pick_schedule_date

logger = logging.getLogger("PostGenerator")

_POST_RE = re.compile(r"<post>([\s\S]*?)</post>")
_MAIN_POST_RE = re.compile(r"<main_post>([\s\S]*?)</main_post>")
_REPLY_POST_RE = re.compile(r"<reply_post>([\s\S]*?)</reply_post>")
_THINKING_RE = re.compile(r"<thinking>[\s\S]*?</thinking>")

REFLECTIONS_PROMPT = """You have also been provided with a handful of reflections based on previous requests the user has made. Be sure to follow these rules when writing this new post so the user does not need to repeat their requests:
<reflections>
{reflections}
</reflections>"""

GENERATE_POST_PROMPT = """You're a highly regarded marketing employee, working on crafting thoughtful and engaging content for the LinkedIn and Twitter pages.
You've been provided with a report on some content that you need to turn into a LinkedIn/Twitter post. The same post will be used for both platforms.
Your coworker has already taken the time to write a detailed marketing report on this content for you, so please take your time and read it carefully.

Structure the post as:
1. A short, punchy header line.
2. One to three sentences on what the content is and why it matters.
3. A call to action with the most relevant link.

Rules:
- Keep it short. The shorter and more engaging the post, the better.
- No more than one or two emojis, and no hashtags.
- Always include a link to the content.
- Do not make up facts that are not in the report.

{reflectionsPrompt}

Follow this process:
Step 1. Read over the marketing report VERY thoroughly.
Step 2. Write your notes and thoughts inside a "<thinking>" tag.
Step 3. Write the post inside a "<post>" tag. This should be the last text you write. Write only ONE post."""

GENERATE_THREAD_PROMPT = """You're a highly regarded marketing employee, working on a two-part Twitter thread about a major announcement.
You've been provided with a detailed marketing report on the content. Read it carefully.

The thread has exactly two parts:
- The main post: a hook plus the headline facts, with the most relevant link.
- The reply post: the supporting technical details and why they matter.

Rules:
- Each part must stand on its own and stay under 280 characters.
- No hashtags. At most one emoji per part.
- Do not make up facts that are not in the report.

{reflectionsPrompt}

Follow this process:
Step 1. Write your notes and thoughts inside a "<thinking>" tag.
Step 2. Write the main post inside a "<main_post>" tag.
Step 3. Write the reply inside a "<reply_post>" tag. This should be the last text you write."""

GENERATE_INSTAGRAM_POST_PROMPT = """You're a social media manager for a lifestyle brand.
You've been provided with a report on some content (e.g., events, news) and an image that will be posted.
Your goal is to write an engaging Instagram caption.

The caption should:
1. Be catchy and fun.
2. Use emojis appropriately.
3. Include relevant hashtags at the end (e.g., #CityEvents #CityLife).
4. Encourage engagement (e.g., "Tag a friend you'd go with!").
5. Be concise but informative.

{reflectionsPrompt}

CRITICAL: You MUST follow this exact process and format:
1. Read the report carefully.
2. Write your planning thoughts inside <thinking> tags.
3. Write ONLY the final caption inside <post> tags.

Remember: The caption MUST be wrapped in <post></post> tags. Do not include any text outside these tags except your thinking."""


@dataclass(frozen=True)
class GeneratedPost:
    """Final copy plus its computed publish time."""

    post: Post
    schedule_date: datetime


def format_generation_prompt(report: str, relevant_links: Sequence[str]) -> str:
    links = "\n".join(f"- {link}" for link in relevant_links)
    return (
        "Here is the report I wrote on the content I'd like promoted:\n"
        f"<report>\n{report}\n</report>\n\n"
        "And here are the links to the content I'd like promoted:\n"
        f"<links>\n{links}\n</links>"
    )


def reflections_prompt(reflections: Sequence[str]) -> str:
    if not reflections:
        return ""
    rules = "\n".join(f"- {rule}" for rule in reflections)
    return REFLECTIONS_PROMPT.replace("{reflections}", rules)


def parse_post(generation: str) -> str:
    """Extract the ``<post>`` span; degrade like the report parser."""
    match = _POST_RE.search(generation)
    if match:
        return match.group(1).strip()
    logger.warning("Could not find <post> tags in generation, using raw output")
    without_thinking = _THINKING_RE.sub("", generation).strip()
    return without_thinking or generation.strip()


def parse_thread(generation: str) -> Post:
    """Extract a thread, or a single post when either part is missing."""
    main = _MAIN_POST_RE.search(generation)
    reply = _REPLY_POST_RE.search(generation)
    if main and reply and main.group(1).strip() and reply.group(1).strip():
        return ThreadPost(main_post=main.group(1).strip(), reply_post=reply.group(1).strip())
    logger.warning("Thread tags missing from generation, degrading to a single post")
    return SinglePost(text=parse_post(generation))


class PostGeneratorAgent:
    """Platform-aware post writer.

    Args:
        llm: LLM client.
        allowed_times: Time-of-day slots (``"8:00 AM"``) for scheduling.
        schedule_weekday: Weekday to schedule on (Monday is ``0``).
        signature: Attribution line for text platforms.
        temperature: Sampling temperature for generation.
        rng: Random source for the slot pick.
    """

    def __init__(
        self,
        llm: LLMClient,
        allowed_times: Sequence[str],
        schedule_weekday: int = SATURDAY,
        signature: str = DEFAULT_SIGNATURE,
        temperature: float = 0.5,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.llm = llm
        self.allowed_times = list(allowed_times)
        self.schedule_weekday = schedule_weekday
        self.signature = signature
        self.temperature = temperature
        self.rng = rng
        self.logger = logging.getLogger("PostGenerator")

    def _system_prompt(self, platform: Platform, thread: bool, reflections: Sequence[str]) -> str:
        if platform.is_image_first:
            template = GENERATE_INSTAGRAM_POST_PROMPT
        elif thread:
            template = GENERATE_THREAD_PROMPT
        else:
            template = GENERATE_POST_PROMPT
        return template.replace("{reflectionsPrompt}", reflections_prompt(reflections))

    def _sign(self, post: Post, platform: Platform) -> Post:
        if platform.is_image_first:
            return post
        if isinstance(post, ThreadPost):
            return ThreadPost(
                main_post=ensure_signature(post.main_post, self.signature),
                reply_post=post.reply_post,
            )
        return SinglePost(text=ensure_signature(post.text, self.signature))

    async def generate(
        self,
        report: str,
        relevant_links: Sequence[str],
        platform: Platform,
        post_type: Optional[PostType] = None,
        reflections: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> GeneratedPost:
        """Write the post for *platform*.

        Raises:
            PreconditionError: If the report or the links are missing.
        """
        if not report or not report.strip():
            raise PreconditionError("No report found")
        if not relevant_links:
            raise PreconditionError("No relevant links found")

        thread = post_type is PostType.THREAD and platform.supports_threads
        generation = await self.llm.generate_text(
            format_generation_prompt(report, relevant_links),
            system=self._system_prompt(platform, thread, reflections),
            temperature=self.temperature,
        )
        post = parse_thread(generation) if thread else SinglePost(text=parse_post(generation))
        post = self._sign(post, platform)

        schedule_date = pick_schedule_date(
            self.allowed_times, weekday=self.schedule_weekday, now=now, rng=self.rng
        )
        self.logger.info(
            "Generated %s for %s (%d chars), scheduled %s",
            post.kind,
            platform.value,
            len(post.primary_text),
            schedule_date.isoformat(),
        )
        return GeneratedPost(post=post, schedule_date=schedule_date)


__all__ = [
    "PostGeneratorAgent",
    "GeneratedPost",
    "format_generation_prompt",
    "parse_post",
    "parse_thread",
    "reflections_prompt",
]

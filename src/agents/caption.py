"""
Caption preparation.

Image-first platforms publish a caption: the generated post when it has
real content, otherwise a fallback built from the query, the first report
lines and hashtags.  Text platforms publish the post text as-is.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from src.models import Platform, Post

logger = logging.getLogger("Caption")

MAX_CAPTION_LENGTH = 2000
MIN_POST_LENGTH = 10
FALLBACK_REPORT_LINES = 5

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def hashtag(value: str) -> Optional[str]:
    """``"New York"`` becomes ``"#NewYork"``; ``None`` when nothing is left."""
    cleaned = _NON_ALNUM_RE.sub("", value or "")
    return f"#{cleaned}" if cleaned else None


def truncate_caption(caption: str, limit: int = MAX_CAPTION_LENGTH) -> str:
    if len(caption) <= limit:
        return caption
    return caption[: limit - 3] + "..."


def build_fallback_caption(
    search_query: str, location: str, report: str, platform: Platform
) -> str:
    header = f"{search_query} in {location}" if location else search_query
    lines = [line.strip() for line in (report or "").splitlines() if line.strip()]
    tags: List[str] = [
        tag
        for tag in (hashtag(location), hashtag(search_query), hashtag(f"{platform.value}media"))
        if tag
    ]
    body = "\n".join(lines[:FALLBACK_REPORT_LINES])
    parts = [header.strip(), body, " ".join(tags)]
    return "\n\n".join(part for part in parts if part)


def prepare_caption(
    post: Optional[Post],
    platform: Platform,
    search_query: str = "",
    location: str = "",
    report: str = "",
) -> str:
    """Return the text to publish alongside (or instead of) the image."""
    text = post.primary_text.strip() if post is not None else ""
    if not platform.is_image_first:
        return text

    if len(text) > MIN_POST_LENGTH:
        caption = text
    else:
        logger.warning("Post too short for a caption, building fallback caption")
        caption = build_fallback_caption(search_query, location, report, platform)
    return truncate_caption(caption)


__all__ = [
    "prepare_caption",
    "build_fallback_caption",
    "truncate_caption",
    "hashtag",
    "MAX_CAPTION_LENGTH",
]

"""
Centralized shared data types for the content-publishing engine.

This module is the single source of truth for the data models used across
the pipeline. Every stage reads from and writes to ``PipelineState`` using
the types defined here.

Hierarchy of types
------------------
- **Enums**: ``Platform``, ``PostType``, ``PublishStatus``
- **Discovery models**: ``CandidateEvent``
- **Post variant**: ``SinglePost`` | ``ThreadPost`` (tagged by ``kind``)
- **Synthesis models**: ``ReportGroup``, ``PostTypeDecision``
- **LLM output schemas** (pydantic): ``CuratedItem``, ``CurationResult``,
  ``RelevancyResult``, ``PostTypeResult``
- **Orchestrator state**: ``PipelineState`` (``TypedDict``)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
    TypedDict,
    Union,
)

from pydantic import AliasChoices, BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class Platform(str, Enum):
    """Publishing destinations. Fixed at pipeline start."""

    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    SLACK = "slack"

    @property
    def is_image_first(self) -> bool:
        """Image-first platforms require an image and get caption prompts."""
        return self is Platform.INSTAGRAM

    @property
    def supports_threads(self) -> bool:
        return self is Platform.TWITTER


class PostType(str, Enum):
    """Long-form two-part thread, or a single short post."""

    THREAD = "thread"
    POST = "post"


class PublishStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================================
# DISCOVERY MODELS
# =============================================================================


@dataclass
class CandidateEvent:
    """A raw discovery hit, in search-provider order."""

    title: str
    link: str
    snippet: str = ""
    date: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "link": self.link,
            "snippet": self.snippet,
            "date": self.date,
        }


# =============================================================================
# POST VARIANT
# =============================================================================


@dataclass(frozen=True)
class SinglePost:
    """A single post. Used for every platform and post type by default."""

    text: str
    kind: Literal["single"] = "single"

    @property
    def primary_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class ThreadPost:
    """A two-part thread: main post plus one threaded reply.

    Only produced when the post type is ``thread`` and the platform supports
    reply chaining.
    """

    main_post: str
    reply_post: str
    kind: Literal["thread"] = "thread"

    @property
    def primary_text(self) -> str:
        return self.main_post


Post = Union[SinglePost, ThreadPost]


def post_to_dict(post: Optional[Post]) -> Optional[Dict[str, str]]:
    """Serialise a post variant for outcome reporting."""
    if post is None:
        return None
    if isinstance(post, ThreadPost):
        return {
            "kind": post.kind,
            "main_post": post.main_post,
            "reply_post": post.reply_post,
        }
    return {"kind": post.kind, "text": post.text}


# =============================================================================
# SYNTHESIS MODELS
# =============================================================================


@dataclass
class ReportGroup:
    """One or more reports classified together by the post-type stage."""

    reports: List[str]
    key_details: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PostTypeDecision:
    """Classification of one report group."""

    reason: str
    post_type: PostType


# =============================================================================
# LLM OUTPUT SCHEMAS
# =============================================================================


class CuratedItem(BaseModel):
    """One item picked by the curation stage."""

    title: str
    snippet: str = ""
    link: str


class CurationResult(BaseModel):
    """Curation output: 3 to 5 selected items."""

    items: List[CuratedItem] = Field(default_factory=list)


class RelevancyResult(BaseModel):
    """Relevancy verdict. ``is_relevant`` is accepted as an alias."""

    reasoning: str = ""
    relevant: bool = Field(
        validation_alias=AliasChoices("relevant", "is_relevant"),
    )


class PostTypeResult(BaseModel):
    """Post-type verdict for a report group."""

    reason: str
    type: Literal["thread", "post"]


class QualityCheckResult(BaseModel):
    """Whether a report is good enough to write a post from."""

    sufficient: bool
    feedback: str = ""


# =============================================================================
# ORCHESTRATOR STATE
# =============================================================================


class PipelineState(TypedDict, total=False):
    """
    Pipeline state threaded through every stage.

    ``total=False`` marks every key as optional so that the state can be
    incrementally populated as it flows through the graph. Stages return
    only the keys they changed and never delete keys set earlier.
    """

    # -----------------------------------------------------------------
    # RUN TRACKING
    # -----------------------------------------------------------------
    run_id: str
    run_timestamp: datetime
    stage: str

    # -----------------------------------------------------------------
    # INPUTS (set once at start, read-only afterwards)
    # -----------------------------------------------------------------
    search_query: str
    location: str
    style_prompt: str
    platform: Platform
    credentials: Optional[Dict[str, Any]]  # never logged
    reflections: List[str]
    requires_approval: bool  # stop before publishing

    # -----------------------------------------------------------------
    # DISCOVERY / CURATION
    # -----------------------------------------------------------------
    events: List[CandidateEvent]
    fetch_attempts: int

    # -----------------------------------------------------------------
    # RELEVANCY (parallel sequences: page_contents[i] <-> relevant_links[i])
    # -----------------------------------------------------------------
    relevant_links: List[str]
    page_contents: List[str]
    image_options: List[str]

    # -----------------------------------------------------------------
    # SYNTHESIS
    # -----------------------------------------------------------------
    report: str
    content_sufficient: Optional[bool]
    quality_feedback: Optional[str]
    post_type: Optional[PostType]
    post_type_reason: Optional[str]

    # -----------------------------------------------------------------
    # GENERATION
    # -----------------------------------------------------------------
    post: Optional[Post]
    schedule_date: Optional[datetime]
    image_url: Optional[str]
    mime_type: Optional[str]
    caption: Optional[str]

    # -----------------------------------------------------------------
    # PUBLISH OUTCOME
    # -----------------------------------------------------------------
    publish_status: PublishStatus
    publish_error: Optional[str]
    published_url: Optional[str]

    # -----------------------------------------------------------------
    # ERROR HANDLING
    # -----------------------------------------------------------------
    critical_error: Optional[str]
    error_stage: Optional[str]
    error_category: Optional[str]


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Enums
    "Platform",
    "PostType",
    "PublishStatus",
    # Discovery
    "CandidateEvent",
    # Post variant
    "SinglePost",
    "ThreadPost",
    "Post",
    "post_to_dict",
    # Synthesis
    "ReportGroup",
    "PostTypeDecision",
    # LLM schemas
    "CuratedItem",
    "CurationResult",
    "RelevancyResult",
    "PostTypeResult",
    "QualityCheckResult",
    # State
    "PipelineState",
]

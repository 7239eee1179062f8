"""
LangGraph Orchestrator -- the content pipeline state machine.

Flow
----
discover -> curate -> verify_links -> synthesize_report -> check_quality
    -> (discover | determine_post_type)
    -> generate_post -> (generate_visuals | prepare_caption)
    -> prepare_caption -> (publish | await_approval) -> END

Any node failure routes to ``handle_error`` -> END.

Key design decisions
--------------------
- **Partial updates**: every node returns only the keys it changed.
- **Error routing**: ``@with_error_handling`` converts exceptions to
  ``{"critical_error": ..., "error_stage": ..., "error_category": ...}``
  and every edge checks for ``critical_error``.
- **Timeouts**: ``@with_timeout`` wraps nodes in ``asyncio.wait_for`` using
  ``Settings.node_timeouts`` (overridable via ``NODE_TIMEOUT_<NAME>``).
- **Explicit dependencies**: the LLM provider and every client are built
  once per run by :func:`build_dependencies` and reach the nodes through
  ``config["configurable"]["deps"]``.
- **Quality gate**: a report shorter than ``min_report_length`` or rejected by
  the LLM quality check sends the run back to discovery while fetch attempts
  remain.
- **Approval**: with ``requires_approval`` set, the run stops after the
  caption is prepared and leaves publishing to a reviewer.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from src.agents.caption import prepare_caption
from src.agents.discovery import DiscoveryAgent
from src.agents.post_generator import PostGeneratorAgent
from src.agents.post_type import PostTypeAgent
from src.agents.publisher import PublisherAgent
from src.agents.relevancy import RelevancyAgent
from src.agents.report import ReportAgent
from src.agents.visuals import VisualsAgent
from src.config import Settings, get_settings
from src.exceptions import (
    ConfigurationError,
    NodeTimeoutError,
    PipelineRunError,
    error_category,
)
from src.models import (
    PipelineState,
    Platform,
    PublishStatus,
    ReportGroup,
    post_to_dict,
)
from src.tools.image_generation import ImageGenerationClient
from src.tools.instagram_client import InstagramClient
from src.tools.llm import LLMClient, create_llm_client
from src.tools.scraper import FirecrawlClient
from src.tools.search import SerperClient
from src.tools.telegram_notifier import TelegramNotifier
from src.utils import generate_id, utc_now

logger = logging.getLogger("Orchestrator")

DEFAULT_NODE_TIMEOUT = 60


# =============================================================================
# DEPENDENCIES
# =============================================================================


@dataclass
class PipelineDependencies:
    """Everything a run needs, resolved once at construction time."""

    settings: Settings
    discovery: DiscoveryAgent
    relevancy: RelevancyAgent
    report: ReportAgent
    post_type: PostTypeAgent
    post_generator: PostGeneratorAgent
    visuals: VisualsAgent
    publisher: PublisherAgent


def build_dependencies(
    settings: Optional[Settings] = None,
    provider: Optional[str] = None,
    llm: Optional[LLMClient] = None,
    instagram: Optional[InstagramClient] = None,
    notifier: Optional[TelegramNotifier] = None,
) -> PipelineDependencies:
    """Build the per-run dependency set.

    Args:
        settings: Settings for the run. Defaults to the singleton.
        provider: LLM provider override (``"openai"`` / ``"anthropic"``).
        llm: Pre-built LLM client; takes precedence over *provider*.
        instagram: Instagram adapter to reuse (keeps its session cache).
        notifier: Failure notification sink.
    """
    settings = settings or get_settings()
    llm = llm or create_llm_client(provider, settings)

    return PipelineDependencies(
        settings=settings,
        discovery=DiscoveryAgent(SerperClient(), llm),
        relevancy=RelevancyAgent(
            llm,
            FirecrawlClient(),
            skip_check=settings.skip_relevancy_check,
        ),
        report=ReportAgent(llm),
        post_type=PostTypeAgent(llm),
        post_generator=PostGeneratorAgent(
            llm,
            allowed_times=settings.allowed_times,
            schedule_weekday=settings.schedule_weekday,
            signature=settings.signature,
        ),
        visuals=VisualsAgent(ImageGenerationClient()),
        publisher=PublisherAgent(settings, instagram=instagram, notifier=notifier),
    )


def get_dependencies(config: Optional[RunnableConfig]) -> PipelineDependencies:
    """Pull the run's dependencies out of the LangGraph config.

    Raises:
        ConfigurationError: If the config carries no dependencies.
    """
    deps = ((config or {}).get("configurable") or {}).get("deps")
    if deps is None:
        raise ConfigurationError(
            "Pipeline dependencies missing from config['configurable']['deps']"
        )
    return deps


def _config_from_call(args: Sequence[Any], kwargs: Dict[str, Any]) -> Optional[RunnableConfig]:
    if "config" in kwargs:
        return kwargs["config"]
    return args[1] if len(args) > 1 else None


# =============================================================================
# DECORATORS
# =============================================================================


def with_error_handling(node_name: str = None):
    """Convert unhandled node exceptions into ``critical_error`` state updates.

    The conditional edges check ``state.get("critical_error")`` and route to
    ``handle_error`` when present.  This decorator ensures that no exception
    silently kills the graph.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            name = node_name or func.__name__
            node_logger = logging.getLogger(f"Node.{name}")
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                error_msg = f"{type(exc).__name__}: {exc}"
                node_logger.error(
                    "[%s] Exception caught, routing to error handler: %s",
                    name,
                    error_msg,
                )
                return {
                    "critical_error": error_msg,
                    "error_stage": name,
                    "error_category": error_category(exc),
                }

        return wrapper

    return decorator


def with_timeout(timeout_seconds: int = None, node_name: str = None):
    """Add ``asyncio.wait_for`` timeout to an async node function.

    Resolution order for the actual timeout value:
    1. Explicit *timeout_seconds* parameter.
    2. ``settings.node_timeouts[node_name]`` of the run (or the singleton).
    3. 60 seconds as a last resort.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            name = node_name or func.__name__.replace("_node", "")
            actual = timeout_seconds
            if actual is None:
                config = _config_from_call(args, kwargs)
                deps = ((config or {}).get("configurable") or {}).get("deps")
                settings = deps.settings if deps is not None else get_settings()
                actual = settings.node_timeouts.get(name, DEFAULT_NODE_TIMEOUT)
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=actual)
            except asyncio.TimeoutError:
                raise NodeTimeoutError(name, actual)

        return wrapper

    return decorator


# =============================================================================
# NODE FUNCTIONS
#
# Conventions:
# 1. Every node takes (state, config) and returns a partial state dict.
# 2. Dependencies come from config["configurable"]["deps"].
# 3. Use @with_error_handling and @with_timeout decorators.
# =============================================================================


@with_error_handling(node_name="discover")
@with_timeout(node_name="discover")
async def discover_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Query the search provider for candidate events."""
    deps = get_dependencies(config)
    events = await deps.discovery.discover(
        state.get("search_query", ""), state.get("location", "")
    )
    return {
        "stage": "discovered",
        "events": events,
        "fetch_attempts": state.get("fetch_attempts", 0) + 1,
    }


@with_error_handling(node_name="curate")
@with_timeout(node_name="curate")
async def curate_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Pick the most relevant events and seed links, contents and report."""
    deps = get_dependencies(config)
    outcome = await deps.discovery.curate(
        state.get("events", []),
        state.get("search_query", ""),
        state.get("style_prompt", ""),
    )
    return {
        "stage": "curated",
        "relevant_links": outcome.relevant_links,
        "page_contents": outcome.page_contents,
        "report": outcome.report,
    }


@with_error_handling(node_name="verify_links")
@with_timeout(node_name="verify_links")
async def verify_links_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Fetch curated links and keep the relevant ones, in order."""
    deps = get_dependencies(config)
    outcome = await deps.relevancy.verify_links(state.get("relevant_links", []))

    image_options: List[str] = list(state.get("image_options", []))
    for image in outcome.image_options:
        if image not in image_options:
            image_options.append(image)

    return {
        "stage": "verified",
        "relevant_links": outcome.relevant_links,
        "page_contents": outcome.page_contents,
        "image_options": image_options,
    }


@with_error_handling(node_name="synthesize_report")
@with_timeout(node_name="synthesize_report")
async def synthesize_report_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Merge page contents into the marketing report."""
    deps = get_dependencies(config)
    report = await deps.report.synthesize(
        state.get("page_contents", []), prior_report=state.get("report", "")
    )
    return {"stage": "report_synthesized", "report": report}


@with_error_handling(node_name="check_quality")
@with_timeout(node_name="check_quality")
async def check_quality_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Ask the LLM whether the report can carry a post."""
    deps = get_dependencies(config)
    platform = state.get("platform")
    verdict = await deps.report.check_quality(
        state.get("report", ""),
        search_query=state.get("search_query", ""),
        location=state.get("location", ""),
        platform=Platform(platform).value if platform else "",
        min_length=deps.settings.min_report_length,
    )
    return {
        "stage": "quality_checked",
        "content_sufficient": verdict.sufficient,
        "quality_feedback": verdict.feedback,
    }


@with_error_handling(node_name="determine_post_type")
@with_timeout(node_name="determine_post_type")
async def determine_post_type_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Classify the report as a thread or a post."""
    deps = get_dependencies(config)
    decisions = await deps.post_type.classify([ReportGroup(reports=[state.get("report", "")])])
    decision = decisions[0]
    return {
        "stage": "post_type_determined",
        "post_type": decision.post_type,
        "post_type_reason": decision.reason,
    }


@with_error_handling(node_name="generate_post")
@with_timeout(node_name="generate_post")
async def generate_post_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Write the post and fix its schedule date."""
    deps = get_dependencies(config)
    generated = await deps.post_generator.generate(
        state.get("report", ""),
        state.get("relevant_links", []),
        Platform(state["platform"]),
        post_type=state.get("post_type"),
        reflections=state.get("reflections", []),
    )
    return {
        "stage": "post_generated",
        "post": generated.post,
        "schedule_date": generated.schedule_date,
    }


@with_error_handling(node_name="generate_visuals")
@with_timeout(node_name="generate_visuals")
async def generate_visuals_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Generate or select the post image. Never fails the run."""
    deps = get_dependencies(config)
    image_url, mime_type = await deps.visuals.generate(
        state.get("search_query", ""),
        state.get("location", ""),
        state.get("style_prompt", ""),
        state.get("image_options", []),
    )
    return {"stage": "visuals_generated", "image_url": image_url, "mime_type": mime_type}


@with_error_handling(node_name="prepare_caption")
@with_timeout(node_name="prepare_caption")
async def prepare_caption_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Derive the published caption from the post."""
    caption = prepare_caption(
        state.get("post"),
        Platform(state["platform"]),
        search_query=state.get("search_query", ""),
        location=state.get("location", ""),
        report=state.get("report", ""),
    )
    return {"stage": "caption_prepared", "caption": caption}


@with_error_handling(node_name="publish")
@with_timeout(node_name="publish")
async def publish_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Upload through the platform adapter."""
    deps = get_dependencies(config)
    outcome = await deps.publisher.upload_post(
        Platform(state["platform"]),
        state.get("post"),
        caption=state.get("caption") or "",
        image_url=state.get("image_url"),
        mime_type=state.get("mime_type"),
        credentials=state.get("credentials"),
        thread_id=state.get("run_id", "unknown"),
    )
    return {
        "stage": "published",
        "publish_status": outcome.status,
        "published_url": outcome.url,
    }


async def await_approval_node(state: PipelineState) -> Dict[str, Any]:
    """Park a finished post for review instead of publishing it."""
    logger.info(
        "Run %s requires approval, skipping auto-publish", state.get("run_id", "unknown")
    )
    return {"stage": "awaiting_approval", "publish_status": PublishStatus.PENDING}


async def error_handler_node(state: PipelineState) -> Dict[str, Any]:
    """Central error handler -- logs and marks the run failed."""

    err_logger = logging.getLogger("PipelineErrorHandler")

    critical_error = state.get("critical_error") or "Unknown error"
    error_stage = state.get("error_stage") or state.get("stage", "unknown")

    err_logger.error(
        "Pipeline failed at stage '%s' (category=%s, run_id=%s): %s",
        error_stage,
        state.get("error_category"),
        state.get("run_id"),
        critical_error,
    )

    return {
        "stage": "error",
        "publish_status": PublishStatus.FAILED,
        "publish_error": str(critical_error),
    }


# =============================================================================
# ROUTING
# =============================================================================


def route_after_quality_check(state: PipelineState, settings: Settings) -> str:
    """Quality gate: refetch while the report is insufficient and budget remains.

    Sufficient means long enough and not rejected by the LLM check.
    """
    report = (state.get("report") or "").strip()
    attempts = state.get("fetch_attempts", 0)
    sufficient = (
        len(report) >= settings.min_report_length
        and state.get("content_sufficient") is not False
    )
    if not sufficient and attempts < settings.max_fetch_attempts:
        logger.warning(
            "Report insufficient (%d chars, feedback=%r), refetching (attempt %d/%d)",
            len(report),
            state.get("quality_feedback"),
            attempts + 1,
            settings.max_fetch_attempts,
        )
        return "discover"
    return "determine_post_type"


def route_after_generate(state: PipelineState, settings: Settings) -> str:
    """Skip image generation in text-only mode."""
    if settings.text_only_mode:
        return "prepare_caption"
    return "generate_visuals"


def route_after_caption(state: PipelineState, settings: Settings) -> str:
    """Hold the post for review when the run requires approval."""
    if state.get("requires_approval"):
        return "await_approval"
    return "publish"


# =============================================================================
# WORKFLOW GRAPH CONSTRUCTION
# =============================================================================


def create_content_pipeline(settings: Optional[Settings] = None) -> Any:
    """Build and compile the LangGraph state machine.

    Returns a compiled ``StateGraph`` ready for
    ``await pipeline.ainvoke(state, config={"configurable": {"deps": deps}})``.
    """
    settings = settings or get_settings()

    workflow = StateGraph(PipelineState)

    # ---- Add nodes --------------------------------------------------------
    workflow.add_node("discover", discover_node)
    workflow.add_node("curate", curate_node)
    workflow.add_node("verify_links", verify_links_node)
    workflow.add_node("synthesize_report", synthesize_report_node)
    workflow.add_node("check_quality", check_quality_node)
    workflow.add_node("determine_post_type", determine_post_type_node)
    workflow.add_node("generate_post", generate_post_node)
    workflow.add_node("generate_visuals", generate_visuals_node)
    workflow.add_node("prepare_caption", prepare_caption_node)
    workflow.add_node("publish", publish_node)
    workflow.add_node("await_approval", await_approval_node)
    workflow.add_node("handle_error", error_handler_node)

    # ---- Entry point ------------------------------------------------------
    workflow.set_entry_point("discover")

    # ---- Error-aware routing helper ---------------------------------------

    def make_error_aware_router(next_node: str):
        """Return ``handle_error`` if ``critical_error`` is set, else *next_node*."""

        def router(state: PipelineState) -> str:
            if state.get("critical_error"):
                return "handle_error"
            return next_node

        return router

    def with_error_check(route):
        def router(state: PipelineState) -> str:
            if state.get("critical_error"):
                return "handle_error"
            return route(state, settings)

        return router

    # ---- Main flow edges (each with error checking) -----------------------

    for source, target in (
        ("discover", "curate"),
        ("curate", "verify_links"),
        ("verify_links", "synthesize_report"),
        ("synthesize_report", "check_quality"),
        ("determine_post_type", "generate_post"),
        ("generate_visuals", "prepare_caption"),
    ):
        workflow.add_conditional_edges(
            source,
            make_error_aware_router(target),
            {target: target, "handle_error": "handle_error"},
        )

    # check_quality -> (discover | determine_post_type | handle_error)
    workflow.add_conditional_edges(
        "check_quality",
        with_error_check(route_after_quality_check),
        {
            "discover": "discover",
            "determine_post_type": "determine_post_type",
            "handle_error": "handle_error",
        },
    )

    # generate_post -> (generate_visuals | prepare_caption | handle_error)
    workflow.add_conditional_edges(
        "generate_post",
        with_error_check(route_after_generate),
        {
            "generate_visuals": "generate_visuals",
            "prepare_caption": "prepare_caption",
            "handle_error": "handle_error",
        },
    )

    # prepare_caption -> (publish | await_approval | handle_error)
    workflow.add_conditional_edges(
        "prepare_caption",
        with_error_check(route_after_caption),
        {
            "publish": "publish",
            "await_approval": "await_approval",
            "handle_error": "handle_error",
        },
    )

    # Terminal edges
    workflow.add_conditional_edges(
        "publish",
        make_error_aware_router(END),
        {END: END, "handle_error": "handle_error"},
    )

    # Approval hold and error handler always terminate
    workflow.add_edge("await_approval", END)
    workflow.add_edge("handle_error", END)

    return workflow.compile()


# =============================================================================
# PIPELINE STATE INITIALISATION
# =============================================================================


def initialize_pipeline_state(
    run_id: str,
    search_query: str,
    platform: Platform,
    location: str = "",
    style_prompt: str = "",
    credentials: Optional[Dict[str, Any]] = None,
    reflections: Optional[Sequence[str]] = None,
    requires_approval: bool = False,
) -> PipelineState:
    """Create a fully-defaulted ``PipelineState`` for a new pipeline run."""

    return PipelineState(
        # Run tracking
        run_id=run_id,
        run_timestamp=utc_now(),
        stage="initialized",
        # Inputs
        search_query=search_query,
        location=location,
        style_prompt=style_prompt,
        platform=Platform(platform),
        credentials=credentials,
        reflections=list(reflections or []),
        requires_approval=requires_approval,
        # Discovery
        events=[],
        fetch_attempts=0,
        # Relevancy
        relevant_links=[],
        page_contents=[],
        image_options=[],
        # Synthesis
        report="",
        content_sufficient=None,
        quality_feedback=None,
        post_type=None,
        post_type_reason=None,
        # Generation
        post=None,
        schedule_date=None,
        image_url=None,
        mime_type=None,
        caption=None,
        # Publish outcome
        publish_status=PublishStatus.PENDING,
        publish_error=None,
        published_url=None,
        # Error handling
        critical_error=None,
        error_stage=None,
        error_category=None,
    )


# =============================================================================
# MAIN EXECUTION
# =============================================================================


async def run_pipeline(
    search_query: str,
    platform: Platform = Platform.INSTAGRAM,
    location: str = "",
    style_prompt: str = "",
    credentials: Optional[Dict[str, Any]] = None,
    reflections: Optional[Sequence[str]] = None,
    provider: Optional[str] = None,
    settings: Optional[Settings] = None,
    deps: Optional[PipelineDependencies] = None,
    run_id: Optional[str] = None,
    raise_on_failure: bool = False,
    requires_approval: Optional[bool] = None,
) -> Dict[str, Any]:
    """Execute one content pipeline run end to end.

    Args:
        search_query: Discovery query.
        platform: Publishing destination.
        location: Optional location qualifier.
        style_prompt: Tone and style guidance.
        credentials: Per-platform auth payload. Never logged.
        reflections: Learned rules appended to the generation prompt.
        provider: LLM provider for this run.
        settings: Settings for this run. Defaults to the singleton.
        deps: Pre-built dependencies (tests, long-lived adapters).
        run_id: Run identifier. Generated when omitted.
        raise_on_failure: Raise :class:`PipelineRunError` for a failed run
            instead of returning the outcome. Also covers failures while
            building dependencies, which otherwise come back as a failed
            outcome with stage ``build_dependencies``.
        requires_approval: Stop before publishing. Defaults to
            ``settings.requires_approval``.

    Returns:
        A dict with ``run_id``, ``status``, ``publish_status``, ``error``,
        ``error_category``, ``published_url``, ``post``, ``caption``,
        ``schedule_date`` and ``statistics``.
    """

    run_logger = logging.getLogger("Pipeline")

    settings = settings or (deps.settings if deps is not None else get_settings())
    run_id = run_id or generate_id()
    platform = Platform(platform)

    if deps is None:
        try:
            deps = build_dependencies(settings, provider=provider)
        except Exception as exc:
            run_logger.error("[PIPELINE] Run %s could not start: %s", run_id, exc)
            startup_state: Dict[str, Any] = {
                "stage": "build_dependencies",
                "publish_status": PublishStatus.FAILED,
                "critical_error": str(exc),
                "error_stage": "build_dependencies",
                "error_category": error_category(exc),
            }
            return _finish_run(run_logger, run_id, startup_state, raise_on_failure)

    initial_state = initialize_pipeline_state(
        run_id,
        search_query,
        platform,
        location=location,
        style_prompt=style_prompt,
        credentials=credentials,
        reflections=reflections,
        requires_approval=(
            settings.requires_approval if requires_approval is None else requires_approval
        ),
    )

    run_logger.info(
        "[PIPELINE] Starting run %s (platform=%s, query=%r, text_only=%s)",
        run_id,
        platform.value,
        search_query,
        settings.text_only_mode,
    )

    # ---- Compile and run -------------------------------------------------
    pipeline = create_content_pipeline(settings)
    final_state = await pipeline.ainvoke(
        initial_state,
        config={"configurable": {"deps": deps, "thread_id": run_id}},
    )
    return _finish_run(run_logger, run_id, final_state, raise_on_failure)


def _finish_run(
    run_logger: logging.Logger,
    run_id: str,
    final_state: Dict[str, Any],
    raise_on_failure: bool,
) -> Dict[str, Any]:
    """Summarize *final_state* as the run outcome, raising when asked to."""
    critical_error = final_state.get("critical_error")
    publish_status = final_state.get("publish_status") or PublishStatus.PENDING
    schedule_date = final_state.get("schedule_date")

    outcome = {
        "run_id": run_id,
        "status": "success" if not critical_error else "error",
        "publish_status": PublishStatus(publish_status).value,
        "error": critical_error,
        "error_category": final_state.get("error_category"),
        "published_url": final_state.get("published_url"),
        "post": post_to_dict(final_state.get("post")),
        "caption": final_state.get("caption"),
        "schedule_date": schedule_date.isoformat() if schedule_date else None,
        "statistics": {
            "events_found": len(final_state.get("events", [])),
            "relevant_links": len(final_state.get("relevant_links", [])),
            "fetch_attempts": final_state.get("fetch_attempts", 0),
            "post_type": (
                final_state["post_type"].value if final_state.get("post_type") else None
            ),
            "image_options": len(final_state.get("image_options", [])),
            "last_stage": final_state.get("stage"),
        },
    }

    run_logger.info(
        "[PIPELINE] Run %s finished: status=%s, publish_status=%s",
        run_id,
        outcome["status"],
        outcome["publish_status"],
    )

    if critical_error and raise_on_failure:
        raise PipelineRunError(
            critical_error,
            stage=final_state.get("error_stage") or "unknown",
            category=final_state.get("error_category") or "unknown",
        )
    return outcome


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Dependencies
    "PipelineDependencies",
    "build_dependencies",
    "get_dependencies",
    # Decorators
    "with_error_handling",
    "with_timeout",
    # Nodes
    "discover_node",
    "curate_node",
    "verify_links_node",
    "synthesize_report_node",
    "check_quality_node",
    "determine_post_type_node",
    "generate_post_node",
    "generate_visuals_node",
    "prepare_caption_node",
    "publish_node",
    "await_approval_node",
    "error_handler_node",
    # Routing
    "route_after_quality_check",
    "route_after_generate",
    "route_after_caption",
    # Workflow
    "create_content_pipeline",
    "initialize_pipeline_state",
    "run_pipeline",
]

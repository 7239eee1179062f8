"""
Entry point: run one content pipeline from the command line.

Usage::

    # Discover, write and publish an Instagram post:
    python run.py "jazz concerts" --location "New York" --style "playful"

    # Text-only LinkedIn post with the Anthropic provider:
    TEXT_ONLY_MODE=true python run.py "AI launches" --platform linkedin --provider anthropic

    # Reflections (one rule per flag) are appended to the generation prompt:
    python run.py "product launches" --platform twitter --reflection "Never use hashtags"
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main() -> int:
    from src.config import LLMProvider, get_settings, validate_env
    from src.models import Platform

    parser = argparse.ArgumentParser(
        description="Discover content, write a post and publish it"
    )
    parser.add_argument("query", help="What to search for (e.g. 'jazz concerts')")
    parser.add_argument(
        "--location",
        default="",
        help="Optional location qualifier for the search",
    )
    parser.add_argument(
        "--platform",
        choices=[p.value for p in Platform],
        default=Platform.INSTAGRAM.value,
        help="Publishing destination (default: instagram)",
    )
    parser.add_argument(
        "--style",
        default="",
        help="Tone and style guidance for curation and images",
    )
    parser.add_argument(
        "--provider",
        choices=[p.value for p in LLMProvider],
        default=None,
        help="LLM provider (default: llm_provider from settings)",
    )
    parser.add_argument(
        "--reflection",
        action="append",
        default=[],
        help="Learned rule for the post writer (repeatable)",
    )
    parser.add_argument(
        "--requires-approval",
        action="store_true",
        default=None,
        help="Stop after the caption and leave publishing to a reviewer",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    validate_env(strict=False, settings=settings)

    from src.agents.orchestrator import run_pipeline

    result = await run_pipeline(
        args.query,
        platform=Platform(args.platform),
        location=args.location,
        style_prompt=args.style,
        reflections=args.reflection,
        provider=args.provider,
        settings=settings,
        requires_approval=args.requires_approval,
    )

    print(json.dumps(result, indent=2, ensure_ascii=False))

    if result["status"] != "success":
        logger.error(
            "Run %s failed (%s): %s",
            result["run_id"],
            result.get("error_category"),
            result.get("error"),
        )
        return 1
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)

"""
Visuals Agent -- picks the image that goes with the post.

Generation never aborts the stage: a failed or unconfigured generator falls
back to the first image harvested while scraping, then to a placeholder.
"""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

from src.tools.image_generation import ImageGenerationClient, generate_or_fallback

logger = logging.getLogger("Visuals")


def build_image_prompt(style_prompt: str, search_query: str, location: str = "") -> str:
    context = f"{search_query} in {location}" if location else search_query
    return (
        f"A social media post image. Style: {style_prompt}. "
        f"Context: {context}. High quality, aesthetic."
    )


class VisualsAgent:
    """Image selection for image-bearing posts.

    Args:
        image_client: Image generation client.
    """

    def __init__(self, image_client: ImageGenerationClient) -> None:
        self.image_client = image_client
        self.logger = logging.getLogger("Visuals")

    async def generate(
        self,
        search_query: str,
        location: str = "",
        style_prompt: str = "",
        image_options: Sequence[str] = (),
    ) -> Tuple[str, str]:
        """Return ``(image_url, mime_type)``. Never raises."""
        prompt = build_image_prompt(style_prompt, search_query, location)
        image_url, mime_type = await generate_or_fallback(
            self.image_client, prompt, image_options
        )
        self.logger.info("Image selected: %s (%s)", image_url, mime_type)
        return image_url, mime_type


__all__ = ["VisualsAgent", "build_image_prompt"]

"""
External tool wrappers for the content-publishing engine.

This package provides async clients for all external services used by the
agent pipeline:

- ClaudeClient / OpenAIClient: interchangeable LLM providers
- SerperClient: web search for candidate events
- FirecrawlClient: page scraping with a plain HTTP fallback
- ImageGenerationClient: hosted image generation
- InstagramClient: instagrapi photo uploads with session reuse
- LinkedInClient: LinkedIn REST API (text and image shares)
- TwitterClient: X/Twitter API v2 tweets and threads
- TelegramNotifier: upload-failure notifications
"""

from src.tools.claude_client import ClaudeClient
from src.tools.openai_client import OpenAIClient
from src.tools.search import SerperClient
from src.tools.scraper import FirecrawlClient
from src.tools.image_generation import ImageGenerationClient
from src.tools.instagram_client import InstagramClient
from src.tools.linkedin_client import LinkedInClient
from src.tools.twitter import TwitterClient
from src.tools.telegram_notifier import TelegramNotifier

__all__ = [
    "ClaudeClient",
    "OpenAIClient",
    "SerperClient",
    "FirecrawlClient",
    "ImageGenerationClient",
    "InstagramClient",
    "LinkedInClient",
    "TwitterClient",
    "TelegramNotifier",
]

"""Shared fixtures for the content-publishing engine test suite."""

import io
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image
from pydantic import BaseModel

from src.config import Settings, reset_settings
from src.tools.llm import LLMClient


# ---------------------------------------------------------------------------
# Ensure we don't hit real APIs during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear all API keys and behaviour flags so tests never hit real services."""
    keys = [
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "LLM_PROVIDER",
        "SERPER_API_KEY",
        "FIRECRAWL_API_KEY",
        "FIRE_CRAWL_API_KEY",
        "IMAGE_API_KEY",
        "IMAGE_API_BASE_URL",
        "INSTAGRAM_USERNAME",
        "INSTAGRAM_PASSWORD",
        "TWITTER_API_KEY",
        "TWITTER_API_KEY_SECRET",
        "TWITTER_ACCESS_TOKEN",
        "TWITTER_ACCESS_TOKEN_SECRET",
        "TWITTER_USER_ID",
        "TWITTER_USER_TOKEN",
        "TWITTER_USER_TOKEN_SECRET",
        "LINKEDIN_ACCESS_TOKEN",
        "LINKEDIN_PERSON_URN",
        "LINKEDIN_ORGANIZATION_ID",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "TEXT_ONLY_MODE",
        "SKIP_RELEVANCY_CHECK",
        "POST_TO_LINKEDIN_ORGANIZATION",
        "TWITTER_API_ONLY",
        "USE_ARCADE_AUTH",
        "REQUIRES_APPROVAL",
        "POST_SIGNATURE",
        "MIN_REPORT_LENGTH",
        "MAX_FETCH_ATTEMPTS",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests (a Sunday)."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@pytest.fixture
def settings():
    """Default settings, independent of config/settings.yaml."""
    return Settings()


# ---------------------------------------------------------------------------
# Fake LLM
# ---------------------------------------------------------------------------
class FakeLLM(LLMClient):
    """Scripted LLM client.

    ``text_responses`` are returned in order by ``generate_text`` (the last
    one repeats).  ``structured`` maps schema classes to either an instance
    or an exception to raise, or to a list of those served in order (the
    last one repeats).
    """

    def __init__(
        self,
        text_responses: Optional[List[str]] = None,
        structured: Optional[Dict[Type[BaseModel], Any]] = None,
    ) -> None:
        self.text_responses = list(text_responses or ["<post>Hello world</post>"])
        self.structured = dict(structured or {})
        self.text_calls: List[Dict[str, Any]] = []
        self.structured_calls: List[Dict[str, Any]] = []

    async def generate_text(self, prompt, system=None, temperature=0.7, max_tokens=4096):
        self.text_calls.append(
            {"prompt": prompt, "system": system, "temperature": temperature}
        )
        if len(self.text_responses) > 1:
            return self.text_responses.pop(0)
        return self.text_responses[0]

    async def generate_structured(
        self, prompt, schema, system=None, temperature=0.0, max_tokens=4096
    ):
        self.structured_calls.append(
            {"prompt": prompt, "schema": schema, "system": system, "temperature": temperature}
        )
        result = self.structured.get(schema)
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise AssertionError(f"No scripted response for {schema.__name__}")
        return result


@pytest.fixture
def fake_llm_factory():
    return FakeLLM


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------
def make_image_bytes(width: int = 1080, height: int = 1080, fmt: str = "PNG") -> bytes:
    """Encode a solid-colour test image."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 120, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def image_bytes():
    return make_image_bytes()


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_notifier():
    """Notifier double recording failure reports."""
    notifier = MagicMock()
    notifier.notify_upload_failure = AsyncMock(return_value=True)
    notifier.send = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def image_factory():
    """``image_factory(width, height, fmt)`` -> encoded image bytes."""
    return make_image_bytes

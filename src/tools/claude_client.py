"""
Async Claude API client: the free-text LLM provider.

Uses the ``anthropic`` Python SDK (``AsyncAnthropic``) to interact with
Anthropic's Messages API.  Claude has no native JSON-schema response mode
here, so structured calls append the schema to the prompt and run the reply
through :func:`~src.tools.structured_output.parse_structured_output`.

Key features:
    - Bounded retry on transient API errors via ``@with_retry``
    - Token usage tracking (input + output)
    - Structured generation through the shared extraction ladder
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Type

import anthropic
from anthropic import AsyncAnthropic

from src.exceptions import ConfigurationError
from src.tools.llm import LLMClient, SchemaT
from src.tools.structured_output import parse_structured_output
from src.utils import with_retry

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


class ClaudeClient(LLMClient):
    """Async Claude API client.

    Args:
        api_key: Anthropic API key.  Falls back to the
            ``ANTHROPIC_API_KEY`` environment variable.
        model: Model identifier.

    Raises:
        ConfigurationError: If no API key is provided and the environment
            variable is missing.

    Usage::

        client = ClaudeClient()
        answer = await client.generate_text("Summarise this page.")
        verdict = await client.generate_structured(prompt, RelevancyResult)
    """

    provider = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-opus-4-5-20251101",
    ) -> None:
        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ConfigurationError(
                "Missing Anthropic API key. Set ANTHROPIC_API_KEY."
            )
        self.client = AsyncAnthropic(api_key=key)
        self.model = model
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3, delay=2.0, retryable_exceptions=_TRANSIENT_ERRORS)
    async def _complete(
        self,
        prompt: str,
        system: Optional[str],
        temperature: float,
        max_tokens: int,
    ) -> str:
        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(**kwargs)

        # Track token usage
        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens

        logger.debug(
            "Claude completion: in=%d out=%d tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> str:
        """Generate a plain-text response from the model.

        Args:
            prompt: The user message content.
            system: Optional system prompt.
            temperature: Sampling temperature (0.0 -- 1.0).
            max_tokens: Maximum tokens in the response.

        Returns:
            The model's text response.
        """
        return await self._complete(prompt, system, temperature, max_tokens)

    # ------------------------------------------------------------------
    # Structured generation
    # ------------------------------------------------------------------

    async def generate_structured(
        self,
        prompt: str,
        schema: Type[SchemaT],
        system: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> SchemaT:
        """Generate a response and coerce it into *schema*.

        The JSON schema is appended to the prompt.  Markdown fences, stray
        prose around the object and ``key: value`` answers are all tolerated
        by the extraction ladder.

        Raises:
            StructuredOutputError: If the reply cannot be validated.
        """
        json_prompt = (
            f"{prompt}\n\n"
            "Respond with ONLY a JSON object matching this JSON schema, "
            "no markdown, no explanation:\n"
            f"{json.dumps(schema.model_json_schema())}"
        )
        text = await self._complete(json_prompt, system, temperature, max_tokens)
        return parse_structured_output(text, schema)

    # ------------------------------------------------------------------
    # Usage tracking
    # ------------------------------------------------------------------

    @property
    def usage_stats(self) -> Dict[str, int]:
        """Cumulative token usage since this client was instantiated.

        Returns:
            Dict with ``input_tokens`` and ``output_tokens`` keys.
        """
        return {
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
        }

"""
Async OpenAI client: the schema-native LLM provider.

Structured calls send the pydantic model's JSON schema as the
``response_format`` so the API itself constrains the output.  Should the
reply still fail validation, it is passed through the shared extraction
ladder before giving up.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Type

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from src.exceptions import ConfigurationError
from src.tools.llm import LLMClient, SchemaT
from src.tools.structured_output import parse_structured_output
from src.utils import with_retry

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIClient(LLMClient):
    """Async OpenAI chat-completions client.

    Args:
        api_key: OpenAI API key.  Falls back to ``OPENAI_API_KEY``.
        model: Chat model identifier.

    Raises:
        ConfigurationError: If no API key is available.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
    ) -> None:
        key = api_key or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ConfigurationError("Missing OpenAI API key. Set OPENAI_API_KEY.")
        self.client = AsyncOpenAI(api_key=key)
        self.model = model
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0

    @with_retry(max_attempts=3, delay=2.0, retryable_exceptions=_TRANSIENT_ERRORS)
    async def _complete(
        self,
        prompt: str,
        system: Optional[str],
        temperature: float,
        max_tokens: int,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format is not None:
            kwargs["response_format"] = response_format

        response = await self.client.chat.completions.create(**kwargs)

        if response.usage is not None:
            self._total_input_tokens += response.usage.prompt_tokens
            self._total_output_tokens += response.usage.completion_tokens

        return response.choices[0].message.content or ""

    async def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> str:
        return await self._complete(prompt, system, temperature, max_tokens)

    async def generate_structured(
        self,
        prompt: str,
        schema: Type[SchemaT],
        system: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> SchemaT:
        """Generate a response constrained by *schema*'s JSON schema.

        Raises:
            StructuredOutputError: If the reply cannot be validated.
        """
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": schema.__name__,
                "schema": schema.model_json_schema(),
                "strict": False,
            },
        }
        text = await self._complete(
            prompt, system, temperature, max_tokens, response_format=response_format
        )
        try:
            return schema.model_validate_json(text)
        except ValidationError:
            logger.warning(
                "OpenAI structured reply failed direct validation for %s, "
                "falling back to extraction",
                schema.__name__,
            )
            return parse_structured_output(text, schema)

    @property
    def usage_stats(self) -> Dict[str, int]:
        return {
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
        }

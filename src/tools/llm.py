"""
Narrow LLM capability interface shared by every pipeline stage.

Stages depend on :class:`LLMClient` only, never on a vendor SDK.  The
concrete provider is chosen once per run by :func:`create_llm_client` from
an explicit :class:`~src.config.LLMProvider` value, so provider choice is a
constructor parameter rather than process-wide state read at call time.
"""

import abc
import logging
from typing import Optional, Type, TypeVar, Union

from pydantic import BaseModel

from src.config import LLMProvider, Settings, get_settings
from src.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMClient(abc.ABC):
    """Two-operation LLM interface: free text and schema-validated output."""

    provider: str = ""

    @abc.abstractmethod
    async def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> str:
        """Return the model's free-text response."""

    @abc.abstractmethod
    async def generate_structured(
        self,
        prompt: str,
        schema: Type[SchemaT],
        system: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> SchemaT:
        """Return the model's response validated against *schema*.

        Raises:
            StructuredOutputError: If the response cannot be validated.
        """


def create_llm_client(
    provider: Union[LLMProvider, str, None] = None,
    settings: Optional[Settings] = None,
    api_key: Optional[str] = None,
) -> LLMClient:
    """Build the client for *provider*.

    Args:
        provider: Provider to use. Defaults to ``settings.llm_provider``.
        settings: Settings supplying model names. Defaults to the singleton.
        api_key: Explicit API key; otherwise the provider SDK reads its own
            environment variable.

    Raises:
        ConfigurationError: If *provider* is unknown.
    """
    settings = settings or get_settings()
    raw = provider.value if isinstance(provider, LLMProvider) else provider
    raw = (raw or settings.llm_provider).lower()

    try:
        selected = LLMProvider(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown LLM provider '{raw}'. Valid: {[p.value for p in LLMProvider]}"
        ) from exc

    logger.info("LLM provider selected: %s", selected.value)

    if selected is LLMProvider.OPENAI:
        from src.tools.openai_client import OpenAIClient

        return OpenAIClient(api_key=api_key, model=settings.openai_model)

    from src.tools.claude_client import ClaudeClient

    return ClaudeClient(api_key=api_key, model=settings.anthropic_model)


__all__ = ["LLMClient", "create_llm_client"]

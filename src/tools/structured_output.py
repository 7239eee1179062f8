"""
Structured-output extraction for free-text LLM providers.

Providers without native JSON-schema support return prose that usually,
but not always, contains a JSON object.  :func:`parse_structured_output`
coerces such text into a pydantic model through a fixed ladder:

1. Strip markdown code fences (`` ```json ... ``` ``).
2. Parse the remainder directly as JSON.
3. Extract the first balanced ``{...}`` span and parse it.
4. Fall back to ``key: value`` lines.
5. Validate against the schema.

Only the final validation step can fail; it raises
:class:`~src.exceptions.StructuredOutputError`.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from src.exceptions import StructuredOutputError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)
_KEY_VALUE_RE = re.compile(r'^\s*["\']?([A-Za-z_][A-Za-z0-9_]*)["\']?\s*[:=]\s*(.+?)\s*,?\s*$')


def strip_markdown_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    # Fence embedded in surrounding prose
    inner = re.search(r"```(?:json)?\s*\n(.*?)\n```", stripped, re.DOTALL)
    if inner:
        return inner.group(1).strip()
    return stripped


def extract_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span in *text*.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)
    return None


def _coerce_scalar(raw: str) -> Any:
    value = raw.strip().strip('"').strip("'")
    lowered = value.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    if lowered in ("null", "none"):
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_key_values(text: str) -> Dict[str, Any]:
    """Parse ``key: value`` lines into a dict (last occurrence wins)."""
    result: Dict[str, Any] = {}
    for line in text.splitlines():
        match = _KEY_VALUE_RE.match(line)
        if match:
            result[match.group(1)] = _coerce_scalar(match.group(2))
    return result


def _try_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def _list_field(schema: Type[BaseModel]) -> Optional[str]:
    """Name of the schema's only list-typed field, if it has exactly one field."""
    fields = schema.model_fields
    if len(fields) != 1:
        return None
    name, info = next(iter(fields.items()))
    origin = getattr(info.annotation, "__origin__", None)
    return name if origin in (list, List) else None


def extract_json_payload(text: str, schema: Optional[Type[BaseModel]] = None) -> Any:
    """Run steps 1-4 of the ladder and return the first payload found.

    Returns an empty dict when nothing could be extracted.
    """
    cleaned = strip_markdown_fences(text)

    payload = _try_json(cleaned)
    if payload is None:
        span = extract_balanced_object(cleaned)
        if span is not None:
            payload = _try_json(span)
    if payload is None:
        payload = parse_key_values(cleaned)
        if payload:
            logger.debug("Structured output recovered from key-value lines")

    # A bare JSON array for a single-list schema
    if isinstance(payload, list) and schema is not None:
        list_name = _list_field(schema)
        if list_name:
            payload = {list_name: payload}

    return payload if payload is not None else {}


def parse_structured_output(text: str, schema: Type[SchemaT]) -> SchemaT:
    """Coerce free-text LLM output into an instance of *schema*.

    Args:
        text: Raw model output.
        schema: Pydantic model class to validate against.

    Returns:
        A validated *schema* instance.

    Raises:
        StructuredOutputError: If no step produced data that validates.
    """
    payload = extract_json_payload(text, schema)
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise StructuredOutputError(
            f"Failed to parse structured output: {exc.error_count()} validation "
            f"error(s) for {schema.__name__}: {exc.errors()[0]['msg']}"
        ) from exc


__all__ = [
    "strip_markdown_fences",
    "extract_balanced_object",
    "parse_key_values",
    "extract_json_payload",
    "parse_structured_output",
]

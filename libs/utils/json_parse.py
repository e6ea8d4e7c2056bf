"""Tolerant parsing of JSON emitted by language models."""

from __future__ import annotations

import json
import re
from typing import Any

from libs.common.errors import MalformedModelOutputError

MAX_LLM_JSON_CHARS = 50_000

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    return cleaned


def parse_llm_json(text: str, *, max_chars: int = MAX_LLM_JSON_CHARS) -> Any:
    """Parse a JSON object or array from model output.

    Accepts fenced blocks and leading/trailing prose around the JSON value.

    Raises:
        MalformedModelOutputError: output is empty, too large, or not JSON.
    """
    if not text or not text.strip():
        raise MalformedModelOutputError("Empty model output")
    if len(text) > max_chars:
        raise MalformedModelOutputError(
            f"Model output too large to parse ({len(text)} > {max_chars} chars)"
        )

    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Fall back to the first balanced-looking JSON value in the text
    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if starts:
        start = min(starts)
        closer = "}" if cleaned[start] == "{" else "]"
        end = cleaned.rfind(closer)
        if end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except json.JSONDecodeError:
                pass

    raise MalformedModelOutputError("Model output is not valid JSON", context={"preview": cleaned[:200]})


def parse_llm_json_object(text: str, **kwargs) -> dict:
    value = parse_llm_json(text, **kwargs)
    if not isinstance(value, dict):
        raise MalformedModelOutputError(f"Expected a JSON object, got {type(value).__name__}")
    return value

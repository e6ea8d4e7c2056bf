"""Small parsing and data helpers shared across the agent."""

from libs.utils.dedupe import dedupe_exact, near_duplicate_groups
from libs.utils.json_parse import parse_llm_json, parse_llm_json_object, strip_code_fences

__all__ = [
    "dedupe_exact",
    "near_duplicate_groups",
    "parse_llm_json",
    "parse_llm_json_object",
    "strip_code_fences",
]

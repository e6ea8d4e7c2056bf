"""Tests for tolerant LLM JSON parsing."""

import pytest

from libs.common.errors import MalformedModelOutputError
from libs.utils.json_parse import parse_llm_json, parse_llm_json_object, strip_code_fences


class TestParseLlmJson:
    def test_plain_object(self):
        assert parse_llm_json('{"topicDomain": "safesport"}') == {"topicDomain": "safesport"}

    def test_fenced_block(self):
        text = '```json\n{"score": 0.8, "issues": []}\n```'

        assert parse_llm_json(text) == {"score": 0.8, "issues": []}

    def test_array_with_surrounding_prose(self):
        text = 'Here are the queries:\n["section 9 arbitration", "team selection grievance"]\nHope this helps.'

        assert parse_llm_json(text) == ["section 9 arbitration", "team selection grievance"]

    def test_empty_output(self):
        with pytest.raises(MalformedModelOutputError):
            parse_llm_json("   ")

    def test_oversized_output(self):
        with pytest.raises(MalformedModelOutputError, match="too large"):
            parse_llm_json('{"a": "' + "x" * 100 + '"}', max_chars=50)

    def test_not_json(self):
        with pytest.raises(MalformedModelOutputError):
            parse_llm_json("I think this is about SafeSport.")


class TestParseLlmJsonObject:
    def test_rejects_array(self):
        with pytest.raises(MalformedModelOutputError, match="Expected a JSON object"):
            parse_llm_json_object('["a", "b"]')


def test_strip_code_fences_without_language():
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

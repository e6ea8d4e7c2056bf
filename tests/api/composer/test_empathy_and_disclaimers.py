"""Tests for emotional support templates and domain disclaimers."""

import pytest

from api.composer.disclaimers import DISCLAIMERS, GENERAL_DISCLAIMER, get_disclaimer
from api.composer.empathy import EMPATHY_PREAMBLES, generate_support_context, tone_guidance, with_empathy
from api.schemas.agent_state import VALID_TOPIC_DOMAINS


class TestEmpathy:
    def test_neutral_is_noop(self):
        assert with_empathy("Which sport?", "neutral") == "Which sport?"
        assert with_empathy("Which sport?", "unknown") == "Which sport?"

    def test_preamble_prepended(self):
        answer = with_empathy("Which sport?", "panicked")

        assert answer.startswith(EMPATHY_PREAMBLES["panicked"])
        assert answer.endswith("Which sport?")

    def test_no_context_for_neutral(self):
        assert generate_support_context("neutral", "safesport") is None

    def test_domain_specific_context(self):
        context = generate_support_context("fearful", "safesport")

        assert "retaliation" in context.acknowledgment
        assert context.safety_resources[0].startswith("U.S. Center for SafeSport")
        assert context.tone_modifiers

    def test_default_context_without_domain(self):
        context = generate_support_context("distressed", None)

        assert context.acknowledgment
        assert context.safety_resources == ["USOPC Mental Health Support: 1-888-602-9002"]

    def test_tone_guidance(self):
        context = generate_support_context("panicked", "anti_doping")
        guidance = tone_guidance(context)

        assert guidance.startswith("## Emotional Support Guidance")
        assert "- Use calm, reassuring language to reduce overwhelm" in guidance
        assert "USADA: 1-866-601-2632" in guidance
        assert tone_guidance(None) == ""


class TestDisclaimers:
    @pytest.mark.parametrize("domain", VALID_TOPIC_DOMAINS)
    def test_every_domain_has_disclaimer(self, domain):
        assert domain in DISCLAIMERS
        assert "does not constitute legal advice" in get_disclaimer(domain)

    def test_unknown_or_missing_domain_uses_general(self):
        assert get_disclaimer(None) == GENERAL_DISCLAIMER
        assert get_disclaimer("tax_law") == GENERAL_DISCLAIMER

    def test_safesport_disclaimer_leads_with_emergency(self):
        assert get_disclaimer("safesport").startswith("If you are in immediate danger, call 911.")

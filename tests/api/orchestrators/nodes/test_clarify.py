"""Tests for the clarify node."""

import pytest

from api.composer.empathy import EMPATHY_PREAMBLES
from api.orchestrators.nodes.clarify import DEFAULT_CLARIFICATION, clarify_node
from tests.factories import make_state


@pytest.mark.asyncio
async def test_uses_classifier_question():
    state = make_state("Can I appeal?", clarification_question="Which sport do you compete in?")

    patch = await clarify_node(state)

    assert patch == {"answer": "Which sport do you compete in?", "disclaimer_required": False}


@pytest.mark.asyncio
async def test_default_question_when_missing():
    patch = await clarify_node(make_state("Can I appeal?", clarification_question="   "))

    assert patch["answer"] == DEFAULT_CLARIFICATION


@pytest.mark.asyncio
async def test_empathy_preamble_for_distressed_athlete():
    state = make_state(
        "I'm freaking out, can I appeal?",
        clarification_question="Which selection event was this?",
        emotional_state="panicked",
    )

    patch = await clarify_node(state)

    assert patch["answer"].startswith(EMPATHY_PREAMBLES["panicked"])
    assert patch["answer"].endswith("Which selection event was this?")

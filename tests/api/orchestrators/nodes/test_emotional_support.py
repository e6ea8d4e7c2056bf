"""Tests for the emotional support node."""

import pytest

from api.orchestrators.nodes.emotional_support import emotional_support_node
from tests.factories import make_state


@pytest.mark.asyncio
async def test_context_for_distressed_athlete():
    patch = await emotional_support_node(make_state(emotional_state="distressed", topic_domain="anti_doping"))

    context = patch["emotional_support_context"]
    assert context is not None
    assert context.acknowledgment
    assert any("USADA" in r for r in context.safety_resources)


@pytest.mark.asyncio
async def test_no_context_when_neutral():
    patch = await emotional_support_node(make_state())

    assert patch == {"emotional_support_context": None}

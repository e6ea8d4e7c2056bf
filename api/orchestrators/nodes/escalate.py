"""
escalate: refer the athlete to the authority that can act on their matter.

The escalation record (target, contacts, urgency) is built deterministically
from the verified target table. The prose is generated by the escalation
model; if that fails, or omits the primary contact details, the
deterministic referral text is used or appended so verified contacts are
always present in the answer.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import structlog
from langsmith import traceable

from api.composer.escalation import (
    DOMAIN_GUIDANCE,
    IMMEDIATE_DOMAINS,
    SAFETY_DOMAIN,
    EscalationTarget,
    build_referral_message,
    contact_strings,
    format_contact_block,
    get_escalation_targets,
    get_target,
)
from api.composer.prompts import build_escalation_messages
from api.llm.llm_service import LLMService, ModelRole
from api.schemas.agent_state import EscalationInfo, RunState

logger = structlog.get_logger(__name__)

DEFAULT_REASON_CATEGORY = "non_imminent_misconduct"
FALLBACK_TARGET_ID = "athlete_ombuds"


def determine_urgency(state: RunState, domain: str) -> str:
    if domain in IMMEDIATE_DOMAINS or state.has_time_constraint:
        return "immediate"
    return "standard"


def build_escalation_info(
    target: EscalationTarget,
    domain: str,
    urgency: str,
    reason_category: str,
    reason: Optional[str],
) -> EscalationInfo:
    return EscalationInfo(
        target=target.id,
        organization=target.organization,
        contact_email=target.contact_email,
        contact_phone=target.contact_phone,
        contact_url=target.contact_url,
        reason=reason or (
            f"User query requires {urgency} escalation to {target.organization} "
            f"for {domain.replace('_', ' ')} matter"
        ),
        reason_category=reason_category,
        urgency=urgency,
    )


def ensure_primary_contacts(answer: str, primary: EscalationTarget) -> str:
    """Append the primary contact block when the answer omits any of its contact values."""
    if all(value in answer for value in contact_strings(primary)):
        return answer
    return f"{answer}\n\n## Recommended Contact(s)\n\n{format_contact_block(primary)}"


class EscalateNode:
    def __init__(self, llm: LLMService):
        self.llm = llm

    async def _generate(
        self,
        state: RunState,
        targets: List[EscalationTarget],
        domain: str,
        reason_category: str,
        reason: str,
    ) -> str:
        messages = build_escalation_messages(
            state.last_user_message(),
            "\n\n".join(format_contact_block(t) for t in targets),
            DOMAIN_GUIDANCE.get(domain, ""),
            reason_category,
            reason,
        )
        return (await self.llm.invoke(ModelRole.ESCALATION, messages)).strip()

    @traceable(
        run_type="llm",
        name="escalate",
        tags=["escalation", "referral", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        domain = state.topic_domain or SAFETY_DOMAIN
        reason_category = state.escalation_category or DEFAULT_REASON_CATEGORY
        urgency = determine_urgency(state, domain)

        targets = get_escalation_targets(domain, include_emergency=reason_category == "imminent_danger")
        if not targets:
            logger.warning("No escalation targets for domain, using Athlete Ombuds", domain=domain, trace_id=state.trace_id)
            targets = [get_target(FALLBACK_TARGET_ID)]
        primary = targets[0]

        logger.info(
            "escalate start",
            domain=domain,
            target=primary.id,
            urgency=urgency,
            reason_category=reason_category,
            trace_id=state.trace_id,
        )

        escalation = build_escalation_info(primary, domain, urgency, reason_category, state.escalation_reason)

        try:
            answer = await self._generate(state, targets, domain, reason_category, escalation.reason)
        except Exception as e:
            logger.error("escalate generation failed, using referral template", error=str(e), trace_id=state.trace_id)
            answer = ""

        if answer:
            answer = ensure_primary_contacts(answer, primary)
        else:
            answer = build_referral_message(targets, domain, urgency, reason_category)

        logger.info(
            "escalate completed",
            target=primary.id,
            target_count=len(targets),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        return {
            "answer": answer,
            "escalation": escalation,
        }

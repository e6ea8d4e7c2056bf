"""
Emotional support templates.

Pure lookups keyed by emotional state and topic domain: the preamble
prepended to clarification questions, the tone guidance injected into the
synthesizer prompt, and the support context built for non-neutral states.
No model calls.
"""

from typing import Dict, List, Optional

from api.schemas.agent_state import EmotionalSupportContext

MENTAL_HEALTH_RESOURCE = (
    "USOPC Mental Health Support: Contact the USOPC Athlete Services team or "
    "call the Mental Health Helpline at 1-888-602-9002 for free, confidential support."
)

EMPATHY_PREAMBLES: Dict[str, str] = {
    "neutral": "",
    "distressed": (
        "I hear you, and I want you to know that what you're feeling is valid. "
        "You are not alone in this, and support is available.\n\n"
        f"{MENTAL_HEALTH_RESOURCE}\n\n"
        "Here's what I can share about your situation:\n\n"
    ),
    "panicked": (
        "I understand this feels overwhelming right now. Take a breath. "
        "There are concrete steps you can take, and I'll walk you through them.\n\n"
    ),
    "fearful": (
        "I want you to know that retaliation protections exist to keep you safe, and "
        "there are confidential ways to get help. You have the right to speak up "
        "without fear of losing your place.\n\n"
    ),
}

_DEFAULT = "_default"

ACKNOWLEDGMENTS: Dict[str, Dict[str, str]] = {
    "distressed": {
        "safesport": (
            "I hear you, and I want you to know that what you're experiencing is taken very seriously. "
            "SafeSport issues can be deeply painful, and you deserve to feel safe. "
            "You are not alone. Confidential support is available right now."
        ),
        "anti_doping": (
            "I understand this is a stressful situation. Anti-doping processes can feel overwhelming, "
            "but you have rights and there are people who can help you navigate this."
        ),
        "dispute_resolution": (
            "I hear how difficult this is for you. Disputes can feel isolating, especially when "
            "your athletic career is at stake. Your concerns are valid, and there are clear "
            "processes designed to protect your interests."
        ),
        "team_selection": (
            "I understand how upsetting team selection issues can be. Your hard work and dedication "
            "deserve fair consideration. Let me help you understand your options."
        ),
        _DEFAULT: (
            "I hear you, and I want you to know that what you're feeling is valid. "
            "You are not alone in this, and support is available."
        ),
    },
    "panicked": {
        "safesport": (
            "I understand this feels overwhelming right now. Let me walk you through the concrete "
            "steps you can take right now to get help."
        ),
        "anti_doping": (
            "I understand this feels urgent. There are specific steps and timelines in the "
            "anti-doping process, and knowing them will help you feel more in control."
        ),
        _DEFAULT: (
            "I understand this feels overwhelming right now. There are concrete steps you can take, "
            "and I'll walk you through them."
        ),
    },
    "fearful": {
        "safesport": (
            "Your safety is the top priority. Strong retaliation protections exist for anyone who "
            "reports SafeSport concerns. You can report confidentially, and it is illegal to "
            "retaliate against you for doing so."
        ),
        "anti_doping": (
            "I understand your concerns. The anti-doping process has confidentiality protections "
            "built in, and you have the right to representation throughout."
        ),
        _DEFAULT: (
            "I want you to know that retaliation protections exist to keep you safe, and there are "
            "confidential ways to get help. You have the right to speak up without fear."
        ),
    },
}

GUIDANCE: Dict[str, Dict[str, str]] = {
    "distressed": {
        "safesport": (
            "The U.S. Center for SafeSport provides confidential reporting and support. "
            "You do not have to face this alone."
        ),
        "dispute_resolution": (
            "The Athlete Ombuds can help you understand your options and guide you through "
            "the process confidentially. You have the right to be heard."
        ),
        _DEFAULT: (
            "Support is available to help you through this situation. "
            "The USOPC Athlete Services team and the Athlete Ombuds are here to help."
        ),
    },
    "panicked": {
        "safesport": (
            "Contact the U.S. Center for SafeSport at 833-5US-SAFE to report, and reach out to the "
            "Athlete Ombuds for confidential guidance. Reports can be made anonymously."
        ),
        "anti_doping": (
            "Contact USADA to understand your timeline, and ask for a rights advisor to help you "
            "through the process. Deadlines matter, so confirm your key dates first."
        ),
        _DEFAULT: (
            "The Athlete Ombuds at 719-866-5000 can provide immediate, confidential guidance. "
            "There are defined processes and protections available to you."
        ),
    },
    "fearful": {
        "safesport": (
            "Federal law prohibits retaliation against anyone who reports SafeSport concerns. "
            "The Athlete Ombuds can provide confidential guidance before you decide to report."
        ),
        _DEFAULT: (
            "You are protected from retaliation for raising concerns. Confidential reporting "
            "channels exist, and the Athlete Ombuds can provide guidance without disclosing "
            "your identity until you are ready."
        ),
    },
}

_MENTAL_HEALTH_LINE = "USOPC Mental Health Support: 1-888-602-9002"
_OMBUDS_LINE = "Athlete Ombuds: 719-866-5000 (ombudsman@usathlete.org)"

SAFETY_RESOURCES: Dict[str, List[str]] = {
    "safesport": ["U.S. Center for SafeSport: 833-5US-SAFE (833-587-7233)", _MENTAL_HEALTH_LINE],
    "anti_doping": ["USADA: 1-866-601-2632", _MENTAL_HEALTH_LINE],
    "dispute_resolution": [_OMBUDS_LINE, _MENTAL_HEALTH_LINE],
    "team_selection": [_OMBUDS_LINE, _MENTAL_HEALTH_LINE],
    "eligibility": [_OMBUDS_LINE, _MENTAL_HEALTH_LINE],
    "governance": [_OMBUDS_LINE, _MENTAL_HEALTH_LINE],
    "athlete_rights": [_OMBUDS_LINE, _MENTAL_HEALTH_LINE],
    _DEFAULT: [_MENTAL_HEALTH_LINE],
}

TONE_MODIFIERS: Dict[str, List[str]] = {
    "distressed": [
        "Use a warm, supportive tone throughout your response",
        "Acknowledge the athlete's feelings before providing procedural information",
        "Avoid cold, bureaucratic language",
        "Frame action steps as empowering options, not obligations",
    ],
    "panicked": [
        "Use calm, reassuring language to reduce overwhelm",
        "Present information in a clear, numbered sequence",
        "Avoid alarming language or worst-case scenarios",
        "Reinforce that there is time to act and support available",
    ],
    "fearful": [
        "Emphasize confidentiality protections and anti-retaliation provisions",
        "Use reassuring language about the athlete's rights and safety",
        "Frame reporting options as safe and protected actions",
        "Avoid language that could increase anxiety about consequences",
    ],
}


def with_empathy(answer: str, emotional_state: str) -> str:
    """Prepend the preamble for ``emotional_state``; no-op when neutral."""
    return EMPATHY_PREAMBLES.get(emotional_state, "") + answer


def _lookup(table: Dict[str, Dict[str, str]], state: str, domain: Optional[str]) -> str:
    by_domain = table.get(state)
    if not by_domain:
        return ""
    return by_domain.get(domain or _DEFAULT) or by_domain[_DEFAULT]


def generate_support_context(
    emotional_state: str,
    topic_domain: Optional[str] = None,
) -> Optional[EmotionalSupportContext]:
    """Support context for a non-neutral state, ``None`` for neutral."""
    if emotional_state not in TONE_MODIFIERS:
        return None
    return EmotionalSupportContext(
        acknowledgment=_lookup(ACKNOWLEDGMENTS, emotional_state, topic_domain),
        guidance=_lookup(GUIDANCE, emotional_state, topic_domain),
        safety_resources=list(SAFETY_RESOURCES.get(topic_domain or _DEFAULT, SAFETY_RESOURCES[_DEFAULT])),
        tone_modifiers=list(TONE_MODIFIERS[emotional_state]),
    )


def tone_guidance(context: Optional[EmotionalSupportContext]) -> str:
    """Synthesizer instructions derived from a support context."""
    if context is None:
        return ""
    lines = ["## Emotional Support Guidance", "", "The athlete is under emotional strain. Follow these tone rules:"]
    lines.extend(f"- {modifier}" for modifier in context.tone_modifiers)
    lines.append("")
    lines.append(f"Open with an acknowledgment in this spirit: {context.acknowledgment}")
    if context.guidance:
        lines.append(f"Work this guidance into the answer where relevant: {context.guidance}")
    if context.safety_resources:
        lines.append("Close by listing these support resources:")
        lines.extend(f"- {resource}" for resource in context.safety_resources)
    return "\n".join(lines)

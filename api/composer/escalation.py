"""
Escalation directory and deterministic referral templates.

The directory holds the verified contact details for every authority the
agent refers athletes to. Target selection and the fallback referral text
are pure lookups so a referral can always be produced, even when the
language model is unavailable.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

SAFETY_DOMAIN = "safesport"
SAFETY_TARGET_ID = "safesport_center"
EMERGENCY_TARGET_ID = "emergency_services"

IMMEDIATE_DOMAINS = frozenset({"safesport", "anti_doping"})


@dataclass(frozen=True)
class EscalationTarget:
    id: str
    organization: str
    domains: Tuple[str, ...]
    urgency_default: str
    description: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_url: Optional[str] = None


ESCALATION_TARGETS: List[EscalationTarget] = [
    EscalationTarget(
        id="athlete_ombuds",
        organization="Athlete Ombuds",
        contact_email="ombudsman@usathlete.org",
        contact_phone="719-866-5000",
        contact_url="https://www.usathlete.org",
        domains=("dispute_resolution", "team_selection", "eligibility", "governance", "athlete_rights"),
        urgency_default="standard",
        description=(
            "Provides free, confidential, and independent advice to athletes on disputes, "
            "team selection concerns, eligibility questions, and athlete rights. "
            "The Ombuds can explain your options and help you navigate resolution processes."
        ),
    ),
    EscalationTarget(
        id=SAFETY_TARGET_ID,
        organization="U.S. Center for SafeSport",
        contact_phone="833-5US-SAFE (833-587-7233)",
        contact_url="https://uscenterforsafesport.org/report-a-concern/",
        domains=("safesport",),
        urgency_default="immediate",
        description=(
            "The exclusive authority for investigating and resolving reports of sexual misconduct, "
            "emotional misconduct, physical misconduct, bullying, hazing, and harassment in U.S. Olympic "
            "and Paralympic sport. Reports can be made anonymously."
        ),
    ),
    EscalationTarget(
        id="usada",
        organization="U.S. Anti-Doping Agency (USADA)",
        contact_phone="1-866-601-2632",
        contact_url="https://www.usada.org",
        domains=("anti_doping",),
        urgency_default="immediate",
        description=(
            "The independent anti-doping organization responsible for testing, education, research, "
            "and adjudication for athletes in the U.S. Olympic and Paralympic Movement. "
            "Contact USADA for questions about testing, TUEs, whereabouts, and anti-doping rule violations."
        ),
    ),
    EscalationTarget(
        id="athletes_commission",
        organization="Team USA Athletes' Commission",
        contact_email="teamusa.ac@teamusa-ac.org",
        contact_url="https://www.usopc.org/teamusa-athletes-commission",
        domains=("governance", "athlete_rights"),
        urgency_default="standard",
        description=(
            "Represents athlete interests within the USOPC governance structure. "
            "Contact for questions about athlete representation on boards and committees, "
            "the Athlete Bill of Rights, and governance reform."
        ),
    ),
    EscalationTarget(
        id="cas",
        organization="Court of Arbitration for Sport (CAS)",
        contact_url="https://www.tas-cas.org",
        domains=("dispute_resolution",),
        urgency_default="standard",
        description=(
            "International arbitration body for sport-related disputes. "
            "CAS hears appeals from decisions by sports organizations, including Section 9 arbitration awards. "
            "Strict filing deadlines apply (typically 21 days from the decision being appealed)."
        ),
    ),
    EscalationTarget(
        id=EMERGENCY_TARGET_ID,
        organization="Emergency Services",
        contact_phone="911",
        domains=("safesport",),
        urgency_default="immediate",
        description=(
            "If you or someone else is in immediate physical danger, call 911 first. "
            "After ensuring safety, follow up with a report to the U.S. Center for SafeSport."
        ),
    ),
]

DOMAIN_GUIDANCE: Dict[str, str] = {
    "safesport": (
        "This is a SafeSport matter. The U.S. Center for SafeSport has exclusive jurisdiction over "
        "misconduct investigations in U.S. Olympic and Paralympic sport. Reports can be made anonymously. "
        "If the athlete mentions retaliation, note that the SafeSport Code prohibits retaliation."
    ),
    "anti_doping": (
        "This is an anti-doping matter. USADA handles all testing, adjudication, and TUE decisions "
        "for U.S. Olympic and Paralympic athletes. Time-sensitive action may be required."
    ),
    "dispute_resolution": (
        "This involves a dispute that may require formal resolution. The Athlete Ombuds provides "
        "free, confidential guidance. Section 9 arbitration and AAA proceedings have strict deadlines."
    ),
    "team_selection": (
        "This involves a team selection concern. The Athlete Ombuds can explain the athlete's options, "
        "including whether a Section 9 arbitration claim is available."
    ),
    "eligibility": (
        "This involves an eligibility question that requires expert guidance. "
        "The Athlete Ombuds can advise on eligibility requirements and processes."
    ),
    "governance": (
        "This involves a governance or compliance concern. The Athletes' Commission and "
        "Athlete Ombuds can help with NGB compliance and athlete representation issues."
    ),
    "athlete_rights": (
        "This involves athlete rights or representation. The Athletes' Commission handles "
        "representation on boards/committees, and the Athlete Ombuds can advise on rights-related disputes."
    ),
}

DOMAIN_HELP: Dict[str, str] = {
    "safesport": (
        "The U.S. Center for SafeSport can investigate reports of sexual, emotional, "
        "or physical misconduct, bullying, hazing, and harassment. Reports can be "
        "made anonymously."
    ),
    "anti_doping": (
        "USADA can assist with questions about drug testing, Therapeutic Use Exemptions "
        "(TUEs), whereabouts requirements, prohibited substances, and anti-doping "
        "rule violation proceedings."
    ),
    "dispute_resolution": (
        "The Athlete Ombuds provides free, confidential advice on disputes including "
        "Section 9 arbitration, grievance procedures, and how to challenge decisions "
        "by an NGB or the USOPC."
    ),
    "team_selection": (
        "The Athlete Ombuds can help you understand the selection procedures for your "
        "sport and your options if you believe a selection decision was made in error."
    ),
    "eligibility": (
        "The Athlete Ombuds can advise on eligibility requirements and processes for "
        "your specific sport and competition level."
    ),
    "governance": (
        "The Athletes' Commission and Athlete Ombuds can assist with governance concerns, "
        "NGB compliance issues, and athlete representation questions."
    ),
    "athlete_rights": (
        "The Athletes' Commission can help with questions about athlete representation, "
        "the Athlete Bill of Rights, and marketing/sponsorship rights. The Athlete "
        "Ombuds can provide confidential guidance on rights-related disputes."
    ),
}

EMERGENCY_PREAMBLE = "**If you are in immediate danger, please call 911 first.**"


def get_escalation_targets(domain: str, *, include_emergency: bool = False) -> List[EscalationTarget]:
    """Targets serving ``domain``, primary target first.

    Emergency services are listed only when ``include_emergency`` is set,
    which callers do for imminent physical danger.
    """
    return [
        target
        for target in ESCALATION_TARGETS
        if domain in target.domains and (include_emergency or target.id != EMERGENCY_TARGET_ID)
    ]


def get_target(target_id: str) -> EscalationTarget:
    for target in ESCALATION_TARGETS:
        if target.id == target_id:
            return target
    raise KeyError(target_id)


def format_contact_block(target: EscalationTarget) -> str:
    lines = [f"**{target.organization}**", target.description]
    if target.contact_phone:
        lines.append(f"- Phone: {target.contact_phone}")
    if target.contact_email:
        lines.append(f"- Email: {target.contact_email}")
    if target.contact_url:
        lines.append(f"- Website: {target.contact_url}")
    return "\n".join(lines)


def build_referral_message(
    targets: List[EscalationTarget],
    domain: str,
    urgency: str,
    reason_category: str,
) -> str:
    """Deterministic referral text with verified contacts for every target."""
    parts: List[str] = []

    if reason_category == "imminent_danger":
        parts.append(EMERGENCY_PREAMBLE + "\n")

    if urgency == "immediate":
        if domain == "safesport":
            parts.append(
                "Your concern involves potential abuse or misconduct, which requires "
                "reporting to the appropriate authority. I am not equipped to investigate "
                "or resolve SafeSport matters, but I can direct you to the right resources.\n"
            )
        elif domain == "anti_doping":
            parts.append(
                "Your question involves an anti-doping matter that may require immediate "
                "action. It is important that you contact USADA directly for guidance "
                "specific to your situation.\n"
            )
        else:
            parts.append(
                "Based on the urgency of your situation, I recommend contacting the "
                "following resource(s) directly for timely assistance.\n"
            )
    else:
        parts.append(
            "Your question is best addressed by a specialized authority. "
            "I recommend reaching out to the following resource(s) for personalized guidance.\n"
        )

    parts.append("## Recommended Contact(s)\n")
    for target in targets:
        parts.append(format_contact_block(target))
        parts.append("")

    help_text = DOMAIN_HELP.get(domain)
    if help_text:
        parts.append("## What They Can Help With\n")
        parts.append(help_text)

    return "\n".join(parts)


def contact_strings(target: EscalationTarget) -> List[str]:
    """The verified contact values a referral must mention for ``target``."""
    return [value for value in (target.contact_phone, target.contact_email, target.contact_url) if value]

"""Domain-specific disclaimers appended to substantive answers."""

from typing import Dict, Optional

DISCLAIMER_SEPARATOR = "\n\n---\n\n"

GENERAL_DISCLAIMER = (
    "This information is for educational purposes only and does not constitute legal advice. "
    "For personalized guidance, consult the Athlete Ombuds or qualified legal counsel."
)

DISCLAIMERS: Dict[str, str] = {
    "general": GENERAL_DISCLAIMER,
    "team_selection": (
        GENERAL_DISCLAIMER
        + "\n\nTeam selection procedures vary by sport and event. Always refer to the specific "
        "NGB's published selection procedures for the competition in question. "
        "If you believe a selection decision was made in error, contact the Athlete Ombuds "
        "at ombudsman@usathlete.org or 719-866-5000 for guidance on your options."
    ),
    "dispute_resolution": (
        GENERAL_DISCLAIMER
        + "\n\nFor assistance with disputes, including Section 9 arbitration and grievance procedures, "
        "contact the Athlete Ombuds at ombudsman@usathlete.org or 719-866-5000. "
        "The Ombuds provides free, confidential, and independent advice to athletes."
    ),
    "safesport": (
        "If you are in immediate danger, call 911. "
        "To report abuse or misconduct in sport, contact the U.S. Center for SafeSport "
        "at https://uscenterforsafesport.org/report-a-concern/ or call 833-5US-SAFE (833-587-7233). "
        "Reports can be made anonymously.\n\n" + GENERAL_DISCLAIMER
    ),
    "anti_doping": (
        GENERAL_DISCLAIMER
        + "\n\nFor anti-doping questions, including Therapeutic Use Exemptions (TUEs), "
        "whereabouts requirements, or testing procedures, contact USADA at "
        "https://www.usada.org or call 1-866-601-2632. "
        "If you have been notified of a potential anti-doping rule violation, "
        "seek legal counsel immediately."
    ),
    "eligibility": (
        GENERAL_DISCLAIMER
        + "\n\nEligibility requirements vary by sport, competition level, and governing body. "
        "Contact your NGB directly or the Athlete Ombuds at ombudsman@usathlete.org "
        "for guidance specific to your situation."
    ),
    "governance": (
        GENERAL_DISCLAIMER
        + "\n\nFor governance and representation concerns, contact the "
        "Team USA Athletes' Commission at https://www.usopc.org/voice-and-representation "
        "or reach out to your NGB's athlete representative. "
        "The Athletes' Advisory Council can also be contacted through the USOPC."
    ),
    "athlete_rights": (
        GENERAL_DISCLAIMER
        + "\n\nFor questions about athlete rights, representation, and the Athlete Bill of Rights, "
        "contact the Team USA Athletes' Commission at https://www.usopc.org/voice-and-representation. "
        "For marketing and sponsorship rights questions, the Athlete Ombuds can provide guidance "
        "at ombudsman@usathlete.org or 719-866-5000."
    ),
}


def get_disclaimer(domain: Optional[str]) -> str:
    """Disclaimer for ``domain``; the general one when unknown or missing."""
    return DISCLAIMERS.get(domain or "general", GENERAL_DISCLAIMER)

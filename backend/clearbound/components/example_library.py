"""
Few-shot register examples for the prompt composer.

Lookup is a priority cascade:
record-safe + specific intent > record-safe relationship default >
generic relationship default > hard-coded literal.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

RECORD_SAFE_BY_INTENT: Dict[Tuple[str, str], str] = {
    ("manager", "set_boundary"): (
        "Following up on our conversation on Monday: I am not able to take on weekend "
        "shifts beyond the two already scheduled this month. I am happy to discuss "
        "coverage options during our next one-to-one."
    ),
    ("manager", "request_change"): (
        "As discussed, the current review schedule has moved three times this quarter. "
        "I am requesting that review dates be confirmed in writing at least one week ahead."
    ),
    ("coworker", "request_change"): (
        "To keep our handoffs clear, I would like us to confirm task ownership in the "
        "shared tracker before starting work. That way we both have the same record."
    ),
    ("landlord", "request_change"): (
        "I am writing to confirm that the heating issue reported on the 3rd is still "
        "unresolved. Please let me know in writing when a repair visit is scheduled."
    ),
    ("client", "follow_up"): (
        "Following up on the invoice sent on the 12th, which remains outstanding. "
        "Please confirm the expected payment date so I can update our records."
    ),
    ("family", "set_boundary"): (
        "I want to be clear and consistent about this: I will not be discussing the "
        "inheritance over text. I am open to one scheduled call with everyone present."
    ),
}

RECORD_SAFE_BY_RELATIONSHIP: Dict[str, str] = {
    "manager": (
        "Thank you for the update. To make sure we are aligned, I am summarizing what "
        "was agreed and what I understood the next steps to be."
    ),
    "coworker": (
        "Summarizing our exchange so we have the same record: the points below are what "
        "I understood, and I am happy to correct anything I missed."
    ),
    "client": (
        "For our records, here is a short summary of what was agreed, what is still "
        "open, and the date we expect the next update."
    ),
    "landlord": (
        "I am writing to document the issue and the dates it was reported, and to ask "
        "for written confirmation of the next step."
    ),
    "neighbor": (
        "I am writing to note the issue we discussed and the dates it occurred, and to "
        "suggest a simple way to avoid it going forward."
    ),
}

GENERIC_BY_RELATIONSHIP: Dict[str, str] = {
    "personal": (
        "I have been thinking about what happened and I want to be honest with you about "
        "how it landed for me. I would like us to talk about it calmly."
    ),
    "family": (
        "I care about our relationship, which is why I want to say this clearly: the way "
        "the last visit went did not work for me, and I would like to change how we plan them."
    ),
    "partner": (
        "I want to bring something up while we are both calm. When plans change last minute "
        "I feel sidelined, and I would like us to agree on a way to handle it."
    ),
    "friend": (
        "I value our friendship, so I would rather be direct: I was hurt when the plans fell "
        "through again, and I would like to understand what is going on."
    ),
    "coworker": (
        "Quick note about the project handoff: I would like us to agree on who owns each "
        "task so nothing falls between us."
    ),
    "manager": (
        "I wanted to raise something about my current workload and ask for ten minutes "
        "this week to agree on priorities."
    ),
    "client": (
        "Thanks for the update. Before we proceed, I would like to confirm the scope we "
        "agreed so the timeline stays realistic for both of us."
    ),
    "landlord": (
        "I am following up on the repair request from last week. Could you let me know "
        "when someone will be able to come by?"
    ),
    "neighbor": (
        "Hi, I wanted to mention the late-night noise in a friendly way and see if we can "
        "find something that works for both of us."
    ),
}

DEFAULT_EXAMPLE = (
    "I want to address what happened clearly and respectfully. Here is what I noticed, "
    "what I would like to change, and what I am asking for next."
)

ANALYSIS_EXAMPLE = (
    "Risk posture: moderate; the situation is ongoing and has happened before.\n"
    "Strategy: keep the message factual and name one specific change.\n"
    "Next step: send the message, then wait for a reply before raising anything new."
)


def select_example(relationship: str, intent: str, record_safe: bool) -> Tuple[str, str]:
    """Return (tier, example text) for the highest-priority match"""
    if record_safe:
        text: Optional[str] = RECORD_SAFE_BY_INTENT.get((relationship, intent))
        if text:
            return "record_safe_intent", text
        text = RECORD_SAFE_BY_RELATIONSHIP.get(relationship)
        if text:
            return "record_safe_default", text
    text = GENERIC_BY_RELATIONSHIP.get(relationship)
    if text:
        return "generic_default", text
    return "literal", DEFAULT_EXAMPLE

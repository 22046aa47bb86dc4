"""Intent classification and reply templates for the hospital assistant.

Substring keyword rules, evaluated top to bottom, first match wins. The
classifier is a pure function of the user's text, the intent of the previous
assistant reply, and how many distinct symptoms have been reported.
"""

from __future__ import annotations

from typing import Callable, Sequence

EMERGENCY = "emergency"
CONNECT_HUMAN = "connect_human"
CONFIRM_HANDOFF = "confirm_handoff"
HEADACHE = "headache"
APPOINTMENT = "appointment"
MULTI_SYMPTOM = "multi_symptom"
FALLBACK = "fallback"

INTENTS: tuple[str, ...] = (
    EMERGENCY,
    CONNECT_HUMAN,
    CONFIRM_HANDOFF,
    HEADACHE,
    APPOINTMENT,
    MULTI_SYMPTOM,
    FALLBACK,
)

MULTI_SYMPTOM_THRESHOLD = 2

# Predicate signature: (lowered text, previous assistant intent, symptom count) -> bool
Predicate = Callable[[str, "str | None", int], bool]


def _contains_any(*needles: str) -> Predicate:
    def predicate(text: str, previous_intent: str | None, symptom_count: int) -> bool:
        return any(needle in text for needle in needles)
    return predicate


def _confirms_handoff(text: str, previous_intent: str | None, symptom_count: int) -> bool:
    # A bare "yes" only counts while the handoff offer is the latest reply.
    if "yes, connect" in text:
        return True
    return "yes" in text and previous_intent == CONNECT_HUMAN


def _has_several_symptoms(text: str, previous_intent: str | None, symptom_count: int) -> bool:
    return symptom_count >= MULTI_SYMPTOM_THRESHOLD


def _always(text: str, previous_intent: str | None, symptom_count: int) -> bool:
    return True


# ---------------------------------------------------------------------------
# Rule table -- ordered by priority, emergency first
# ---------------------------------------------------------------------------

RULES: tuple[tuple[str, Predicate], ...] = (
    (EMERGENCY, _contains_any("severe chest pain", "difficulty breathing")),
    (CONNECT_HUMAN, _contains_any("human", "representative")),
    (CONFIRM_HANDOFF, _confirms_handoff),
    (HEADACHE, _contains_any("headache")),
    (APPOINTMENT, _contains_any("appointment")),
    (MULTI_SYMPTOM, _has_several_symptoms),
    (FALLBACK, _always),
)


def classify(text: str, previous_intent: str | None = None, symptom_count: int = 0) -> str:
    """Return the first intent whose rule matches. Never fails: FALLBACK matches everything."""
    lowered = text.lower()
    for intent, predicate in RULES:
        if predicate(lowered, previous_intent, symptom_count):
            return intent
    return FALLBACK


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------

HANDOFF_FOLLOW_UP = (
    "You’re being redirected to Dr. Johnson’s virtual consultation room. "
    "Estimated wait: 2-3 minutes."
)

_REPLIES: dict[str, str] = {
    EMERGENCY: "⚠️ EMERGENCY: Call 911 or visit the nearest ER immediately.",
    CONNECT_HUMAN: "Would you like me to connect you with a human representative now?",
    CONFIRM_HANDOFF: "Connecting you with a healthcare professional. Please wait...",
    HEADACHE: (
        "For your headache, try rest, hydration, and OTC pain relievers. "
        "Seek medical attention if severe or persistent. More details?"
    ),
    APPOINTMENT: "To book an appointment, go to the Appointments section or I can help now. Proceed?",
    MULTI_SYMPTOM: "You’ve mentioned: {symptoms}. A doctor might help evaluate this. Connect now?",
    FALLBACK: "Please describe your symptoms or ask about hospital services.",
}


def reply_for(intent: str, symptoms: Sequence[str] = ()) -> str:
    """Render the reply for an intent. Emergency and multi-symptom replies list the symptoms."""
    template = _REPLIES.get(intent, _REPLIES[FALLBACK])
    listed = ", ".join(symptoms)
    if intent == EMERGENCY and symptoms:
        return f"{template} Symptoms reported so far: {listed}."
    if intent == MULTI_SYMPTOM:
        return template.format(symptoms=listed)
    return template

"""Quick-reply suggestion sets. Every set holds exactly four chips."""

from __future__ import annotations

from dataclasses import dataclass

from carebot.assistant import intents


@dataclass(frozen=True)
class QuickSuggestion:
    id: str
    label: str

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label}


def _chips(*labels: str) -> tuple[QuickSuggestion, ...]:
    return tuple(QuickSuggestion(id=str(i), label=label) for i, label in enumerate(labels, start=1))


STARTER_SUGGESTIONS = _chips(
    "I have a headache",
    "Stomach pain and nausea",
    "Book an appointment",
    "Speak to a human representative",
)

FILE_SUGGESTIONS = _chips(
    "Yes, connect me with a doctor",
    "No, I’ll wait",
    "Is this format okay?",
    "Send another file",
)

_BY_INTENT: dict[str, tuple[QuickSuggestion, ...]] = {
    intents.CONNECT_HUMAN: _chips(
        "Yes, connect me please",
        "No, continue with chatbot",
        "Schedule a call later",
        "Urgent assistance",
    ),
    intents.HEADACHE: _chips(
        "My headache is severe",
        "I also have fever",
        "What medications help?",
        "Connect me with a doctor",
    ),
    intents.MULTI_SYMPTOM: _chips(
        "Yes, connect me with a doctor",
        "More about these symptoms",
        "Possible causes?",
        "Just general advice",
    ),
}


def suggestions_for(intent: str, symptom_count: int = 0) -> tuple[QuickSuggestion, ...] | None:
    """Replacement chips for an intent, or None when the current chips stay."""
    if intent == intents.MULTI_SYMPTOM and symptom_count < intents.MULTI_SYMPTOM_THRESHOLD:
        return None
    return _BY_INTENT.get(intent)

"""Symptom keyword extraction and the per-conversation symptom set."""

from __future__ import annotations

SYMPTOM_KEYWORDS: tuple[str, ...] = (
    "headache",
    "migraine",
    "dizziness",
    "cough",
    "shortness of breath",
    "nausea",
    "vomiting",
    "diarrhea",
    "stomach pain",
    "chest pain",
    "fever",
    "rash",
    "itching",
)


def scan(text: str) -> tuple[str, ...]:
    """Return every vocabulary keyword contained in text, in vocabulary order."""
    lowered = text.lower()
    return tuple(keyword for keyword in SYMPTOM_KEYWORDS if keyword in lowered)


class SymptomTracker:
    """Grow-only set of reported symptoms, kept in first-seen order."""

    def __init__(self) -> None:
        self._seen: dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, keyword: object) -> bool:
        return keyword in self._seen

    @property
    def symptoms(self) -> tuple[str, ...]:
        return tuple(self._seen)

    def record(self, text: str) -> tuple[str, ...]:
        """Union the keywords found in text into the set. Returns only the new ones."""
        added = []
        for keyword in scan(text):
            if keyword not in self._seen:
                self._seen[keyword] = None
                added.append(keyword)
        return tuple(added)

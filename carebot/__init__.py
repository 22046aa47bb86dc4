from __future__ import annotations

__version__ = "0.1.0"

from carebot.assistant.conversation import AssistantSettings, Conversation


def create(
    patient_id: int | None = None,
    *,
    scheduler=None,
    settings: AssistantSettings | None = None,
) -> Conversation:
    """Start a new assistant conversation.

    With a patient id the welcome message is personalised. Without a
    scheduler, replies are timed on the running asyncio event loop, so the
    conversation must be driven from inside that loop.

    Usage:
        import carebot
        conversation = carebot.create(patient_id=42)
        unsubscribe = conversation.subscribe(render)
        conversation.submit_text("I have a headache")
        ...
        conversation.dispose()
    """
    if patient_id is not None and (not isinstance(patient_id, int) or isinstance(patient_id, bool)):
        raise ValueError("patient_id must be an integer or None")
    return Conversation(patient_id=patient_id, scheduler=scheduler, settings=settings)

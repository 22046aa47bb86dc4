"""Carebot assistant engine.

Rule-based hospital assistant: symptom tracking, keyword intents, delayed
replies, quick suggestions, and a simulated human handoff.
"""

from carebot.assistant.conversation import AssistantSettings, Conversation, ConversationSnapshot
from carebot.assistant.scheduler import AsyncioScheduler, ManualScheduler, ScheduledTask

__all__ = [
    "AssistantSettings",
    "AsyncioScheduler",
    "Conversation",
    "ConversationSnapshot",
    "ManualScheduler",
    "ScheduledTask",
]

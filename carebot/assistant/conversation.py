"""Conversation controller -- one assistant conversation and its state machine.

Receives user input, records symptoms, classifies intent, and publishes the
assistant's reply after a typing delay through a scheduler. Only one reply
task is outstanding at a time; input that arrives meanwhile waits in a FIFO
queue and is answered in submission order.

States:
    idle -> awaiting_reply -> idle                      normal turn
    awaiting_reply -> handoff_offered                   "yes" to a handoff offer
      -> handoff_in_progress -> redirected              follow-up after a longer delay

Every change is pushed to subscribers as a ConversationSnapshot.
"""

from __future__ import annotations

import collections
import uuid
from dataclasses import dataclass
from typing import Callable

from carebot.assistant import intents
from carebot.assistant.messages import ASSISTANT, USER, Message, MessageStore
from carebot.assistant.scheduler import AsyncioScheduler, ScheduledTask
from carebot.assistant.suggestions import FILE_SUGGESTIONS, STARTER_SUGGESTIONS, QuickSuggestion, suggestions_for
from carebot.assistant.symptoms import SymptomTracker
from carebot.log import logger

IDLE = "idle"
AWAITING_REPLY = "awaiting_reply"
HANDOFF_OFFERED = "handoff_offered"
HANDOFF_IN_PROGRESS = "handoff_in_progress"
REDIRECTED = "redirected"

_HANDOFF_STATES = (HANDOFF_OFFERED, HANDOFF_IN_PROGRESS, REDIRECTED)

_TEXT_TURN = "text"
_FILE_TURN = "file"


def welcome_text(patient_id: int | None = None) -> str:
    greeting = f"Hello, Patient #{patient_id}!" if patient_id is not None else "Hello!"
    return (
        f"{greeting} I'm your hospital virtual assistant. How can I help you today? "
        "You can describe any symptoms you're experiencing, ask about our services, "
        "or request a human representative."
    )


def file_ack_text(name: str) -> str:
    return f'Received "{name}". A professional will review it. Discuss with a doctor now?'


@dataclass(frozen=True)
class AssistantSettings:
    """Timing and policy knobs, in seconds."""

    reply_delay: float = 1.5
    handoff_followup_delay: float = 2.0
    file_ack_delay: float = 1.0
    allow_chat_after_redirect: bool = True
    max_message_chars: int = 2000

    @classmethod
    def from_config(cls) -> "AssistantSettings":
        """Build settings from the 'assistant' section of the carebot config."""
        try:
            from carebot.config.loader import get_assistant_config
            cfg = get_assistant_config()
            return cls(
                reply_delay=float(cfg.get("reply_delay_seconds", 1.5)),
                handoff_followup_delay=float(cfg.get("handoff_followup_delay_seconds", 2.0)),
                file_ack_delay=float(cfg.get("file_ack_delay_seconds", 1.0)),
                allow_chat_after_redirect=bool(cfg.get("allow_chat_after_redirect", True)),
                max_message_chars=int(cfg.get("max_message_chars", 2000)),
            )
        except Exception:
            logger.warning("Invalid assistant config, using defaults", exc_info=True)
            return cls()


@dataclass(frozen=True)
class ConversationSnapshot:
    conversation_id: str
    state: str
    messages: tuple[Message, ...]
    typing: bool
    suggestions: tuple[QuickSuggestion, ...]
    symptoms: tuple[str, ...]
    disposed: bool

    def to_dict(self) -> dict:
        return {
            "id": self.conversation_id,
            "state": self.state,
            "typing": self.typing,
            "messages": [m.to_dict() for m in self.messages],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "symptoms": list(self.symptoms),
            "disposed": self.disposed,
        }


class _Turn:
    """One accepted input waiting for its reply."""

    __slots__ = ("kind", "text", "symptoms")

    def __init__(self, kind: str, text: str, symptoms: tuple[str, ...] = ()) -> None:
        self.kind = kind
        self.text = text
        self.symptoms = symptoms


Listener = Callable[[ConversationSnapshot], None]


class Conversation:
    """A single assistant conversation. Not thread-safe: drive it from one thread."""

    def __init__(
        self,
        patient_id: int | None = None,
        scheduler=None,
        settings: AssistantSettings | None = None,
        conversation_id: str | None = None,
    ) -> None:
        self.id = conversation_id or uuid.uuid4().hex
        self.patient_id = patient_id
        self._scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self._settings = settings if settings is not None else AssistantSettings.from_config()

        self._store = MessageStore()
        self._symptoms = SymptomTracker()
        self._suggestions: tuple[QuickSuggestion, ...] = STARTER_SUGGESTIONS
        self._state = IDLE
        self._active: ScheduledTask | None = None
        self._queue: collections.deque[_Turn] = collections.deque()
        self._last_reply_intent: str | None = None
        self._listeners: list[Listener] = []
        self._disposed = False

        self._store.append(self._store.next_message(welcome_text(patient_id), ASSISTANT))
        self._store.add_listener(self._on_messages_changed)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def typing(self) -> bool:
        """True while a reply is on its way."""
        return self._active is not None or bool(self._queue)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._store.all()

    @property
    def suggestions(self) -> tuple[QuickSuggestion, ...]:
        return self._suggestions

    @property
    def symptoms(self) -> tuple[str, ...]:
        return self._symptoms.symptoms

    @property
    def disposed(self) -> bool:
        return self._disposed

    def snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            conversation_id=self.id,
            state=self._state,
            messages=self._store.all(),
            typing=self.typing,
            suggestions=self._suggestions,
            symptoms=self._symptoms.symptoms,
            disposed=self._disposed,
        )

    # ------------------------------------------------------------------
    # Host-facing operations
    # ------------------------------------------------------------------

    def submit_text(self, text: str) -> None:
        """Accept a user message. Blank text, and anything after dispose(), is ignored."""
        if not self._accepting_input("text"):
            return
        if not text or not text.strip():
            logger.debug("Conversation %s: ignoring blank message", self.id)
            return

        # The turn is classified against the symptoms reported before it.
        reported = self._symptoms.symptoms
        self._symptoms.record(text)
        self._queue.append(_Turn(_TEXT_TURN, text, reported))
        self._pump()
        self._append(text, USER)

    def submit_file(self, name: str) -> None:
        """Accept a file reference and acknowledge it after the file delay."""
        if not self._accepting_input("file"):
            return
        name = (name or "").strip()
        if not name:
            logger.debug("Conversation %s: ignoring blank file name", self.id)
            return

        self._queue.append(_Turn(_FILE_TURN, name))
        self._pump()
        self._append(f"Uploading: {name}", USER)

    def select_suggestion(self, label: str) -> None:
        """Send a quick suggestion as if the user had typed it."""
        self.submit_text(label)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Push a snapshot to listener on every change. Returns an unsubscribe function."""
        if self._disposed:
            return lambda: None
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    observe = subscribe

    def dispose(self) -> None:
        """Cancel pending replies and discard all conversation state. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        if self._active is not None:
            self._active.cancel()
            self._active = None
        dropped = len(self._queue)
        self._queue.clear()

        self._store.clear_listeners()
        self._store = MessageStore()
        self._symptoms = SymptomTracker()
        self._state = IDLE
        logger.info("Conversation %s disposed (%d queued turn(s) dropped)", self.id, dropped)

        self._notify()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------

    def _accepting_input(self, kind: str) -> bool:
        if self._disposed:
            logger.debug("Conversation %s: %s submitted after dispose, ignoring", self.id, kind)
            return False
        if not self._settings.allow_chat_after_redirect and self._state in _HANDOFF_STATES:
            logger.debug("Conversation %s: %s submitted after handoff, ignoring", self.id, kind)
            return False
        return True

    def _pump(self) -> bool:
        """Schedule the next queued turn if nothing is outstanding. Returns True if one started."""
        if self._disposed or self._active is not None or not self._queue:
            return False
        # Turns submitted mid-handoff wait for the redirect.
        if self._state in (HANDOFF_OFFERED, HANDOFF_IN_PROGRESS):
            return False
        turn = self._queue.popleft()
        self._state = AWAITING_REPLY

        if turn.kind == _FILE_TURN:
            self._active = self._scheduler.schedule(
                self._settings.file_ack_delay, lambda: self._publish_file_ack(turn),
            )
            return True

        text = turn.text[: self._settings.max_message_chars]
        intent = intents.classify(text, self._last_reply_intent, len(turn.symptoms))
        logger.debug("Conversation %s: classified %r as %s", self.id, text[:80], intent)
        self._active = self._scheduler.schedule(
            self._settings.reply_delay, lambda: self._publish_reply(turn, intent),
        )
        return True

    def _publish_reply(self, turn: _Turn, intent: str) -> None:
        self._active = None
        if self._disposed:
            return
        if intent == intents.CONFIRM_HANDOFF:
            self._begin_handoff()
            return

        replacement = suggestions_for(intent, len(turn.symptoms))
        if replacement is not None:
            self._suggestions = replacement
        self._last_reply_intent = intent
        self._state = IDLE
        self._pump()
        self._append(intents.reply_for(intent, turn.symptoms), ASSISTANT)

    def _publish_file_ack(self, turn: _Turn) -> None:
        self._active = None
        if self._disposed:
            return
        self._suggestions = FILE_SUGGESTIONS
        self._last_reply_intent = None
        self._state = IDLE
        self._pump()
        self._append(file_ack_text(turn.text), ASSISTANT)

    def _begin_handoff(self) -> None:
        logger.info("Conversation %s: handing off to a human representative", self.id)
        self._last_reply_intent = intents.CONFIRM_HANDOFF
        self._state = HANDOFF_OFFERED
        self._append(intents.reply_for(intents.CONFIRM_HANDOFF), ASSISTANT)
        if self._disposed:
            return
        # The follow-up is only created once the offer has been published.
        self._active = self._scheduler.schedule(self._settings.handoff_followup_delay, self._publish_redirect)
        self._state = HANDOFF_IN_PROGRESS
        self._notify()

    def _publish_redirect(self) -> None:
        self._active = None
        if self._disposed:
            return
        self._state = REDIRECTED
        self._append(intents.HANDOFF_FOLLOW_UP, ASSISTANT)
        logger.info("Conversation %s: redirected to virtual consultation", self.id)
        if self._pump():
            self._notify()

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------

    def _append(self, body: str, sender: str) -> None:
        self._store.append(self._store.next_message(body, sender))

    def _on_messages_changed(self, store: MessageStore) -> None:
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.warning("Conversation %s: listener failed", self.id, exc_info=True)

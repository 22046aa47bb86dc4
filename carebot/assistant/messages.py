"""Append-only message log for one conversation."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from carebot.log import logger

USER = "user"
ASSISTANT = "assistant"

_SENDERS = (USER, ASSISTANT)


@dataclass(frozen=True)
class Message:
    id: str
    body: str
    sender: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "body": self.body,
            "sender": self.sender,
            "created_at": self.created_at.isoformat(),
        }


class MessageStore:
    """Ordered log of exchanged messages. Messages are only ever appended.

    Listeners registered with add_listener() are called with the store after
    every append, so a host can re-render and scroll to the newest entry.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._listeners: list[Callable[[MessageStore], None]] = []
        self._ids = itertools.count(1)
        self._last_created: datetime | None = None

    def __len__(self) -> int:
        return len(self._messages)

    def next_message(self, body: str, sender: str) -> Message:
        """Build the next message with a fresh id and a non-decreasing timestamp."""
        if sender not in _SENDERS:
            raise ValueError(f"sender must be one of {_SENDERS}, got {sender!r}")
        now = datetime.now(timezone.utc)
        if self._last_created is not None and now < self._last_created:
            now = self._last_created
        self._last_created = now
        return Message(id=f"m{next(self._ids)}", body=body, sender=sender, created_at=now)

    def append(self, message: Message) -> None:
        if self._messages and message.created_at < self._messages[-1].created_at:
            raise ValueError("message timestamps must not go backwards")
        self._messages.append(message)
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.warning("Message store listener failed", exc_info=True)

    def all(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def last(self, sender: str | None = None) -> Message | None:
        """Newest message, optionally restricted to one sender."""
        for message in reversed(self._messages):
            if sender is None or message.sender == sender:
                return message
        return None

    def add_listener(self, listener: Callable[[MessageStore], None]) -> None:
        self._listeners.append(listener)

    def clear_listeners(self) -> None:
        self._listeners.clear()

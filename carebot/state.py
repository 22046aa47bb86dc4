"""Shared state for the HTTP host -- the live conversations, keyed by id.

Each entry records when it was last touched. Conversations idle for longer
than the TTL are disposed and dropped, and the registry refuses new
conversations past its capacity.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from carebot.assistant.conversation import AssistantSettings, Conversation
from carebot.log import logger


class RegistryFullError(RuntimeError):
    """Raised when no more conversations can be opened."""


class ConversationRegistry:
    """Singleton map of conversation id -> live Conversation."""

    _instance: ConversationRegistry | None = None
    _lock = threading.Lock()

    def __init__(self, ttl_seconds: float = 1800, max_conversations: int = 500) -> None:
        self._ttl = ttl_seconds
        self._max = max_conversations
        self._conversations: dict[str, Conversation] = {}
        self._last_seen: dict[str, float] = {}
        self._data_lock = threading.Lock()
        # Replaced in tests with a factory returning a ManualScheduler.
        self.scheduler_factory: Callable[[], object] | None = None
        self.settings: AssistantSettings | None = None

    @classmethod
    def get(cls) -> "ConversationRegistry":
        """Get or create the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls._create_from_config()
            return cls._instance

    @classmethod
    def _create_from_config(cls) -> "ConversationRegistry":
        try:
            from carebot.config.loader import get_server_config
            cfg = get_server_config()
            ttl = float(cfg.get("conversation_ttl_seconds", 1800))
            max_conversations = int(cfg.get("max_conversations", 500))
        except Exception:
            logger.debug("Config unavailable for ConversationRegistry, using defaults")
            ttl = 1800
            max_conversations = 500
        return cls(ttl_seconds=ttl, max_conversations=max_conversations)

    @classmethod
    def reset(cls) -> None:
        """Dispose every conversation and drop the singleton. Mainly for testing."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.dispose_all()
            cls._instance = None

    def __len__(self) -> int:
        with self._data_lock:
            return len(self._conversations)

    def create(self, patient_id: int | None = None) -> Conversation:
        """Open a conversation. Raises RegistryFullError at capacity."""
        with self._data_lock:
            self._expire()
            if len(self._conversations) >= self._max:
                raise RegistryFullError(f"conversation limit of {self._max} reached")
            scheduler = self.scheduler_factory() if self.scheduler_factory else None
            conversation = Conversation(patient_id=patient_id, scheduler=scheduler, settings=self.settings)
            self._conversations[conversation.id] = conversation
            self._last_seen[conversation.id] = time.time()
        logger.debug("Conversation %s opened (patient=%s)", conversation.id, patient_id)
        return conversation

    def lookup(self, conversation_id: str) -> Conversation | None:
        """Return a live conversation and mark it as recently used."""
        with self._data_lock:
            self._expire()
            conversation = self._conversations.get(conversation_id)
            if conversation is not None:
                self._last_seen[conversation_id] = time.time()
            return conversation

    def touch(self, conversation_id: str) -> bool:
        """Reset the idle timer without expiring anything. False if unknown."""
        with self._data_lock:
            if conversation_id not in self._conversations:
                return False
            self._last_seen[conversation_id] = time.time()
            return True

    def close(self, conversation_id: str) -> bool:
        """Dispose and forget a conversation. Returns False if it was unknown."""
        with self._data_lock:
            conversation = self._conversations.pop(conversation_id, None)
            self._last_seen.pop(conversation_id, None)
        if conversation is None:
            return False
        conversation.dispose()
        return True

    def dispose_all(self) -> None:
        with self._data_lock:
            conversations = list(self._conversations.values())
            self._conversations.clear()
            self._last_seen.clear()
        for conversation in conversations:
            conversation.dispose()

    def _expire(self) -> None:
        """Dispose conversations idle past the TTL. Caller holds _data_lock."""
        now = time.time()
        expired = [cid for cid, seen in self._last_seen.items() if now - seen > self._ttl]
        for cid in expired:
            conversation = self._conversations.pop(cid, None)
            del self._last_seen[cid]
            if conversation is not None:
                conversation.dispose()
        if expired:
            logger.info("Expired %d idle conversation(s)", len(expired))

"""Tests for the append-only message store."""

from datetime import timedelta

import pytest

from carebot.assistant.messages import ASSISTANT, USER, Message, MessageStore


def test_append_and_all():
    store = MessageStore()
    first = store.next_message("hello", USER)
    second = store.next_message("hi there", ASSISTANT)
    store.append(first)
    store.append(second)
    assert store.all() == (first, second)
    assert len(store) == 2


def test_ids_increase():
    store = MessageStore()
    ids = [store.next_message(str(i), USER).id for i in range(3)]
    assert ids == ["m1", "m2", "m3"]


def test_messages_are_frozen():
    message = MessageStore().next_message("hello", USER)
    with pytest.raises(Exception):
        message.body = "changed"


def test_unknown_sender_rejected():
    with pytest.raises(ValueError):
        MessageStore().next_message("hello", "doctor")


def test_timestamps_never_go_backwards():
    store = MessageStore()
    first = store.next_message("a", USER)
    store.append(first)
    older = Message(id="x", body="b", sender=USER, created_at=first.created_at - timedelta(seconds=5))
    with pytest.raises(ValueError):
        store.append(older)


def test_last():
    store = MessageStore()
    assert store.last() is None
    store.append(store.next_message("q", USER))
    store.append(store.next_message("a", ASSISTANT))
    assert store.last().body == "a"
    assert store.last(USER).body == "q"


def test_listeners_notified_on_append():
    store = MessageStore()
    seen = []
    store.add_listener(lambda s: seen.append(len(s)))
    store.append(store.next_message("a", USER))
    store.append(store.next_message("b", USER))
    assert seen == [1, 2]


def test_failing_listener_isolated():
    store = MessageStore()
    seen = []

    def boom(s):
        raise RuntimeError("nope")

    store.add_listener(boom)
    store.add_listener(lambda s: seen.append(len(s)))
    store.append(store.next_message("a", USER))
    assert seen == [1]
    assert len(store) == 1


def test_to_dict():
    message = MessageStore().next_message("hello", ASSISTANT)
    data = message.to_dict()
    assert data["id"] == "m1"
    assert data["body"] == "hello"
    assert data["sender"] == "assistant"
    assert "T" in data["created_at"]

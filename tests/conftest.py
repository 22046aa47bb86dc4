"""Shared fixtures for the Carebot test suite."""

import os
import tempfile

# Keep the suite away from the developer's own ~/.carebot config and logs.
_TEST_HOME = tempfile.mkdtemp(prefix="carebot-tests-")
os.environ["CAREBOT_HOME"] = _TEST_HOME
os.environ["CAREBOT_CONFIG"] = os.path.join(_TEST_HOME, "no-such-config.json")

import pytest
from fastapi.testclient import TestClient

from carebot.assistant.conversation import AssistantSettings, Conversation
from carebot.assistant.scheduler import ManualScheduler


def _reset_all_singletons():
    from carebot.config.loader import reset_config
    from carebot.state import ConversationRegistry
    ConversationRegistry.reset()
    reset_config()


@pytest.fixture(autouse=True, scope="module")
def _reset_singletons_between_modules():
    """Auto-reset the registry and cached config at the start of every test module."""
    _reset_all_singletons()
    yield
    _reset_all_singletons()


@pytest.fixture
def clock():
    """Virtual clock that drives every reply delay by hand."""
    return ManualScheduler()


@pytest.fixture
def settings():
    return AssistantSettings()


@pytest.fixture
def conversation(clock, settings):
    conv = Conversation(scheduler=clock, settings=settings)
    yield conv
    conv.dispose()


@pytest.fixture
def client(clock):
    """FastAPI TestClient whose conversations run on the virtual clock."""
    from carebot.api import app
    from carebot.state import ConversationRegistry
    ConversationRegistry.reset()
    ConversationRegistry.get().scheduler_factory = lambda: clock
    yield TestClient(app)
    ConversationRegistry.reset()

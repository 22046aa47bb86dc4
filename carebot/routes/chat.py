"""Conversation endpoints -- create, talk, attach files, stream, dispose.

All handlers are async so they run on the event loop thread that also fires
the assistant's reply timers.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import PurePath

from fastapi import APIRouter, Path, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from carebot.assistant.conversation import Conversation, ConversationSnapshot
from carebot.log import logger
from carebot.routes import error_response, sse_event
from carebot.state import ConversationRegistry, RegistryFullError

router = APIRouter(prefix="/conversations", tags=["conversations"])


class NewConversation(BaseModel):
    """Validated schema for opening a conversation."""
    patient_id: int | None = Field(default=None, ge=1)


class ChatMessage(BaseModel):
    """Validated schema for user messages."""
    message: str = Field(default="", max_length=10000)


class FileReference(BaseModel):
    """Validated schema for file attachments (name only, no upload body)."""
    filename: str = Field(..., min_length=1, max_length=255)


class SuggestionChoice(BaseModel):
    """Validated schema for a picked quick suggestion."""
    label: str = Field(..., min_length=1, max_length=500)


def _not_found(conversation_id: str) -> JSONResponse:
    return error_response(404, "Conversation not found", f"Conversation '{conversation_id}' does not exist")


def _accepted_extension(filename: str) -> bool:
    from carebot.config.loader import get_upload_config
    accepted = {ext.lower() for ext in get_upload_config().get("accepted_extensions", [])}
    if not accepted:
        return True
    return PurePath(filename).suffix.lower() in accepted


class SnapshotFeed:
    """Bridges conversation snapshots into an asyncio.Queue for streaming.

    The queue is bounded; when a slow client falls behind, the oldest
    snapshot is dropped since each snapshot supersedes the previous one.
    """

    def __init__(self, conversation: Conversation, max_pending: int = 100) -> None:
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=max_pending)
        self._unsubscribe = conversation.subscribe(self._push)

    def _push(self, snapshot: ConversationSnapshot) -> None:
        data = snapshot.to_dict()
        try:
            self.queue.put_nowait(data)
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.queue.put_nowait(data)

    def close(self) -> None:
        self._unsubscribe()


@router.post("", response_model=None)
async def create_conversation(body: NewConversation | None = None) -> dict | JSONResponse:
    """Open a conversation, optionally greeting a known patient."""
    patient_id = body.patient_id if body is not None else None
    try:
        conversation = ConversationRegistry.get().create(patient_id=patient_id)
    except RegistryFullError as exc:
        logger.warning("Refusing new conversation: %s", exc)
        return error_response(503, "Too many open conversations", str(exc))
    return conversation.snapshot().to_dict()


@router.get("/{conversation_id}", response_model=None)
async def get_conversation(conversation_id: str = Path(min_length=1, max_length=64)) -> dict | JSONResponse:
    conversation = ConversationRegistry.get().lookup(conversation_id)
    if conversation is None:
        return _not_found(conversation_id)
    return conversation.snapshot().to_dict()


@router.post("/{conversation_id}/messages", response_model=None)
async def post_message(body: ChatMessage, conversation_id: str = Path(min_length=1, max_length=64)) -> dict | JSONResponse:
    """Send user text. Blank text is accepted and ignored."""
    conversation = ConversationRegistry.get().lookup(conversation_id)
    if conversation is None:
        return _not_found(conversation_id)
    conversation.submit_text(body.message)
    return conversation.snapshot().to_dict()


@router.post("/{conversation_id}/files", response_model=None)
async def post_file(body: FileReference, conversation_id: str = Path(min_length=1, max_length=64)) -> dict | JSONResponse:
    """Attach a file by name. Only image, PDF and Word extensions are accepted."""
    conversation = ConversationRegistry.get().lookup(conversation_id)
    if conversation is None:
        return _not_found(conversation_id)
    if not _accepted_extension(body.filename):
        return error_response(400, "Unsupported file type", f"'{body.filename}' is not an accepted attachment")
    conversation.submit_file(body.filename)
    return conversation.snapshot().to_dict()


@router.post("/{conversation_id}/suggestions", response_model=None)
async def post_suggestion(body: SuggestionChoice, conversation_id: str = Path(min_length=1, max_length=64)) -> dict | JSONResponse:
    conversation = ConversationRegistry.get().lookup(conversation_id)
    if conversation is None:
        return _not_found(conversation_id)
    conversation.select_suggestion(body.label)
    return conversation.snapshot().to_dict()


@router.delete("/{conversation_id}", response_model=None)
async def delete_conversation(conversation_id: str = Path(min_length=1, max_length=64)) -> dict | JSONResponse:
    """Dispose a conversation, cancelling any reply still on its way."""
    if not ConversationRegistry.get().close(conversation_id):
        return _not_found(conversation_id)
    return {"status": "ok", "id": conversation_id}


async def snapshot_events(
    request: Request,
    registry: ConversationRegistry,
    conversation: Conversation,
) -> AsyncGenerator[str, None]:
    """Yield SSE 'snapshot' events until the conversation is disposed or the client leaves."""
    feed = SnapshotFeed(conversation)
    logger.debug("SSE client connected to conversation %s", conversation.id)
    try:
        yield ": connected\n\n"
        yield sse_event("snapshot", conversation.snapshot().to_dict())
        while not conversation.disposed:
            if await request.is_disconnected():
                break
            # An open stream counts as activity for idle expiry.
            registry.touch(conversation.id)
            try:
                data = await asyncio.wait_for(feed.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            yield sse_event("snapshot", data)
        # Drain the final disposed snapshot, if any
        while not feed.queue.empty():
            yield sse_event("snapshot", feed.queue.get_nowait())
    finally:
        feed.close()
        logger.debug("SSE client disconnected from conversation %s", conversation.id)


@router.get("/{conversation_id}/stream", response_model=None)
async def stream_conversation(request: Request, conversation_id: str = Path(min_length=1, max_length=64)) -> StreamingResponse | JSONResponse:
    """Server-Sent Events -- one 'snapshot' event per conversation change."""
    registry = ConversationRegistry.get()
    conversation = registry.lookup(conversation_id)
    if conversation is None:
        return _not_found(conversation_id)

    return StreamingResponse(
        snapshot_events(request, registry, conversation),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )

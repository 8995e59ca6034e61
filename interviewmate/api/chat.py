"""Chat API endpoints: streamed replies from an interview mate."""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from interviewmate.core.auth import AuthContext, ensure_authenticated, get_current_user, require_auth
from interviewmate.core.chat_stream import GenerationStreamController
from interviewmate.core.config import get_settings
from interviewmate.core.context_assembler import Persona, assemble_context
from interviewmate.core.conversation import ConversationKey
from interviewmate.core.errors import ConfigurationError, NotFoundError, ValidationError
from interviewmate.core.llm import AnthropicGenerationBackend, GenerationParams
from interviewmate.core.logging import get_logger, log_with_context
from interviewmate.core.memory_manager import MemoryManager, get_memory_manager
from interviewmate.core.persistence_worker import PersistenceJob
from interviewmate.core.schemas_chat import ChatRequest, DeleteMessageResponse
from interviewmate.db.interview_mates import get_interview_mate
from interviewmate.db.messages import create_message, delete_message, get_message, list_messages

logger = get_logger(__name__)

router = APIRouter()

USER_ROLE = "user"


async def _discard_user_turn(memory: MemoryManager, key: ConversationKey, entry_id: str) -> None:
    if not entry_id:
        return
    try:
        await memory.forget_entry(key, entry_id)
    except Exception as e:
        logger.error(f"Could not remove unrecorded user turn {entry_id} from {key.conversation_id}: {e}")


@router.post("/chat/{conversation_id}")
async def chat_with_interview_mate(
    conversation_id: str,
    request: ChatRequest,
    auth: Optional[AuthContext] = Depends(get_current_user),
    memory: MemoryManager = Depends(get_memory_manager),
) -> StreamingResponse:
    """
    Chat with an interview mate using streaming responses.

    This endpoint:
    1. Validates the prompt and the caller
    2. Applies the per-user rate limit
    3. Seeds a fresh transcript from the interview mate's example dialogue
    4. Records the user turn (transcript + message record)
    5. Assembles persona, recent window and sampled semantic context
    6. Streams the reply as Server-Sent Events; the completed reply is
       persisted in the background

    Args:
        conversation_id: Interview mate UUID
        request: Chat request with prompt and optional language code

    Returns:
        StreamingResponse with Server-Sent Events
    """
    prompt = (request.prompt or "").strip()
    if not prompt:
        raise ValidationError("Missing prompt")
    if not conversation_id.strip():
        raise ValidationError("Missing conversation id")

    user = ensure_authenticated(auth)
    settings = get_settings()

    if not settings.ANTHROPIC_API_KEY:
        raise ConfigurationError("Missing API Key")

    # Rate limiting (route + user), before anything is written
    await memory.rate_limiter.check(f"chat:{user.user_id}")

    mate = await asyncio.to_thread(get_interview_mate, conversation_id)
    if not mate:
        raise NotFoundError("Interview mate not found")

    key = ConversationKey(
        conversation_id=str(mate["id"]),
        user_id=user.user_id,
        model_name=settings.CHAT_MODEL,
    )

    if mate.get("seed"):
        await memory.seed_if_empty(key, mate["seed"])

    entry_id = await memory.record_user_turn(key, prompt)
    try:
        await asyncio.to_thread(
            create_message,
            content=prompt,
            role=USER_ROLE,
            user_id=user.user_id,
            interview_mate_id=key.conversation_id,
            model_name=key.model_name,
            transcript_entry_id=entry_id or None,
        )
    except Exception:
        # Without its record the user turn must not stay in the transcript
        await _discard_user_turn(memory, key, entry_id)
        raise

    history = await memory.recent_turns(key)
    matches = await memory.enrichment(key, history)

    context = assemble_context(
        persona=Persona(name=mate["name"], instruction=mate.get("instruction") or ""),
        history=history,
        user_message=prompt,
        matches=matches,
        language_code=request.lang,
    )

    log_with_context(
        logger,
        logging.INFO,
        "Starting chat stream",
        conversation_id=key.conversation_id,
        user_id=user.user_id,
        history_turns=len(history),
        matches=len(matches),
    )

    async def persist_reply(text: str) -> None:
        await memory.schedule_ai_turn(
            PersistenceJob(
                key=key,
                content=text,
                prompt=prompt,
                user_id=user.user_id,
                interview_mate_id=key.conversation_id,
            )
        )

    controller = GenerationStreamController(
        backend=AnthropicGenerationBackend(settings.ANTHROPIC_API_KEY),
        context=context,
        params=GenerationParams(
            model=settings.CHAT_MODEL,
            max_tokens=settings.CHAT_MAX_TOKENS,
            temperature=settings.CHAT_TEMPERATURE,
        ),
        on_complete=persist_reply,
        timeout_seconds=settings.CHAT_TIMEOUT_SECONDS,
        conversation_id=key.conversation_id,
    )

    return StreamingResponse(
        controller.stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/chat/{conversation_id}/messages")
async def get_chat_messages(
    conversation_id: str,
    auth: AuthContext = Depends(require_auth),
) -> Dict[str, Any]:
    """
    Get the caller's messages with one interview mate, oldest first.

    Args:
        conversation_id: Interview mate UUID

    Returns:
        List of messages
    """
    messages = await asyncio.to_thread(list_messages, conversation_id, auth.user_id)
    return {"messages": messages, "total": len(messages)}


@router.delete("/chat/message/{message_id}", response_model=DeleteMessageResponse)
async def delete_chat_message(
    message_id: str,
    auth: AuthContext = Depends(require_auth),
    memory: MemoryManager = Depends(get_memory_manager),
) -> DeleteMessageResponse:
    """
    Delete one of the caller's messages.

    The record is removed first. Its transcript entry is then removed
    best-effort, and the cached window is dropped so the next turn no longer
    sees the deleted line.
    """
    message = await asyncio.to_thread(get_message, message_id)
    if not message or str(message.get("user_id")) != auth.user_id:
        raise NotFoundError("Message not found")

    if not await asyncio.to_thread(delete_message, message_id, auth.user_id):
        raise NotFoundError("Message not found")

    entry_removed = False
    entry_id = message.get("transcript_entry_id")
    if entry_id:
        key = ConversationKey(
            conversation_id=str(message["interview_mate_id"]),
            user_id=auth.user_id,
            model_name=message.get("model_name") or get_settings().CHAT_MODEL,
        )
        try:
            entry_removed = await memory.forget_entry(key, entry_id)
        except Exception as e:
            logger.warning(f"Message {message_id} deleted but transcript entry {entry_id} was kept: {e}")

    return DeleteMessageResponse(id=message_id, transcript_entry_removed=entry_removed)

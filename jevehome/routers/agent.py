"""
Assistant chat widget endpoints (family + admin):
- GET /api/agent/config: widget configuration (welcome message, quick prompts, theme, tools)
- POST /api/agent/chat: streamed chat (SSE: chunk / done / error)
- GET /api/agent/conversations: caller's conversations, most recent first
- GET /api/agent/conversations/{id}/messages: all turns of one conversation, oldest first
- DELETE /api/agent/conversations/{id}: delete a conversation and its turns
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jevehome.auth import get_current_user_family
from jevehome.config import get_settings
from jevehome.core.errors import StorageUnavailable
from jevehome.database import get_db
from jevehome.models.user import User
from jevehome.repositories.config_repository import AGENT_NAMESPACE, TIMELINE_NAMESPACE, ConfigRepository
from jevehome.schemas.agent import (
    AgentChatRequest,
    AgentConversationOut,
    AgentMessageOut,
    AgentMessagesResponse,
    QuickPrompt,
    WidgetConfigResponse,
)
from jevehome.services.ai_service import GeminiChatProvider, get_chat_provider
from jevehome.services.ai_stream_service import ChatExchange, stream_chat_response
from jevehome.services.assistant_config import (
    Capability,
    resolve_assistant_config,
    resolve_timeline_overrides,
    resolve_widget_config,
)
from jevehome.services.chat_service import ChatService
from jevehome.services.prompt_builder import build_system_instruction
from jevehome.services.redis_chat_cache import RedisChatCache, get_chat_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent", tags=["agent"])


# ---------- Dependencies: Redis (optional) + ChatService (Cache-Aside) ----------


def _get_chat_service_dep(
    redis_cache: RedisChatCache | None = Depends(get_chat_cache),
) -> ChatService:
    """ChatService with optional Redis cache (Cache-Aside). DB is source of truth."""
    return ChatService(redis_cache=redis_cache)


def validate_message(message: str | None) -> str:
    """Trimmed message, or 400 before any conversation work happens."""
    text = (message or "").strip() if isinstance(message, str) else ""
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required.")
    max_chars = get_settings().chat_message_max_chars
    if len(text) > max_chars:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Message too long (max {max_chars} characters).",
        )
    return text


def read_config_rows(db: Session, namespace: str) -> dict[str, str]:
    """Config rows for a namespace; {} (all built-in defaults) when the store cannot be read."""
    try:
        return ConfigRepository.read_all(db, namespace)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Reading %s config failed, using defaults: %s", namespace, e)
        return {}


async def _read_namespace(db: Session, namespace: str) -> dict[str, str]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, read_config_rows, db, namespace)


def _storage_unavailable(e: StorageUnavailable) -> HTTPException:
    logger.error("Conversation storage unavailable: %s", e)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Conversation storage is unavailable. Please try again.",
    )


# ---------- Widget config ----------


@router.get("/config", response_model=WidgetConfigResponse)
def agent_widget_config(
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user_family),
):
    """Widget configuration loaded once when the chat panel opens."""
    widget = resolve_widget_config(
        read_config_rows(db, AGENT_NAMESPACE),
        default_model=get_settings().gemini_model,
    )
    return WidgetConfigResponse(
        model=widget.model,
        welcome_message=widget.welcome_message,
        max_history=widget.max_history,
        enabled_tools=sorted(widget.enabled_capabilities),
        quick_prompts=[QuickPrompt(**p) for p in widget.quick_prompts],
        widget_theme=widget.widget_theme,
    )


# ---------- Chat (stream) ----------


@router.post("/chat")
async def agent_chat(
    body: AgentChatRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_family),
    chat_service: ChatService = Depends(_get_chat_service_dep),
    provider: GeminiChatProvider = Depends(get_chat_provider),
):
    """
    Assistant chat with streaming response (Server-Sent Events).
    Errors before the stream starts are plain JSON responses; after that, a terminal error event.
    """
    message = validate_message(body.message)

    # 1) Resolve configuration (client-sent tool list replaces the stored one when non-empty)
    config = resolve_assistant_config(
        await _read_namespace(db, AGENT_NAMESPACE),
        default_model=get_settings().gemini_model,
    ).with_capabilities(body.enabled_tools)
    overrides = None
    if config.has(Capability.TIMELINE_CONTEXT):
        overrides = resolve_timeline_overrides(await _read_namespace(db, TIMELINE_NAMESPACE))
    instruction = build_system_instruction(config, overrides)

    # 2) Resolve or start the conversation
    conversation_id = (body.conversation_id or "").strip()
    is_new = False
    if conversation_id:
        try:
            exists = await chat_service.conversation_exists(db, conversation_id, user.id)
        except StorageUnavailable as e:
            raise _storage_unavailable(e) from e
        if not exists:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")
    else:
        try:
            conversation_id = await chat_service.start_conversation(db, user.id)
        except StorageUnavailable as e:
            logger.error("Could not start conversation for user %s: %s", user.id, e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Failed to start conversation.",
            ) from e
        is_new = True

    # 3) History before the new message, then persist the user turn (best-effort)
    history = []
    if config.has(Capability.CONVERSATION_HISTORY) and not is_new:
        try:
            history = await chat_service.get_history(db, conversation_id, config.max_history)
        except StorageUnavailable as e:
            raise _storage_unavailable(e) from e
    await chat_service.save_turn_best_effort(db, conversation_id, "user", message)

    exchange = ChatExchange(
        user_id=user.id,
        conversation_id=conversation_id,
        is_new=is_new,
        message=message,
        model=config.model,
        system_instruction=instruction,
        history=history,
    )
    return stream_chat_response(exchange, provider, chat_service)


# ---------- Conversations ----------


@router.get("/conversations", response_model=list[AgentConversationOut])
async def list_agent_conversations(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_family),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """Caller's conversations, most recently active first."""
    rows = await chat_service.list_conversations(db, user.id, get_settings().chat_conversation_list_limit)
    return [AgentConversationOut.model_validate(r) for r in rows]


@router.get("/conversations/{conversation_id}/messages", response_model=AgentMessagesResponse)
async def get_agent_conversation_messages(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_family),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """All turns of an owned conversation, oldest first."""
    try:
        exists = await chat_service.conversation_exists(db, conversation_id, user.id)
    except StorageUnavailable as e:
        raise _storage_unavailable(e) from e
    if not exists:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")
    messages = await chat_service.get_messages(db, conversation_id)
    return AgentMessagesResponse(
        conversation_id=conversation_id,
        messages=[AgentMessageOut(**m) for m in messages],
    )


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user_family),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """Delete an owned conversation; its turns go with it."""
    try:
        deleted = await chat_service.delete_conversation(db, conversation_id, user.id)
    except StorageUnavailable as e:
        raise _storage_unavailable(e) from e
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

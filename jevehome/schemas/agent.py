from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---- Chat (stream) ----

class AgentChatRequest(BaseModel):
    """Body of POST /api/agent/chat. Message emptiness/length is checked by the router, not here,
    so the caller gets "Message is required." / "Message too long" instead of a 422."""
    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    conversation_id: str | None = Field(None, alias="conversationId")
    enabled_tools: list[str] | None = Field(None, alias="enabledTools")


# ---- Conversations ----

class AgentConversationOut(BaseModel):
    id: str
    title: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AgentMessageOut(BaseModel):
    id: str
    role: str  # "user" | "assistant"
    content: str
    created_at: str | None = None


class AgentMessagesResponse(BaseModel):
    conversation_id: str
    messages: list[AgentMessageOut]


# ---- Widget config (client) ----

class QuickPrompt(BaseModel):
    label: str
    prompt: str


class WidgetConfigResponse(BaseModel):
    model: str
    welcome_message: str
    max_history: int
    enabled_tools: list[str]
    quick_prompts: list[QuickPrompt]
    widget_theme: dict[str, Any]


# ---- Admin config ----

class ConfigValueIn(BaseModel):
    """Strings are stored as-is; lists/objects/numbers are JSON-encoded."""
    value: Any


class ConfigEntryOut(BaseModel):
    namespace: str
    key: str
    value: str
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

"""
Chat widget controller: the state of one chat panel, without a DOM.

Panel states: CLOSED -> IDLE -> SENDING -> STREAMING -> IDLE, plus a history_visible flag
while open. At most one request is in flight; closing the panel cancels it. A reply with
no text yet is dropped; partial text stays visible, marked CANCELLED and never finalized.
A view renders `transcript` (TranscriptEntry.html) and reads `can_submit`,
`visible_quick_prompts`, `history_visible` and `conversation_groups()`.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from jevehome.client.api import ChatApiClient, ChatRequestRejected
from jevehome.utils.markdown import escape_html, format_text
from jevehome.utils.sse import ChunkEvent, DoneEvent, ErrorEvent, UnknownEvent

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."
INCOMPLETE_REPLY_MESSAGE = "The reply was interrupted. Please try again."

DEFAULT_WIDGET_CONFIG = {
    "model": "gemini-2.5-flash-lite",
    "welcome_message": "Hi! I'm your assistant for this site. Ask me anything about Jia & Vickey's journey ✨",
    "max_history": 20,
    "widget_theme": {"primaryColor": "#c8907e", "primaryDark": "#a86f5e"},
    "quick_prompts": [],
    "enabled_tools": ["timeline_context", "quick_prompts", "conversation_history", "general_knowledge"],
}


class PanelState(str, enum.Enum):
    CLOSED = "closed"
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"


class EntryStatus(str, enum.Enum):
    FINAL = "final"
    PENDING = "pending"  # typing indicator, nothing received yet
    STREAMING = "streaming"
    ERROR = "error"
    CANCELLED = "cancelled"  # panel closed mid-reply; partial text kept as-is


@dataclass
class TranscriptEntry:
    role: str  # "user" | "assistant"
    text: str = ""
    status: EntryStatus = EntryStatus.FINAL
    error: str | None = None

    @property
    def html(self) -> str:
        if self.status is EntryStatus.PENDING:
            return '<span class="agent-typing"><span></span><span></span><span></span></span>'
        body = format_text(self.text)
        if self.status is EntryStatus.ERROR and self.error and self.error != self.text:
            body += f'<div class="agent-bubble--error">{escape_html(self.error)}</div>'
        return body


def _date_label(when: datetime, today: datetime) -> str:
    diff = (today.date() - when.date()).days
    if diff <= 0:
        return "Today"
    if diff == 1:
        return "Yesterday"
    if diff <= 7:
        return "Last 7 days"
    if diff <= 30:
        return "Last 30 days"
    return when.strftime("%B %Y")


def group_conversations_by_date(conversations: list[dict], now: datetime | None = None) -> list[tuple[str, list[dict]]]:
    """[(label, conversations)] keeping list order; labels Today/Yesterday/Last 7 days/Last 30 days/Month YYYY."""
    now = now or datetime.now()
    groups: dict[str, list[dict]] = {}
    for conv in conversations:
        raw = conv.get("updated_at") or conv.get("created_at")
        try:
            when = datetime.fromisoformat(raw) if isinstance(raw, str) else raw
        except ValueError:
            when = None
        label = _date_label(when, now) if isinstance(when, datetime) else "Older"
        groups.setdefault(label, []).append(conv)
    return list(groups.items())


class ChatController:
    def __init__(self, api: ChatApiClient):
        self.api = api
        self.state = PanelState.CLOSED
        self.history_visible = False
        self.transcript: list[TranscriptEntry] = []
        self.conversation_id: str | None = None
        self.conversations: list[dict] = []
        self.config: dict = dict(DEFAULT_WIDGET_CONFIG)
        self.config_loaded = False
        self.quick_prompts_shown = True
        self._inflight: asyncio.Task | None = None
        self._cancelled = False

    # ---------- state ----------

    @property
    def is_open(self) -> bool:
        return self.state is not PanelState.CLOSED

    @property
    def is_busy(self) -> bool:
        return self.state in (PanelState.SENDING, PanelState.STREAMING)

    @property
    def can_submit(self) -> bool:
        return self.is_open and not self.is_busy

    @property
    def enabled_tools(self) -> list[str]:
        return list(self.config.get("enabled_tools") or [])

    @property
    def visible_quick_prompts(self) -> list[dict]:
        if not self.quick_prompts_shown or "quick_prompts" not in self.enabled_tools:
            return []
        return list(self.config.get("quick_prompts") or [])

    def _append(self, role: str, text: str, status: EntryStatus = EntryStatus.FINAL) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, text=text, status=status)
        self.transcript.append(entry)
        return entry

    def _append_welcome(self) -> None:
        self._append("assistant", self.config.get("welcome_message") or DEFAULT_WIDGET_CONFIG["welcome_message"])

    # ---------- open / close ----------

    async def load_config(self) -> None:
        """Fetch widget config once; on failure keep the defaults."""
        if self.config_loaded:
            return
        try:
            data = await self.api.load_config()
            if isinstance(data, dict):
                self.config.update({k: v for k, v in data.items() if v is not None})
        except (ChatRequestRejected, httpx.HTTPError, ValueError) as e:
            logger.warning("Chat widget config load failed: %s", e)
        self.config_loaded = True

    async def open(self) -> None:
        if self.is_open:
            return
        await self.load_config()
        self.state = PanelState.IDLE
        if not self.transcript:
            self._append_welcome()

    def close(self) -> None:
        """Close the panel; an in-flight reply is cancelled (partial text is kept, not finalized)."""
        if not self.is_open:
            return
        self.state = PanelState.CLOSED
        self.history_visible = False
        if self._inflight is not None and not self._inflight.done():
            self._cancelled = True
            self._inflight.cancel()

    # ---------- send ----------

    async def send(self, text: str) -> bool:
        """Submit a message and consume the streamed reply. False if ignored (busy, closed, empty)."""
        if not self.can_submit:
            return False
        text = (text or "").strip()
        if not text:
            return False

        self._append("user", text)
        self.quick_prompts_shown = False
        entry = self._append("assistant", "", EntryStatus.PENDING)
        self.state = PanelState.SENDING
        self._cancelled = False
        self._inflight = asyncio.ensure_future(self._stream_reply(text, entry))
        try:
            await self._inflight
        except asyncio.CancelledError:
            if not self._cancelled:
                raise
            if not entry.text and entry in self.transcript:
                self.transcript.remove(entry)
            elif entry.status is not EntryStatus.FINAL:
                entry.status = EntryStatus.CANCELLED
        finally:
            self._inflight = None
            if self.is_busy:
                self.state = PanelState.IDLE
        return True

    async def send_quick_prompt(self, index: int) -> bool:
        prompts = self.visible_quick_prompts
        if not 0 <= index < len(prompts):
            return False
        return await self.send(prompts[index].get("prompt", ""))

    def _fail(self, entry: TranscriptEntry, message: str) -> None:
        entry.status = EntryStatus.ERROR
        entry.error = message
        if not entry.text:
            entry.text = message

    async def _stream_reply(self, text: str, entry: TranscriptEntry) -> None:
        streamed = ""
        try:
            async for event in self.api.stream_chat(text, self.conversation_id, self.enabled_tools):
                if isinstance(event, ChunkEvent):
                    self.state = PanelState.STREAMING
                    streamed += event.text
                    entry.text = streamed
                    entry.status = EntryStatus.STREAMING
                elif isinstance(event, DoneEvent):
                    self.conversation_id = event.conversation_id or self.conversation_id
                    entry.text = streamed or "Done."
                    entry.status = EntryStatus.FINAL
                    return
                elif isinstance(event, ErrorEvent):
                    self._fail(entry, event.error)
                    return
                elif isinstance(event, UnknownEvent):
                    continue
            self._fail(entry, INCOMPLETE_REPLY_MESSAGE)
        except ChatRequestRejected as e:
            self._fail(entry, str(e))
        except httpx.HTTPError as e:
            logger.warning("Chat request failed: %s", e)
            self._fail(entry, GENERIC_ERROR_MESSAGE)

    # ---------- conversations ----------

    async def refresh_conversations(self) -> list[dict]:
        try:
            self.conversations = await self.api.list_conversations()
        except (ChatRequestRejected, httpx.HTTPError) as e:
            logger.warning("Failed to load conversations: %s", e)
        return self.conversations

    def conversation_groups(self, now: datetime | None = None) -> list[tuple[str, list[dict]]]:
        return group_conversations_by_date(self.conversations, now)

    async def toggle_history(self) -> None:
        if not self.is_open:
            return
        if self.history_visible:
            self.history_visible = False
            return
        self.history_visible = True
        await self.refresh_conversations()

    async def select_conversation(self, conversation_id: str) -> bool:
        """Replace the transcript with a stored conversation and make it active."""
        if self.is_busy or not conversation_id:
            return False
        try:
            messages = await self.api.get_messages(conversation_id)
        except (ChatRequestRejected, httpx.HTTPError) as e:
            logger.warning("Failed to load conversation %s: %s", conversation_id, e)
            return False
        self.transcript = [TranscriptEntry(role=m["role"], text=m.get("content", "")) for m in messages]
        self.conversation_id = conversation_id
        self.quick_prompts_shown = False
        self.history_visible = False
        return True

    async def delete_conversation(self, conversation_id: str) -> bool:
        try:
            await self.api.delete_conversation(conversation_id)
        except (ChatRequestRejected, httpx.HTTPError) as e:
            logger.warning("Delete conversation %s failed: %s", conversation_id, e)
            return False
        self.conversations = [c for c in self.conversations if c.get("id") != conversation_id]
        if self.conversation_id == conversation_id:
            self.start_new_conversation()
        return True

    def start_new_conversation(self) -> bool:
        """Clear the transcript; the next send creates a conversation server-side."""
        if self.is_busy:
            return False
        self.conversation_id = None
        self.transcript = []
        self.quick_prompts_shown = True
        self._append_welcome()
        self.history_visible = False
        return True

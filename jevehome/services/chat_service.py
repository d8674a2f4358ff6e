"""
Conversation orchestration: AgentConversation + AgentMessage persistence, Cache-Aside over DB + Redis.
- Save user turn before streaming; save assistant turn after streaming.
- History: try Redis; on miss load from DB, warm Redis, return.
- Ownership: lookups for a client-supplied id are scoped to the caller (conversation.user_id).
- Best-effort helpers log StorageUnavailable and return False instead of raising.
"""
import asyncio
import logging

from sqlalchemy.orm import Session

from jevehome.core.errors import StorageUnavailable
from jevehome.repositories.chat_repository import ChatRepository
from jevehome.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)


class ChatService:
    """Orchestrates conversation storage: DB as source of truth, Redis as cache (Cache-Aside)."""

    def __init__(
        self,
        redis_cache: RedisChatCache | None,
        repository: ChatRepository | None = None,
    ):
        self._cache = redis_cache
        self._repo = repository or ChatRepository()

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    async def start_conversation(self, db: Session, user_id: str) -> str:
        """Create a conversation for user_id. Raises StorageUnavailable."""
        return await self._run(self._repo.create_conversation, db, user_id)

    async def conversation_exists(self, db: Session, conversation_id: str, user_id: str) -> bool:
        """True if the conversation exists and belongs to user_id. Raises StorageUnavailable."""
        conv = await self._run(self._repo.get_conversation, db, conversation_id, user_id)
        return conv is not None

    async def get_history(self, db: Session, conversation_id: str, limit: int) -> list[dict]:
        """
        Cache-Aside: try Redis first; on miss load from DB, warm Redis, return.
        Returns the last `limit` turns, oldest-first (for Gemini context). Raises StorageUnavailable.
        """
        if limit <= 0:
            return []
        if self._cache:
            messages = await self._cache.get_last_turns(conversation_id, limit)
            if messages is not None:
                return messages
            if limit <= self._cache.limit:
                messages = await self._run(self._repo.list_turns, db, conversation_id, self._cache.limit)
                if messages:
                    await self._cache.warm(conversation_id, messages)
                return messages[-limit:]
        return await self._run(self._repo.list_turns, db, conversation_id, limit)

    async def save_turn(self, db: Session, conversation_id: str, role: str, content: str) -> None:
        """Append one turn. DB first, then best-effort Redis append. Raises StorageUnavailable."""
        await self._run(self._repo.append_turn, db, conversation_id, role, content)
        if self._cache:
            await self._cache.append_turn(conversation_id, {"role": role, "content": content})

    async def save_turn_best_effort(self, db: Session, conversation_id: str, role: str, content: str) -> bool:
        """save_turn that logs and continues on storage failure."""
        try:
            await self.save_turn(db, conversation_id, role, content)
            return True
        except StorageUnavailable as e:
            logger.warning("Saving %s turn for conversation %s failed: %s", role, conversation_id, e)
            return False

    async def touch(self, db: Session, conversation_id: str) -> bool:
        """Bump last-activity timestamp; best-effort."""
        try:
            await self._run(self._repo.touch_conversation, db, conversation_id)
            return True
        except StorageUnavailable as e:
            logger.warning("Touching conversation %s failed: %s", conversation_id, e)
            return False

    async def set_title(self, db: Session, conversation_id: str, title: str) -> bool:
        """Set the title if the conversation has none yet. Raises StorageUnavailable."""
        return await self._run(self._repo.set_title, db, conversation_id, title)

    async def list_conversations(self, db: Session, user_id: str, limit: int = 50) -> list:
        return await self._run(self._repo.list_conversations, db, user_id, limit)

    async def get_messages(self, db: Session, conversation_id: str) -> list[dict]:
        """Every turn of the conversation for display, oldest-first."""
        return await self._run(self._repo.get_messages_ordered, db, conversation_id)

    async def delete_conversation(self, db: Session, conversation_id: str, user_id: str) -> bool:
        """Delete an owned conversation (turns cascade) and drop its cache entry."""
        deleted = await self._run(self._repo.delete_conversation, db, conversation_id, user_id)
        if deleted and self._cache:
            await self._cache.invalidate(conversation_id)
        return deleted

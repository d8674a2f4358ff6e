"""
Redis cache for assistant conversation turns. Cache-Aside: Redis is read-through cache only.
All Redis errors are handled internally; never raise to caller. System works if Redis is down.
Key: agent:chat:{conversation_id} - Redis LIST of JSON strings, last CACHE_LIMIT turns, TTL 1 day.
get_chat_cache() / close_chat_cache() own the process-wide client.
"""
import json
import logging
import time
from typing import Any

from jevehome.config import get_settings

logger = logging.getLogger(__name__)

CHAT_KEY_PREFIX = "agent:chat:"
# Keep last N in LIST (LTRIM -N -1)
CACHE_LIMIT = 100


def _key(conversation_id: str) -> str:
    return f"{CHAT_KEY_PREFIX}{conversation_id}"


def _serialize(message: dict) -> str:
    return json.dumps({"role": message["role"], "content": message.get("content", "")})


def _deserialize(s: str) -> dict | None:
    try:
        data = json.loads(s)
        if isinstance(data, dict) and "role" in data:
            return {"role": data["role"], "content": data.get("content", "")}
    except (json.JSONDecodeError, TypeError):
        pass
    return None


class RedisChatCache:
    """
    Async Redis cache for conversation turns. LIST-based: RPUSH, LTRIM, EXPIRE.
    All methods swallow Redis errors and log; caller gets None or no-op on failure.
    """

    def __init__(self, redis_client: Any, ttl_seconds: int | None = None, limit: int = CACHE_LIMIT):
        self._redis = redis_client
        self._ttl = ttl_seconds or get_settings().chat_cache_ttl_seconds
        self.limit = limit

    async def get_last_turns(self, conversation_id: str, limit: int) -> list[dict] | None:
        """
        Cache-Aside read: LRANGE agent:chat:{id} -limit -1.
        Returns list of {role, content} oldest-first, or None on miss/error (caller should hit DB).
        """
        if not self._redis or limit > self.limit:
            return None
        if limit <= 0:
            return []
        try:
            raw_list = await self._redis.lrange(_key(conversation_id), -limit, -1)
            if not raw_list:
                return None
            out = []
            for item in raw_list:
                s = item.decode() if isinstance(item, bytes) else item
                m = _deserialize(s)
                if m:
                    out.append(m)
            return out if out else None
        except Exception as e:
            logger.warning("Redis chat cache get failed for conversation %s: %s", conversation_id, e, exc_info=False)
            return None

    async def append_turn(self, conversation_id: str, message: dict) -> None:
        """
        After DB save: RPUSHX one turn (only when the list is already warm), LTRIM, EXPIRE.
        A cold key stays cold so the next read reloads the full history from the DB.
        """
        if not self._redis:
            return
        try:
            key = _key(conversation_id)
            length = await self._redis.rpushx(key, _serialize(message))
            if length:
                await self._redis.ltrim(key, -self.limit, -1)
                await self._redis.expire(key, self._ttl)
        except Exception as e:
            logger.warning("Redis chat cache append failed for conversation %s: %s", conversation_id, e, exc_info=False)

    async def warm(self, conversation_id: str, messages: list[dict]) -> None:
        """Cache-Aside warm on DB miss: replace list with the turns from DB, set EXPIRE."""
        if not self._redis or not messages:
            return
        try:
            key = _key(conversation_id)
            pipe = self._redis.pipeline()
            pipe.delete(key)  # start fresh so order is correct
            for m in messages:
                pipe.rpush(key, _serialize(m))
            pipe.ltrim(key, -self.limit, -1)
            pipe.expire(key, self._ttl)
            await pipe.execute()
        except Exception as e:
            logger.warning("Redis chat cache warm failed for conversation %s: %s", conversation_id, e, exc_info=False)

    async def invalidate(self, conversation_id: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(_key(conversation_id))
        except Exception as e:
            logger.warning("Redis chat cache delete failed for conversation %s: %s", conversation_id, e, exc_info=False)


# ---------- Shared connection ----------
# One client per process. After a failed connect the cache stays off for
# redis_retry_seconds so a Redis outage costs one ping per window, not one per request.

_client: Any = None
_retry_after: float = 0.0


async def get_chat_cache() -> RedisChatCache | None:
    """Conversation cache for this request, or None when Redis is disabled or unreachable."""
    global _client, _retry_after
    if _client is not None:
        return RedisChatCache(_client)
    settings = get_settings()
    url = (settings.redis_url or "").strip()
    if not url or time.monotonic() < _retry_after:
        return None
    try:
        from redis.asyncio import Redis
        client = Redis.from_url(url, decode_responses=True)
        await client.ping()
    except Exception as e:
        _retry_after = time.monotonic() + settings.redis_retry_seconds
        logger.warning(
            "Redis unreachable, conversation cache off for %ss: %s", settings.redis_retry_seconds, e
        )
        return None
    _client = client
    logger.info("Conversation cache connected to %s", url.rsplit("@", 1)[-1])
    return RedisChatCache(_client)


async def close_chat_cache() -> None:
    """App shutdown: drop the shared client."""
    global _client, _retry_after
    client, _client, _retry_after = _client, None, 0.0
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as e:
        logger.warning("Closing Redis client failed: %s", e)

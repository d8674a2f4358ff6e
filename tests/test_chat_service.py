import asyncio
import json
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from redis.asyncio import Redis

from jevehome.core.errors import StorageUnavailable
from jevehome.models import AgentConversation, AgentMessage
from jevehome.repositories.chat_repository import ChatRepository
from jevehome.services import redis_chat_cache
from jevehome.services.chat_service import ChatService
from jevehome.services.redis_chat_cache import RedisChatCache, close_chat_cache, get_chat_cache


class FakeRedis:
    """Just enough of redis.asyncio for the LIST commands the chat cache uses."""

    def __init__(self):
        self.lists: dict[str, list[str]] = {}
        self.ttl: dict[str, int] = {}

    @staticmethod
    def _slice(items, start, end):
        n = len(items)
        start = max(n + start, 0) if start < 0 else start
        end = n + end if end < 0 else end
        return items[start:end + 1]

    async def lrange(self, key, start, end):
        return self._slice(self.lists.get(key, []), start, end)

    async def rpushx(self, key, value):
        if key not in self.lists:
            return 0
        self.lists[key].append(value)
        return len(self.lists[key])

    def _trim(self, key, start, end):
        if key in self.lists:
            self.lists[key] = self._slice(self.lists[key], start, end)

    async def ltrim(self, key, start, end):
        self._trim(key, start, end)

    async def expire(self, key, seconds):
        self.ttl[key] = seconds

    async def delete(self, key):
        self.lists.pop(key, None)

    def pipeline(self):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def delete(self, key):
        self._ops.append(lambda: self._redis.lists.pop(key, None))

    def rpush(self, key, value):
        self._ops.append(lambda: self._redis.lists.setdefault(key, []).append(value))

    def ltrim(self, key, start, end):
        self._ops.append(lambda: self._redis._trim(key, start, end))

    def expire(self, key, seconds):
        self._ops.append(lambda: self._redis.ttl.__setitem__(key, seconds))

    async def execute(self):
        for op in self._ops:
            op()


class BrokenRedis:
    async def lrange(self, *args):
        raise ConnectionError("redis is down")

    async def rpushx(self, *args):
        raise ConnectionError("redis is down")

    def pipeline(self):
        raise ConnectionError("redis is down")


@pytest.fixture
def conversation(db, family_user):
    return ChatRepository.create_conversation(db, family_user.id)


def _run(coro):
    return asyncio.run(coro)


def test_set_title_only_once(db, conversation):
    assert ChatRepository.set_title(db, conversation, "First") is True
    assert ChatRepository.set_title(db, conversation, "Second") is False

    db.expire_all()
    assert db.get(AgentConversation, conversation).title == "First"


def test_delete_removes_turns_and_checks_owner(db, family_user, make_user, conversation):
    ChatRepository.append_turn(db, conversation, "user", "hi")
    ChatRepository.append_turn(db, conversation, "assistant", "hello")
    stranger = make_user("family", email="stranger@example.com")

    assert ChatRepository.delete_conversation(db, conversation, stranger.id) is False
    assert ChatRepository.delete_conversation(db, conversation, family_user.id) is True
    assert db.query(AgentMessage).count() == 0
    assert ChatRepository.get_conversation(db, conversation) is None


def test_list_turns_returns_last_n_oldest_first(db, conversation):
    start = datetime(2024, 5, 1)
    for i in range(5):
        db.add(AgentMessage(conversation_id=conversation, role="user", content=str(i),
                            created_at=start + timedelta(seconds=i)))
    db.commit()

    assert [t["content"] for t in ChatRepository.list_turns(db, conversation, 3)] == ["2", "3", "4"]
    assert ChatRepository.list_turns(db, conversation, 0) == []


def test_list_conversations_most_recent_first(db, family_user):
    older = ChatRepository.create_conversation(db, family_user.id)
    newer = ChatRepository.create_conversation(db, family_user.id)
    ChatRepository.touch_conversation(db, older)

    ids = [c.id for c in ChatRepository.list_conversations(db, family_user.id)]
    assert ids == [older, newer]


def test_append_turn_to_missing_conversation_raises(db):
    with pytest.raises(StorageUnavailable):
        ChatRepository.append_turn(db, "missing-conversation", "user", "hi")


def test_best_effort_save_swallows_storage_errors(db):
    service = ChatService(redis_cache=None)

    assert _run(service.save_turn_best_effort(db, "missing-conversation", "user", "hi")) is False


def test_history_cache_miss_warms_from_db(db, conversation):
    redis = FakeRedis()
    service = ChatService(redis_cache=RedisChatCache(redis, ttl_seconds=60))
    for i in range(4):
        _run(service.save_turn(db, conversation, "user", f"m{i}"))

    # cold key: appends must not create a partial list
    assert redis.lists == {}

    history = _run(service.get_history(db, conversation, 2))
    assert [t["content"] for t in history] == ["m2", "m3"]
    cached = [json.loads(s)["content"] for s in redis.lists[f"agent:chat:{conversation}"]]
    assert cached == ["m0", "m1", "m2", "m3"]
    assert redis.ttl[f"agent:chat:{conversation}"] == 60

    _run(service.save_turn(db, conversation, "assistant", "m4"))
    history = _run(service.get_history(db, conversation, 3))
    assert [t["content"] for t in history] == ["m2", "m3", "m4"]


def test_history_survives_redis_outage(db, conversation):
    service = ChatService(redis_cache=RedisChatCache(BrokenRedis(), ttl_seconds=60))
    _run(service.save_turn(db, conversation, "user", "still stored"))

    history = _run(service.get_history(db, conversation, 5))

    assert history == [{"role": "user", "content": "still stored"}]


def test_delete_invalidates_cache(db, family_user, conversation):
    redis = FakeRedis()
    service = ChatService(redis_cache=RedisChatCache(redis, ttl_seconds=60))
    _run(service.save_turn(db, conversation, "user", "hi"))
    _run(service.get_history(db, conversation, 5))
    assert f"agent:chat:{conversation}" in redis.lists

    assert _run(service.delete_conversation(db, conversation, family_user.id)) is True
    assert redis.lists == {}


class _ConnectingRedis:
    def __init__(self, reachable):
        self.reachable = reachable
        self.closed = False

    async def ping(self):
        if not self.reachable:
            raise ConnectionError("connection refused")
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def redis_settings(monkeypatch):
    settings = SimpleNamespace(redis_url="redis://cache:6379/0", redis_retry_seconds=30, chat_cache_ttl_seconds=60)
    monkeypatch.setattr(redis_chat_cache, "get_settings", lambda: settings)
    yield settings
    asyncio.run(redis_chat_cache.close_chat_cache())


def _patch_from_url(monkeypatch, client):
    calls = []

    def from_url(url, **kwargs):
        calls.append(url)
        return client

    monkeypatch.setattr(Redis, "from_url", staticmethod(from_url))
    return calls


def test_unreachable_redis_is_not_retried_every_request(redis_settings, monkeypatch):
    calls = _patch_from_url(monkeypatch, _ConnectingRedis(reachable=False))

    assert asyncio.run(get_chat_cache()) is None
    assert asyncio.run(get_chat_cache()) is None
    assert calls == ["redis://cache:6379/0"]


def test_reachable_redis_is_shared_and_closed_on_shutdown(redis_settings, monkeypatch):
    client = _ConnectingRedis(reachable=True)
    calls = _patch_from_url(monkeypatch, client)

    first = asyncio.run(get_chat_cache())
    second = asyncio.run(get_chat_cache())

    assert isinstance(first, RedisChatCache) and isinstance(second, RedisChatCache)
    assert len(calls) == 1
    asyncio.run(close_chat_cache())
    assert client.closed is True


def test_cache_disabled_without_url(redis_settings):
    redis_settings.redis_url = ""

    assert asyncio.run(get_chat_cache()) is None

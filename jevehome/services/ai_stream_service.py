"""
Streaming side of the assistant chat (Server-Sent Events).

Gemini's sync stream runs in a worker thread and hands deltas to the event loop through
an asyncio.Queue; each delta is relayed as a "chunk" event as soon as it arrives. The
exchange ends with exactly one terminal event: "done" (reply persisted, conversation id
attached) or "error" (provider failure or hard timeout). When the client goes away the
generator is closed, the provider stream is closed where it allows it, and the worker stops
pulling from Gemini at its next delta. The Gemini client carries an HTTP timeout equal to the
exchange ceiling, so a stalled stream cannot hold the worker past it.
Title generation for new conversations runs as a background task after the body is sent.
"""
import asyncio
import enum
import logging
import threading
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from jevehome.config import get_settings
from jevehome.database import SessionLocal
from jevehome.services.ai_service import GeminiChatProvider
from jevehome.services.chat_service import ChatService
from jevehome.utils.sse import ChunkEvent, DoneEvent, ErrorEvent, encode_event

logger = logging.getLogger(__name__)

PROVIDER_ERROR_MESSAGE = "AI service temporarily unavailable. Please try again."
TIMEOUT_ERROR_MESSAGE = "Request timed out."
EMPTY_REPLY_FALLBACK = "I had trouble generating a response. Please try again."
FINALIZE_ERROR_MESSAGE = "Your reply could not be saved. Please try again."

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ExchangeState(str, enum.Enum):
    GENERATING = "generating"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass
class ChatExchange:
    """One request/response pair, from the moment the conversation is resolved."""
    user_id: str
    conversation_id: str
    is_new: bool
    message: str
    model: str
    system_instruction: str
    history: list[dict] = field(default_factory=list)
    state: ExchangeState = ExchangeState.GENERATING
    reply: str = ""


_END = object()


def _sync_producer(
    provider: GeminiChatProvider,
    exchange: ChatExchange,
    queue: asyncio.Queue,
    loop: asyncio.AbstractEventLoop,
    stop: threading.Event,
    streams: list,
) -> None:
    """
    Run in thread: sync Gemini stream; put each delta into queue via loop.
    Puts _END when stream ends, or an Exception on error. Stops early once `stop` is set.
    The open stream is published in `streams` so the consumer can close it.
    """

    def put(item) -> None:
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            # Event loop already closed; nobody is listening any more
            stop.set()

    stream = None
    try:
        stream = provider.stream_reply(
            exchange.model,
            exchange.system_instruction,
            exchange.history,
            exchange.message,
        )
        streams.append(stream)
        if stop.is_set():
            return
        for delta in stream:
            if stop.is_set():
                logger.info("Stopping Gemini stream for conversation %s (consumer gone)", exchange.conversation_id)
                return
            put(delta)
        put(_END)
    except Exception as e:
        logger.exception("Gemini stream producer failed")
        put(e)
    finally:
        _close_stream(stream)


def _close_stream(stream) -> None:
    """Close a provider stream if it can be closed. A generator still running in the worker
    refuses (ValueError); the stop flag and the client HTTP timeout end that one."""
    close = getattr(stream, "close", None)
    if not callable(close):
        return
    try:
        close()
    except (ValueError, RuntimeError) as e:
        logger.debug("Provider stream not closable from here: %s", e)


async def _finalize(exchange: ChatExchange, chat_service: ChatService) -> None:
    """Persist the assistant turn and bump activity. Fresh DB session: the request one may be gone."""
    db = SessionLocal()
    try:
        await chat_service.save_turn_best_effort(
            db, exchange.conversation_id, "assistant", exchange.reply or EMPTY_REPLY_FALLBACK
        )
        await chat_service.touch(db, exchange.conversation_id)
    finally:
        db.close()


async def stream_chat_events(
    exchange: ChatExchange,
    provider: GeminiChatProvider,
    chat_service: ChatService,
    timeout_seconds: float | None = None,
) -> AsyncGenerator[str, None]:
    """
    Async generator of SSE records for one exchange. Always ends with a done or error
    record unless the client disconnected first.
    """
    if timeout_seconds is None:
        timeout_seconds = get_settings().chat_timeout_seconds

    queue: asyncio.Queue = asyncio.Queue()
    loop = asyncio.get_running_loop()
    stop = threading.Event()
    deadline = loop.time() + timeout_seconds
    streams: list = []
    loop.run_in_executor(None, _sync_producer, provider, exchange, queue, loop, stop, streams)

    parts: list[str] = []
    try:
        while True:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                item = await asyncio.wait_for(queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning(
                    "Chat stream for conversation %s exceeded %.0fs", exchange.conversation_id, timeout_seconds
                )
                exchange.state = ExchangeState.ERRORED
                yield encode_event(ErrorEvent(error=TIMEOUT_ERROR_MESSAGE))
                return
            if item is _END:
                break
            if isinstance(item, Exception):
                exchange.state = ExchangeState.ERRORED
                yield encode_event(ErrorEvent(error=PROVIDER_ERROR_MESSAGE))
                return
            exchange.state = ExchangeState.STREAMING
            parts.append(item)
            yield encode_event(ChunkEvent(text=item))

        exchange.state = ExchangeState.FINALIZING
        exchange.reply = "".join(parts)
        try:
            await _finalize(exchange, chat_service)
        except Exception:
            logger.exception("Finalizing chat exchange for conversation %s failed", exchange.conversation_id)
            exchange.state = ExchangeState.ERRORED
            yield encode_event(ErrorEvent(error=FINALIZE_ERROR_MESSAGE))
            return
        exchange.state = ExchangeState.CLOSED
        yield encode_event(DoneEvent(conversation_id=exchange.conversation_id, is_new=exchange.is_new))
    except (asyncio.CancelledError, GeneratorExit):
        if exchange.state not in (ExchangeState.CLOSED, ExchangeState.ERRORED):
            logger.info("Client disconnected from chat stream for conversation %s", exchange.conversation_id)
            exchange.state = ExchangeState.ERRORED
        raise
    finally:
        stop.set()
        for stream in streams:
            _close_stream(stream)


async def generate_title_in_background(
    exchange: ChatExchange,
    provider: GeminiChatProvider,
    chat_service: ChatService,
) -> None:
    """
    One-shot title for a conversation created by this exchange. Runs after the response;
    every failure is logged and dropped.
    """
    if not exchange.is_new or exchange.state is not ExchangeState.CLOSED or not exchange.reply:
        return
    loop = asyncio.get_running_loop()
    db = None
    try:
        title = await loop.run_in_executor(
            None, provider.generate_title, exchange.model, exchange.message, exchange.reply
        )
        title = (title or "").strip()[: get_settings().chat_title_max_chars]
        if not title:
            return
        db = SessionLocal()
        await chat_service.set_title(db, exchange.conversation_id, title)
        logger.info("Titled conversation %s: %s", exchange.conversation_id, title)
    except Exception as e:
        logger.warning("Title generation failed for conversation %s: %s", exchange.conversation_id, e)
    finally:
        if db is not None:
            db.close()


def stream_chat_response(
    exchange: ChatExchange,
    provider: GeminiChatProvider,
    chat_service: ChatService,
) -> StreamingResponse:
    """StreamingResponse for one exchange; title generation attached as background task."""
    return StreamingResponse(
        stream_chat_events(exchange, provider, chat_service),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(generate_title_in_background, exchange, provider, chat_service),
    )

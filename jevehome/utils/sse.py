"""
Server-Sent Events codec for the assistant chat stream.

Wire format: one record per event, "data: {json}\\n\\n". Three event kinds:
  {"type": "chunk", "text": "..."}
  {"type": "done", "conversationId": "...", "isNew": bool}
  {"type": "error", "error": "..."}
Anything else decodes to UnknownEvent, which consumers ignore.

SseDecoder is incremental: feed it bytes as they arrive (any split, including inside a
multi-byte UTF-8 character) and it returns only complete records, in order.
"""
import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
RECORD_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True)
class DoneEvent:
    conversation_id: str | None
    is_new: bool = False


@dataclass(frozen=True)
class ErrorEvent:
    error: str


@dataclass(frozen=True)
class UnknownEvent:
    payload: dict = field(default_factory=dict)


ChatEvent = Union[ChunkEvent, DoneEvent, ErrorEvent, UnknownEvent]


def sse_message(payload: dict) -> str:
    """Proper SSE format: data: {json}\\n\\n"""
    return f"data: {json.dumps(payload)}\n\n"


def event_payload(event: ChatEvent) -> dict:
    if isinstance(event, ChunkEvent):
        return {"type": "chunk", "text": event.text}
    if isinstance(event, DoneEvent):
        return {"type": "done", "conversationId": event.conversation_id, "isNew": event.is_new}
    if isinstance(event, ErrorEvent):
        return {"type": "error", "error": event.error}
    if isinstance(event, UnknownEvent):
        return dict(event.payload)
    raise TypeError(f"Not a chat event: {event!r}")


def encode_event(event: ChatEvent) -> str:
    return sse_message(event_payload(event))


def parse_event(payload: Any) -> ChatEvent | None:
    """Decoded JSON -> event. None for payloads that are not objects."""
    if not isinstance(payload, dict):
        return None
    kind = payload.get("type")
    if kind == "chunk":
        text = payload.get("text")
        return ChunkEvent(text=text if isinstance(text, str) else "")
    if kind == "done":
        conv_id = payload.get("conversationId")
        return DoneEvent(
            conversation_id=conv_id if isinstance(conv_id, str) and conv_id else None,
            is_new=bool(payload.get("isNew", False)),
        )
    if kind == "error":
        message = payload.get("error")
        return ErrorEvent(error=message if isinstance(message, str) and message else "Unknown error from assistant.")
    return UnknownEvent(payload=payload)


def parse_record(record: str) -> ChatEvent | None:
    """One complete record (without the blank-line separator) -> event, or None if unusable."""
    data_lines = []
    for line in record.split("\n"):
        if line.startswith(DATA_PREFIX):
            value = line[len(DATA_PREFIX):]
            data_lines.append(value[1:] if value.startswith(" ") else value)
    if not data_lines:
        return None
    try:
        payload = json.loads("\n".join(data_lines))
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE record: %r", record[:200])
        return None
    return parse_event(payload)


class SseDecoder:
    """Buffers partial input; emits events only for complete records."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes | str) -> list[ChatEvent]:
        if isinstance(data, bytes):
            text = self._decoder.decode(data)
        else:
            text = data
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        events: list[ChatEvent] = []
        while True:
            record, sep, rest = self._buffer.partition(RECORD_SEPARATOR)
            if not sep:
                break
            self._buffer = rest
            event = parse_record(record.strip("\n"))
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[ChatEvent]:
        """End of stream. A trailing fragment without a record boundary is dropped."""
        tail = self._decoder.decode(b"", final=True)
        leftover = (self._buffer + tail).strip()
        self._buffer = ""
        if leftover:
            logger.debug("Dropping incomplete SSE record at end of stream: %r", leftover[:200])
        return []


def decode_stream(pieces: Iterable[bytes | str]) -> list[ChatEvent]:
    """Decode a whole stream given as arbitrary pieces."""
    decoder = SseDecoder()
    events: list[ChatEvent] = []
    for piece in pieces:
        events.extend(decoder.feed(piece))
    events.extend(decoder.close())
    return events

import json

import pytest

from jevehome.utils.sse import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    SseDecoder,
    UnknownEvent,
    decode_stream,
    encode_event,
    parse_event,
)

EVENTS = [
    ChunkEvent(text="Hello"),
    ChunkEvent(text=" wörld 💍"),
    ChunkEvent(text=" and\nnewlines"),
    DoneEvent(conversation_id="conv-1", is_new=True),
]


def _wire(events) -> bytes:
    return "".join(encode_event(e) for e in events).encode("utf-8")


def test_encode_matches_wire_format():
    assert encode_event(ChunkEvent(text="hi")) == 'data: {"type": "chunk", "text": "hi"}\n\n'
    assert json.loads(encode_event(DoneEvent("c1", True))[6:]) == {
        "type": "done",
        "conversationId": "c1",
        "isNew": True,
    }
    assert json.loads(encode_event(ErrorEvent("boom"))[6:]) == {"type": "error", "error": "boom"}


def test_whole_stream_in_one_read():
    assert decode_stream([_wire(EVENTS)]) == EVENTS


def test_every_two_way_split_decodes_identically():
    wire = _wire(EVENTS)
    for cut in range(1, len(wire)):
        assert decode_stream([wire[:cut], wire[cut:]]) == EVENTS, cut


def test_byte_by_byte_delivery():
    wire = _wire(EVENTS)
    assert decode_stream([wire[i:i + 1] for i in range(len(wire))]) == EVENTS


def test_decoder_holds_back_incomplete_record():
    decoder = SseDecoder()
    wire = encode_event(ChunkEvent(text="partial")).encode()

    assert decoder.feed(wire[:-1]) == []
    assert decoder.feed(wire[-1:]) == [ChunkEvent(text="partial")]


def test_trailing_fragment_is_dropped_at_close():
    decoder = SseDecoder()
    assert decoder.feed(b'data: {"type": "chunk", "text": "x"}') == []
    assert decoder.close() == []


def test_malformed_record_is_skipped():
    wire = b'data: {"type": "chunk", "text": "a"}\n\ndata: {not json}\n\ndata: {"type": "chunk", "text": "b"}\n\n'
    assert decode_stream([wire]) == [ChunkEvent(text="a"), ChunkEvent(text="b")]


def test_records_without_data_lines_and_non_objects_are_skipped():
    wire = b': keep-alive\n\ndata: [1, 2]\n\ndata: {"type": "chunk", "text": "ok"}\n\n'
    assert decode_stream([wire]) == [ChunkEvent(text="ok")]


def test_unknown_type_is_its_own_variant():
    events = decode_stream([b'data: {"type": "usage", "tokens": 3}\n\n'])
    assert events == [UnknownEvent(payload={"type": "usage", "tokens": 3})]


def test_crlf_line_endings():
    wire = b'data: {"type": "chunk", "text": "a"}\r\n\r\ndata: {"type": "error", "error": "bad"}\r\n\r\n'
    assert decode_stream([wire]) == [ChunkEvent(text="a"), ErrorEvent(error="bad")]


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"type": "done"}, DoneEvent(conversation_id=None, is_new=False)),
        ({"type": "error"}, ErrorEvent(error="Unknown error from assistant.")),
        ({"type": "chunk", "text": None}, ChunkEvent(text="")),
        ("string", None),
    ],
)
def test_parse_event_defaults(payload, expected):
    assert parse_event(payload) == expected


def test_raw_multibyte_text_split_anywhere():
    wire = 'data: {"type": "chunk", "text": "wörld 💍"}\n\n'.encode("utf-8")
    for cut in range(1, len(wire)):
        assert decode_stream([wire[:cut], wire[cut:]]) == [ChunkEvent(text="wörld 💍")], cut


def test_crlf_split_between_reads():
    wire = b'data: {"type": "chunk", "text": "a"}\r\n\r\n'
    for cut in range(1, len(wire)):
        assert decode_stream([wire[:cut], wire[cut:]]) == [ChunkEvent(text="a")], cut

"""
Unit tests for the SSE encoder and the event channel.
"""

import json

import pytest

from rag_chat.models.chat import Source
from rag_chat.models.events import DataEvent, EndEvent, ErrorEvent, ResultEvent, SourcesEvent
from rag_chat.services.sse import EventChannel, encode_event

SOURCE = Source(id="doc-1", title="Bill of Rights", domain="archives.gov", snippet="Amendments", preview="Amendments…")


def _data_line(frame):
    lines = frame.split("\n")
    assert lines[1].startswith("data: ")
    return json.loads(lines[1][len("data: "):])


def test_data_event_is_bare_json_string():
    frame = encode_event(DataEvent("Due process "))
    assert frame == 'event: data\ndata: "Due process "\n\n'


def test_data_event_keeps_unicode_and_escapes_newlines():
    frame = encode_event(DataEvent("naïve\nline"))
    assert frame.count("\n") == 3
    assert _data_line(frame) == "naïve\nline"


def test_sources_event_is_array():
    frame = encode_event(SourcesEvent([SOURCE]))
    assert frame.startswith("event: sources\n")
    assert _data_line(frame) == [SOURCE.model_dump()]


def test_result_event_is_object_with_text_and_sources():
    frame = encode_event(ResultEvent("Answer [1]", [SOURCE]))
    assert frame.startswith("event: result\n")
    assert _data_line(frame) == {"text": "Answer [1]", "sources": [SOURCE.model_dump()]}


def test_error_event_carries_error_field():
    assert _data_line(encode_event(ErrorEvent("Upstream timeout"))) == {"error": "Upstream timeout"}


def test_end_event_is_done_literal():
    assert encode_event(EndEvent()) == 'event: end\ndata: "[DONE]"\n\n'


@pytest.mark.asyncio
async def test_channel_yields_frames_in_order_until_closed():
    channel = EventChannel()
    await channel.emit(DataEvent("a"))
    await channel.emit(DataEvent("b"))
    await channel.emit(EndEvent())
    channel.close()

    frames = [frame async for frame in channel.frames()]

    assert [frame.split("\n")[0] for frame in frames] == ["event: data", "event: data", "event: end"]


@pytest.mark.asyncio
async def test_channel_rejects_emit_after_close():
    channel = EventChannel()
    channel.close()
    channel.close()  # idempotent

    with pytest.raises(RuntimeError):
        await channel.emit(DataEvent("late"))
    assert [event async for event in channel.events()] == []

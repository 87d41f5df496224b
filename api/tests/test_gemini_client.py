"""
Unit tests for the Gemini streaming client and its SSE payload parser.

Upstream HTTP is replaced with httpx.MockTransport.
"""

import asyncio
import json
import logging

import httpx
import pytest

from rag_chat.core.errors import MalformedChunkError, StreamTimeoutError, UpstreamConnectError
from rag_chat.models.stream import ToolInvocation
from rag_chat.services.gemini_client import GeminiStreamClient, SSEPayloadParser, parse_chunk


def sse_line(record):
    return f"data: {json.dumps(record)}\n\n".encode()


def text_record(text):
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def call_record(name, args):
    return {"candidates": [{"content": {"role": "model", "parts": [{"functionCall": {"name": name, "args": args}}]}}]}


class ScriptedStream(httpx.AsyncByteStream):
    """Byte blocks with optional pauses (None) between them."""

    def __init__(self, blocks, pause=0.0):
        self._blocks = blocks
        self._pause = pause

    async def __aiter__(self):
        for block in self._blocks:
            if block is None:
                await asyncio.sleep(self._pause)
                continue
            yield block


def make_client(handler, idle_timeout=60.0):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = GeminiStreamClient(http, api_key="test-key", model="gemini-test", idle_timeout=idle_timeout)
    return http, client


async def collect(client, contents=None):
    async with client.open_stream(contents or [], []) as stream:
        return [chunk async for chunk in stream.chunks()]


class TestSSEPayloadParser:
    def test_extracts_only_data_lines(self):
        parser = SSEPayloadParser()
        payloads = parser.feed(b': keep-alive\nevent: message\ndata: {"a": 1}\n\nid: 7\n')
        assert payloads == ['{"a": 1}']

    def test_partial_line_is_buffered_across_blocks(self):
        parser = SSEPayloadParser()
        assert parser.feed(b'data: {"te') == []
        assert parser.feed(b'xt": "hi"}\n') == ['{"text": "hi"}']

    def test_ignores_blank_payloads_and_done_sentinel(self):
        parser = SSEPayloadParser()
        assert parser.feed(b"data:\ndata:   \ndata: [DONE]\n\n") == []

    def test_handles_crlf_line_endings(self):
        parser = SSEPayloadParser()
        assert parser.feed(b'data: {"x": 1}\r\n\r\n') == ['{"x": 1}']

    def test_multibyte_character_split_across_blocks(self):
        encoded = 'data: "é"\n'.encode()
        split_at = encoded.index(b"\xc3") + 1
        parser = SSEPayloadParser()
        assert parser.feed(encoded[:split_at]) == []
        assert parser.feed(encoded[split_at:]) == ['"é"']

    def test_flush_returns_unterminated_final_line(self):
        parser = SSEPayloadParser()
        parser.feed(b'data: {"last": true}')
        assert parser.flush() == ['{"last": true}']
        assert parser.flush() == []


class TestParseChunk:
    def test_text_parts(self):
        chunk = parse_chunk(json.dumps(text_record("Hello")))
        assert chunk.text == "Hello"
        assert chunk.parts[0].tool_call is None

    def test_function_call_part(self):
        chunk = parse_chunk(json.dumps(call_record("get_relevant_documents", {"query": "due process"})))
        assert chunk.parts[0].tool_call == ToolInvocation("get_relevant_documents", {"query": "due process"})

    def test_record_without_candidates_is_empty(self):
        chunk = parse_chunk(json.dumps({"usageMetadata": {"totalTokenCount": 12}}))
        assert chunk.parts == []

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            "[1, 2]",
            json.dumps({"candidates": {"oops": 1}}),
            json.dumps({"candidates": [{"content": {"parts": "text"}}]}),
            json.dumps({"candidates": [{"content": {"parts": [{"functionCall": {"args": {}}}]}}]}),
        ],
    )
    def test_malformed_payloads_raise(self, payload):
        with pytest.raises(MalformedChunkError):
            parse_chunk(payload)


class TestGeminiStreamClient:
    @pytest.mark.asyncio
    async def test_streams_parsed_chunks_and_sends_contents(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                stream=ScriptedStream([sse_line(text_record("Due ")), sse_line(text_record("process."))]),
            )

        http, client = make_client(handler)
        contents = [{"role": "user", "parts": [{"text": "What is due process?"}]}]
        async with http:
            chunks = await collect(client, contents)

        assert [chunk.text for chunk in chunks] == ["Due ", "process."]
        assert seen["url"].path.endswith("/models/gemini-test:streamGenerateContent")
        assert seen["url"].params["alt"] == "sse"
        assert "key" not in seen["url"].params
        assert seen["headers"]["x-goog-api-key"] == "test-key"
        assert seen["body"]["contents"] == contents

    @pytest.mark.asyncio
    async def test_malformed_chunk_is_skipped_not_fatal(self):
        def handler(request):
            return httpx.Response(
                200,
                stream=ScriptedStream(
                    [sse_line(text_record("one")), b"data: {garbage\n\n", sse_line(text_record("two"))]
                ),
            )

        http, client = make_client(handler)
        async with http:
            chunks = await collect(client)

        assert [chunk.text for chunk in chunks] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_non_success_status_surfaces_code_and_body(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "quota exceeded"}})

        http, client = make_client(handler)
        async with http:
            with pytest.raises(UpstreamConnectError) as exc_info:
                await collect(client)

        assert exc_info.value.status_code == 429
        assert "quota exceeded" in exc_info.value.body
        assert "429" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_raises_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        http, client = make_client(handler)
        async with http:
            with pytest.raises(UpstreamConnectError) as exc_info:
                await collect(client)

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_idle_stream_trips_watchdog(self):
        def handler(request):
            return httpx.Response(200, stream=ScriptedStream([sse_line(text_record("partial")), None], pause=1.0))

        http, client = make_client(handler, idle_timeout=0.05)
        received = []
        async with http:
            with pytest.raises(StreamTimeoutError):
                async with client.open_stream([], []) as stream:
                    async for chunk in stream.chunks():
                        received.append(chunk.text)

        assert received == ["partial"]

    @pytest.mark.asyncio
    async def test_slow_but_steady_stream_is_not_a_timeout(self):
        blocks = []
        for word in "abcdefgh":
            blocks.extend([None, sse_line(text_record(word))])

        def handler(request):
            return httpx.Response(200, stream=ScriptedStream(blocks, pause=0.05))

        # total duration exceeds the idle window, each gap does not
        http, client = make_client(handler, idle_timeout=0.25)
        async with http:
            chunks = await collect(client)

        assert "".join(chunk.text for chunk in chunks) == "abcdefgh"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 500])
    async def test_api_key_never_reaches_logs(self, caplog, status):
        def handler(request):
            if status != 200:
                return httpx.Response(status, text="backend unavailable")
            return httpx.Response(200, stream=ScriptedStream([sse_line(text_record("ok"))]))

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = GeminiStreamClient(http, api_key="SUPER-SECRET-KEY", model="gemini-test")
        with caplog.at_level(logging.DEBUG):
            async with http:
                try:
                    await collect(client)
                except UpstreamConnectError:
                    pass

        assert caplog.records
        assert not any("SUPER-SECRET-KEY" in record.getMessage() for record in caplog.records)

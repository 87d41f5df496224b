"""
Gemini streaming client.

Opens `streamGenerateContent?alt=sse` requests and exposes the upstream
byte stream as a sequence of parsed `ModelChunk` values.

Wire handling:
- bytes are decoded incrementally and split on newlines;
- only `data:` lines carry payload; blank payloads and `[DONE]` are ignored;
- each payload is one JSON record whose `candidates[0].content.parts` hold
  text parts and/or `functionCall` parts;
- a payload that fails to parse is logged and skipped;
- no bytes for `idle_timeout` seconds aborts the stream.
"""

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from rag_chat.core.errors import (
    MalformedChunkError,
    StreamTimeoutError,
    UpstreamConnectError,
)
from rag_chat.core.telemetry import traced
from rag_chat.models.stream import ModelChunk, ModelPart, ToolInvocation

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
# sent as a header, never in the request URL
API_KEY_HEADER = "x-goog-api-key"


class SSEPayloadParser:
    """Incremental `data:` line extractor for an upstream SSE byte stream."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[str]:
        """Consume a block of bytes and return the complete payloads it finished."""
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return [payload for payload in map(_payload_of, lines) if payload is not None]

    def flush(self) -> list[str]:
        """Return the payload of a final unterminated line, if any."""
        line = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        payload = _payload_of(line)
        return [payload] if payload is not None else []


def _payload_of(line: str) -> str | None:
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if not payload or payload == DONE_SENTINEL:
        return None
    return payload


def parse_chunk(payload: str) -> ModelChunk:
    """
    Parse one upstream JSON record into model output parts.

    Raises:
        MalformedChunkError: the payload is not JSON or not the expected shape.
    """
    try:
        record = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedChunkError(f"Upstream chunk is not JSON: {exc}") from exc
    if not isinstance(record, dict):
        raise MalformedChunkError("Upstream chunk is not a JSON object")

    candidates = record.get("candidates") or []
    if not isinstance(candidates, list):
        raise MalformedChunkError("'candidates' is not a list")
    if not candidates:
        # usage-only / keep-alive records
        return ModelChunk()
    first = candidates[0]
    if not isinstance(first, dict):
        raise MalformedChunkError("candidate is not an object")

    raw_parts = (first.get("content") or {}).get("parts") or []
    if not isinstance(raw_parts, list):
        raise MalformedChunkError("'parts' is not a list")

    parts: list[ModelPart] = []
    for raw in raw_parts:
        if not isinstance(raw, dict):
            raise MalformedChunkError("part is not an object")
        call = raw.get("functionCall")
        if call is not None:
            if not isinstance(call, dict) or not call.get("name"):
                raise MalformedChunkError("functionCall without a name")
            args = call.get("args") or {}
            if not isinstance(args, dict):
                raise MalformedChunkError("functionCall args is not an object")
            parts.append(ModelPart(tool_call=ToolInvocation(name=call["name"], arguments=args)))
        elif isinstance(raw.get("text"), str):
            parts.append(ModelPart(text=raw["text"]))
    return ModelChunk(parts=parts)


class GeminiStream:
    """An open upstream stream; iterate `chunks()` to consume it."""

    def __init__(self, byte_blocks: AsyncIterator[bytes], idle_timeout: float) -> None:
        self._blocks = byte_blocks
        self._idle_timeout = idle_timeout

    async def chunks(self) -> AsyncIterator[ModelChunk]:
        parser = SSEPayloadParser()
        while True:
            block = await self._next_block()
            if block is None:
                break
            for payload in parser.feed(block):
                chunk = _parse_or_skip(payload)
                if chunk is not None:
                    yield chunk
        for payload in parser.flush():
            chunk = _parse_or_skip(payload)
            if chunk is not None:
                yield chunk

    async def _next_block(self) -> bytes | None:
        """Next byte block, bounded by the idle watchdog; None at end of stream."""
        try:
            return await asyncio.wait_for(anext(self._blocks, None), timeout=self._idle_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Upstream stream idle for %.1fs; aborting.", self._idle_timeout)
            raise StreamTimeoutError(
                f"Upstream timeout: no data for {self._idle_timeout:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamConnectError(f"Model stream interrupted: {exc}") from exc


def _parse_or_skip(payload: str) -> ModelChunk | None:
    try:
        return parse_chunk(payload)
    except MalformedChunkError as exc:
        logger.warning("Skipping malformed upstream chunk (%s): %.200s", exc.message, payload)
        return None


class GeminiStreamClient:
    """Streaming `generateContent` client for the Gemini REST API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        idle_timeout: float = 60.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._idle_timeout = idle_timeout
        # read=None: liveness is enforced by the idle watchdog instead
        self._timeout = httpx.Timeout(connect_timeout, read=None)

    @asynccontextmanager
    async def open_stream(
        self,
        contents: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[GeminiStream]:
        """
        Open one upstream stream; the response is closed when the block exits.

        Raises:
            UpstreamConnectError: endpoint unreachable or non-success status
                (the status code and body are included in the message).
        """
        request = self._http.build_request(
            "POST",
            f"{self._base_url}/models/{self._model}:streamGenerateContent",
            params={"alt": "sse"},
            headers={API_KEY_HEADER: self._api_key},
            json={"contents": contents, "tools": tools},
            timeout=self._timeout,
        )
        with traced("gemini.stream_open", **{"gemini.model": self._model, "gemini.turns": len(contents)}) as span:
            try:
                response = await self._http.send(request, stream=True)
            except httpx.HTTPError as exc:
                raise UpstreamConnectError(f"Gemini streamGenerateContent unreachable: {exc}") from exc
            span.set_attribute("http.status_code", response.status_code)

        try:
            if response.is_error:
                body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error("Gemini stream open failed: %d %.500s", response.status_code, body)
                raise UpstreamConnectError(
                    f"Gemini streamGenerateContent {response.status_code}: {body}",
                    status_code=response.status_code,
                    body=body,
                )
            yield GeminiStream(response.aiter_bytes(), idle_timeout=self._idle_timeout)
        finally:
            await response.aclose()

"""
Client for the /chat event stream.

Posts a question, consumes the SSE frames as they arrive and reports them
through optional listener callbacks, returning the consolidated result.
An `error` frame is raised as `ChatStreamError` so callers can render a
distinguishable failure instead of silently ending the turn.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from rag_chat.models.chat import ChatResult, ChatTurn, Source

logger = logging.getLogger(__name__)


class ChatStreamError(Exception):
    """The server reported a failed chat turn."""

    def __init__(self, message: str, partial_text: str = "") -> None:
        self.message = message
        self.partial_text = partial_text
        super().__init__(message)


@dataclass
class ChatEventListener:
    on_data: Callable[[str], None] | None = None
    on_sources: Callable[[list[Source]], None] | None = None
    on_complete: Callable[[ChatResult], None] | None = None
    on_error: Callable[[str], None] | None = None


def parse_frame(frame: str) -> tuple[str, Any] | None:
    """Split one `event:`/`data:` frame into (event, decoded data)."""
    event = None
    data_lines: list[str] = []
    for line in frame.splitlines():
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())
    if event is None:
        return None
    raw = "\n".join(data_lines)
    return event, json.loads(raw) if raw else None


class ChatStreamClient:
    """Consumes the orchestrator's SSE protocol over HTTP."""

    def __init__(self, http: httpx.AsyncClient, endpoint: str = "/chat") -> None:
        self._http = http
        self._endpoint = endpoint

    async def ask(
        self,
        query: str,
        *,
        user_id: str = "anonymous",
        history: list[ChatTurn] | None = None,
        listener: ChatEventListener | None = None,
    ) -> ChatResult:
        """
        Ask one question and wait for the consolidated answer.

        Raises:
            ChatStreamError: the server sent an `error` frame.
        """
        listener = listener or ChatEventListener()
        body = {
            "query": query,
            "user_id": user_id,
            "history": [turn.model_dump() for turn in history or []],
        }

        answer = ""
        sources: list[Source] = []
        async with self._http.stream("POST", self._endpoint, json=body) as response:
            buffer = ""
            async for text in response.aiter_text():
                buffer += text
                *frames, buffer = buffer.split("\n\n")
                for frame in frames:
                    parsed = parse_frame(frame)
                    if parsed is None:
                        continue
                    event, data = parsed

                    if event == "data":
                        answer += data
                        if listener.on_data:
                            listener.on_data(data)
                    elif event == "sources":
                        sources = [Source.model_validate(item) for item in data or []]
                        logger.debug("Received %d sources", len(sources))
                        if listener.on_sources:
                            listener.on_sources(sources)
                    elif event == "result":
                        result = ChatResult(
                            text=(data or {}).get("text") or answer,
                            sources=[
                                Source.model_validate(item)
                                for item in (data or {}).get("sources") or []
                            ]
                            or sources,
                        )
                        if listener.on_complete:
                            listener.on_complete(result)
                        return result
                    elif event == "error":
                        message = (data or {}).get("error") or "Unknown error occurred"
                        logger.error("Chat stream error: %s", message)
                        if listener.on_error:
                            listener.on_error(message)
                        raise ChatStreamError(message, partial_text=answer)

        logger.warning("Chat stream ended without a result frame; returning accumulated text")
        result = ChatResult(text=answer, sources=sources)
        if listener.on_complete:
            listener.on_complete(result)
        return result

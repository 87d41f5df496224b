"""
Chat orchestrator — streaming retrieval-augmented generation.

One `ChatSession` drives one chat turn through an explicit state machine:

    INIT -> STREAMING_1 -> FINALIZING -> DONE
    INIT -> STREAMING_1 -> TOOL_PENDING -> RETRIEVING -> STREAMING_2 -> FINALIZING -> DONE

Each state has one handler that returns the next state, so every transition
can be exercised in isolation with a fake model stream. All client-facing
output goes through the session's `EventChannel`.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from rag_chat.core.errors import ChatError, ValidationError
from rag_chat.core.security import resolve_caller_id
from rag_chat.core.telemetry import traced
from rag_chat.models.chat import ChatRequest
from rag_chat.models.events import DataEvent, EndEvent, ErrorEvent, ResultEvent, SourcesEvent
from rag_chat.models.retrieval import RetrievalQuery
from rag_chat.models.stream import ToolInvocation
from rag_chat.services.interceptor import ToolCallInterceptor
from rag_chat.services.protocols import ChatModel
from rag_chat.services.retrieval import RetrievalResult, VectorRetrievalClient
from rag_chat.services.sse import EventChannel

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a research assistant for a curated document library.
- ALWAYS call the "get_relevant_documents" function for substantive questions.
- Cite retrieved documents inline as [1], [2], [3] in the order they were returned.
- Be concise, quote directly when helpful, and never guess beyond the sources.
"""

TOOL_NAME = "get_relevant_documents"

TOOLS: list[dict[str, Any]] = [
    {
        "functionDeclarations": [
            {
                "name": TOOL_NAME,
                "description": "Return up to three documents relevant to the user's question.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "Semantic query"},
                    },
                    "required": ["query"],
                },
            }
        ]
    }
]

INTERNAL_ERROR_MESSAGE = "Internal error while generating the answer"


class ChatState(str, Enum):
    INIT = "init"
    STREAMING_1 = "streaming_1"
    TOOL_PENDING = "tool_pending"
    RETRIEVING = "retrieving"
    STREAMING_2 = "streaming_2"
    FINALIZING = "finalizing"
    DONE = "done"


class ChatSession:
    """State and handlers for a single chat turn. Not reusable."""

    def __init__(
        self,
        request: ChatRequest,
        *,
        model: ChatModel,
        retrieval: VectorRetrievalClient,
        channel: EventChannel | None = None,
        tool_name: str = TOOL_NAME,
        tools: list[dict[str, Any]] | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.request = request
        self.channel = channel or EventChannel()
        self.state = ChatState.INIT

        self.contents: list[dict[str, Any]] = []
        self.continuation: list[dict[str, Any]] = []
        self.text_parts: list[str] = []
        self.tool_call: ToolInvocation | None = None
        self.retrieval_query: RetrievalQuery | None = None
        self.retrieval: RetrievalResult | None = None

        self._model = model
        self._retrieval = retrieval
        self._tool_name = tool_name
        self._tools = TOOLS if tools is None else tools
        self._system_prompt = system_prompt
        self._handlers = {
            ChatState.INIT: self._handle_init,
            ChatState.STREAMING_1: self._handle_streaming_1,
            ChatState.TOOL_PENDING: self._handle_tool_pending,
            ChatState.RETRIEVING: self._handle_retrieving,
            ChatState.STREAMING_2: self._handle_streaming_2,
            ChatState.FINALIZING: self._handle_finalizing,
        }

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    async def step(self) -> ChatState:
        """Run the handler of the current state and move to the state it returns."""
        if self.state is ChatState.DONE:
            raise RuntimeError("Chat session already finished")
        previous = self.state
        self.state = await self._handlers[previous]()
        logger.debug("Chat state %s -> %s", previous.value, self.state.value)
        return self.state

    async def run(self) -> None:
        """
        Drive the session to DONE.

        Fatal errors become exactly one ErrorEvent (and no ResultEvent).
        The channel is always closed on exit, including on cancellation.
        """
        with traced("chat.turn", **{"chat.history_turns": len(self.request.history)}) as span:
            try:
                while self.state is not ChatState.DONE:
                    await self.step()
            except ChatError as exc:
                logger.warning("Chat turn failed in state %s: %s", self.state.value, exc.message)
                span.set_attribute("chat.error", type(exc).__name__)
                await self.channel.emit(ErrorEvent(exc.message))
            except Exception:
                logger.exception("Unexpected failure in chat state %s", self.state.value)
                span.set_attribute("chat.error", "internal")
                await self.channel.emit(ErrorEvent(INTERNAL_ERROR_MESSAGE))
            finally:
                span.set_attribute("chat.retrieved", self.retrieval is not None)
                self.state = ChatState.DONE
                self.channel.close()

    async def stream(self) -> AsyncIterator[str]:
        """
        Run the session in a producer task and yield encoded SSE frames.

        Closing this generator (client disconnect) cancels the producer, which
        in turn closes any open upstream stream and in-flight retrieval.
        """
        producer = asyncio.create_task(self.run())
        try:
            async for frame in self.channel.frames():
                yield frame
        finally:
            if not producer.done():
                logger.info("Client went away; cancelling chat turn in state %s", self.state.value)
                producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer

    # -- state handlers -------------------------------------------------

    async def _handle_init(self) -> ChatState:
        query = (self.request.query or "").strip()
        if not query:
            raise ValidationError()

        self.contents = [
            {"role": "user", "parts": [{"text": self._system_prompt.strip()}]},
            *(turn.to_content() for turn in self.request.history),
            {"role": "user", "parts": [{"text": query}]},
        ]
        return ChatState.STREAMING_1

    async def _handle_streaming_1(self) -> ChatState:
        self.tool_call = await self._forward_stream(self.contents)
        if self.tool_call is None:
            return ChatState.FINALIZING
        logger.info("Model requested '%s'; pausing for retrieval", self.tool_call.name)
        return ChatState.TOOL_PENDING

    async def _handle_tool_pending(self) -> ChatState:
        query_text = str(self.tool_call.arguments.get("query") or "").strip()
        if not query_text:
            query_text = (self.request.query or "").strip()
        self.retrieval_query = RetrievalQuery(
            query_text=query_text,
            caller_id=resolve_caller_id(self.request.user_id),
        )
        return ChatState.RETRIEVING

    async def _handle_retrieving(self) -> ChatState:
        self.retrieval = await self._retrieval.retrieve(self.retrieval_query)
        await self.channel.emit(SourcesEvent(self.retrieval.sources))

        self.continuation = [
            *self.contents,
            {"role": "model", "parts": [self.tool_call.to_part()]},
            {
                "role": "function",
                "parts": [
                    {
                        "functionResponse": {
                            "name": self.tool_call.name,
                            "response": {
                                "documents": [row.to_function_payload() for row in self.retrieval.rows]
                            },
                        }
                    }
                ],
            },
        ]
        return ChatState.STREAMING_2

    async def _handle_streaming_2(self) -> ChatState:
        follow_up = await self._forward_stream(self.continuation)
        if follow_up is not None:
            # TODO: chain a second retrieval once multi-lookup turns are supported
            logger.warning(
                "Ignoring follow-up call to '%s'; one retrieval per turn", follow_up.name
            )
        return ChatState.FINALIZING

    async def _handle_finalizing(self) -> ChatState:
        sources = self.retrieval.sources if self.retrieval is not None else []
        await self.channel.emit(ResultEvent(text=self.text.strip(), sources=sources))
        await self.channel.emit(EndEvent())
        return ChatState.DONE

    # -- helpers --------------------------------------------------------

    async def _forward_stream(self, contents: list[dict[str, Any]]) -> ToolInvocation | None:
        """
        Stream one upstream session, forwarding text as DataEvents.

        Returns the tool call that latched the interceptor, or None when the
        stream ended without one. The rest of the stream is not read.
        """
        interceptor = ToolCallInterceptor(self._tool_name)
        async with self._model.open_stream(contents, self._tools) as upstream:
            async with contextlib.aclosing(upstream.chunks()) as chunks:
                async for chunk in chunks:
                    outcome = interceptor.inspect(chunk)
                    for text in outcome.texts:
                        self.text_parts.append(text)
                        await self.channel.emit(DataEvent(text))
                    if outcome.tool_call is not None:
                        return outcome.tool_call
        return None


class ChatOrchestrator:
    """Builds chat sessions over injected model and retrieval collaborators."""

    def __init__(
        self,
        model: ChatModel,
        retrieval: VectorRetrievalClient,
        *,
        tool_name: str = TOOL_NAME,
        tools: list[dict[str, Any]] | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._model = model
        self._retrieval = retrieval
        self._tool_name = tool_name
        self._tools = tools
        self._system_prompt = system_prompt

    def new_session(self, request: ChatRequest, channel: EventChannel | None = None) -> ChatSession:
        return ChatSession(
            request,
            model=self._model,
            retrieval=self._retrieval,
            channel=channel,
            tool_name=self._tool_name,
            tools=self._tools,
            system_prompt=self._system_prompt,
        )

    async def open_session(self, request: ChatRequest) -> ChatSession:
        """
        Create a session and run its INIT state.

        Raises:
            ValidationError: the request has no usable query; nothing has been
                sent upstream.
        """
        session = self.new_session(request)
        await session.step()
        return session

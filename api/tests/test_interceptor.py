"""
Unit tests for the tool-call interceptor latch.
"""

from fakes import text_chunk, tool_chunk
from rag_chat.models.stream import ModelChunk, ModelPart, ToolInvocation
from rag_chat.services.interceptor import ToolCallInterceptor
from rag_chat.services.orchestrator import TOOL_NAME


def test_text_is_released_immediately():
    interceptor = ToolCallInterceptor(TOOL_NAME)
    outcome = interceptor.inspect(text_chunk("Due ", "process"))
    assert outcome.texts == ["Due ", "process"]
    assert outcome.tool_call is None
    assert not interceptor.latched


def test_first_matching_call_latches():
    interceptor = ToolCallInterceptor(TOOL_NAME)
    outcome = interceptor.inspect(tool_chunk("due process"))
    assert outcome.tool_call == ToolInvocation(TOOL_NAME, {"query": "due process"})
    assert interceptor.latched


def test_text_before_call_in_same_chunk_is_forwarded_and_rest_dropped():
    chunk = ModelChunk(
        parts=[
            ModelPart(text="Let me look that up. "),
            ModelPart(tool_call=ToolInvocation(TOOL_NAME, {"query": "first"})),
            ModelPart(text="dropped"),
            ModelPart(tool_call=ToolInvocation(TOOL_NAME, {"query": "second"})),
        ]
    )
    outcome = ToolCallInterceptor(TOOL_NAME).inspect(chunk)
    assert outcome.texts == ["Let me look that up. "]
    assert outcome.tool_call.arguments == {"query": "first"}


def test_later_calls_are_ignored_once_latched():
    interceptor = ToolCallInterceptor(TOOL_NAME)
    interceptor.inspect(tool_chunk("first"))

    later = interceptor.inspect(tool_chunk("second"))
    trailing_text = interceptor.inspect(text_chunk("ignored"))

    assert later.tool_call is None
    assert trailing_text.texts == []


def test_unknown_tool_is_discarded_without_latching():
    interceptor = ToolCallInterceptor(TOOL_NAME)
    outcome = interceptor.inspect(tool_chunk("x", name="delete_everything"))
    assert outcome.tool_call is None
    assert not interceptor.latched

    follow_up = interceptor.inspect(tool_chunk("due process"))
    assert follow_up.tool_call is not None

"""
Tool-call interceptor.

Watches parsed model chunks for the retrieval tool. Text before the trigger
is released immediately; the first matching tool call latches the
interceptor and everything after it on the same stream is discarded.
"""

import logging
from dataclasses import dataclass, field

from rag_chat.models.stream import ModelChunk, ToolInvocation

logger = logging.getLogger(__name__)


@dataclass
class Interception:
    """Outcome of inspecting one chunk."""

    texts: list[str] = field(default_factory=list)
    tool_call: ToolInvocation | None = None


class ToolCallInterceptor:
    """At-most-one trigger per stream; use a fresh instance for each stream."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        self.latched = False

    def inspect(self, chunk: ModelChunk) -> Interception:
        result = Interception()
        if self.latched:
            return result

        for part in chunk.parts:
            call = part.tool_call
            if call is not None:
                if call.name == self.tool_name:
                    self.latched = True
                    result.tool_call = call
                    break
                logger.warning("Ignoring call to undeclared tool '%s'", call.name)
            elif part.text:
                result.texts.append(part.text)
        return result

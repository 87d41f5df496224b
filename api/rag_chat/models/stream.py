"""
Upstream model output types.

A streamed step (`ModelChunk`) holds zero or more parts; each part is
either plain text or a structured tool invocation.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolInvocation:
    """A function call requested by the model mid-stream."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_part(self) -> dict[str, Any]:
        """Render as a provider `functionCall` part for the continuation context."""
        return {"functionCall": {"name": self.name, "args": dict(self.arguments)}}


@dataclass(frozen=True)
class ModelPart:
    text: str | None = None
    tool_call: ToolInvocation | None = None


@dataclass(frozen=True)
class ModelChunk:
    parts: list[ModelPart] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.text)

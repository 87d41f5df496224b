"""
Stream events pushed to the client.

The same values are used internally (orchestrator -> channel) and on the
wire (channel -> SSE frame); `kind` is the SSE event name and `payload()`
the JSON-serializable data line.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from rag_chat.models.chat import Source


@dataclass(frozen=True)
class DataEvent:
    """One text token (or token group) from the model."""

    kind: ClassVar[str] = "data"
    text: str

    def payload(self) -> Any:
        return self.text


@dataclass(frozen=True)
class SourcesEvent:
    """The merged source set, emitted once retrieval succeeds."""

    kind: ClassVar[str] = "sources"
    sources: list[Source] = field(default_factory=list)

    def payload(self) -> Any:
        return [source.model_dump() for source in self.sources]


@dataclass(frozen=True)
class ResultEvent:
    """Final consolidated answer."""

    kind: ClassVar[str] = "result"
    text: str
    sources: list[Source] = field(default_factory=list)

    def payload(self) -> Any:
        return {
            "text": self.text,
            "sources": [source.model_dump() for source in self.sources],
        }


@dataclass(frozen=True)
class ErrorEvent:
    """Fatal failure; never followed by a ResultEvent."""

    kind: ClassVar[str] = "error"
    message: str

    def payload(self) -> Any:
        return {"error": self.message}


@dataclass(frozen=True)
class EndEvent:
    kind: ClassVar[str] = "end"

    def payload(self) -> Any:
        return "[DONE]"


StreamEvent = Union[DataEvent, SourcesEvent, ResultEvent, ErrorEvent, EndEvent]

"""
Pydantic models for the Chat API request/response contracts.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatTurn(BaseModel):
    """A single prior turn of the conversation, replayed by the caller."""

    role: Literal["user", "model"] = Field(..., description="Turn author: 'user' or 'model'")
    text: str = Field(..., description="Turn text")

    def to_content(self) -> dict:
        """Render the turn in the model provider's `contents` format."""
        return {"role": self.role, "parts": [{"text": self.text}]}


class ChatRequest(BaseModel):
    """Request body for the POST /chat endpoint."""

    query: str | None = Field(None, description="The new user question")
    user_id: str | None = Field(
        None, description="Caller id; only a UUID unlocks private documents"
    )
    history: list[ChatTurn] = Field(
        default_factory=list, description="Prior turns, oldest first"
    )


class Source(BaseModel):
    """A display-ready source record, cited by position as [1], [2], [3]."""

    id: str = Field(..., description="Document identifier")
    title: str = Field("Untitled", description="Document title")
    domain: str = Field("unknown", description="Origin of the document")
    snippet: str = Field("(no preview)", description="First 80 characters of the summary")
    preview: str = Field("(no preview)…", description="Snippet with trailing ellipsis")


class ChatResult(BaseModel):
    """The consolidated answer of one chat turn."""

    text: str = Field("", description="Full answer text with inline [n] citations")
    sources: list[Source] = Field(default_factory=list, description="Cited sources in order")

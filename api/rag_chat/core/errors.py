"""
Error taxonomy for a chat turn.

Every fatal failure surfaces to the client as exactly one `error` SSE event
carrying `ChatError.message`. `MalformedChunkError` is the only error that is
recovered locally (the offending upstream chunk is skipped).
"""


class ChatError(Exception):
    """Base class for errors that terminate a chat turn."""

    default_message = "Chat request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    """The inbound request is unusable (missing query)."""

    default_message = "Body requires 'query' field"


class UpstreamConnectError(ChatError):
    """The model endpoint was unreachable or answered with a non-success status."""

    default_message = "Model endpoint unreachable"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class StreamTimeoutError(ChatError):
    """No bytes arrived from the upstream model stream within the idle window."""

    default_message = "Upstream timeout"


class EmbeddingError(ChatError):
    """The embedding provider failed or returned an empty vector."""

    default_message = "Embedding failed: provider returned an empty vector"


class RetrievalError(ChatError):
    """A partition similarity search (or metadata lookup) failed."""

    def __init__(self, partition: str, detail: str) -> None:
        self.partition = partition
        self.detail = detail
        super().__init__(f"Retrieval failed ({partition}): {detail}")


class MalformedChunkError(ChatError):
    """An upstream SSE payload could not be parsed into model output parts."""

    default_message = "Malformed upstream chunk"

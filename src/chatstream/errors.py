"""Exceptions raised by the stream decoder and the provider layer."""


class ChatStreamError(Exception):
    """Base class for all chatstream errors."""


class FrameParseError(ChatStreamError):
    """A ``data:`` payload could not be parsed as JSON.

    Recovered locally by the decoder: the frame is logged and skipped.
    """

    def __init__(self, payload: str, reason: str = ""):
        self.payload = payload
        self.reason = reason
        super().__init__(
            f"Failed to parse SSE chunk: {reason or 'invalid JSON'}"
        )


class EmptyResponseError(ChatStreamError):
    """The stream finished without producing any text or tool call."""

    def __init__(self, message: str = "Sorry, no response was returned"):
        super().__init__(message)


class TransportError(ChatStreamError):
    """The byte transport failed or closed abruptly mid-stream."""


class InvalidRequestError(ChatStreamError):
    """The outgoing conversation is malformed (e.g. orphaned tool results)."""


class ProviderError(ChatStreamError):
    """The backend answered with a non-success HTTP status."""

    def __init__(self, status: int, body: str = "", message: str | None = None):
        self.status = status
        self.body = body
        super().__init__(message or f"API error {status}: {body}")


class AuthenticationFailed(ProviderError):
    def __init__(self, status: int = 401, body: str = ""):
        super().__init__(
            status, body,
            "Invalid API key. Please update your API key.",
        )


class ModelNotAvailable(ProviderError):
    def __init__(self, model: str, status: int = 404, body: str = ""):
        self.model = model
        super().__init__(status, body, f"Model {model} not available")


class RateLimited(ProviderError):
    def __init__(self, status: int = 429, body: str = ""):
        super().__init__(
            status, body, "Rate limit exceeded. Please try again later."
        )

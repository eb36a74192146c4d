from chatstream.capability import CapabilityCache
from chatstream.config import DecoderSettings, ProviderSettings, configure_logging
from chatstream.decoder import StreamDecoder, StreamResult, StreamStatus
from chatstream.errors import (
    AuthenticationFailed,
    ChatStreamError,
    EmptyResponseError,
    FrameParseError,
    InvalidRequestError,
    ModelNotAvailable,
    ProviderError,
    RateLimited,
    TransportError,
)
from chatstream.events import (
    StreamCancelled,
    StreamComplete,
    StreamEvent,
    TextEvent,
    ToolCallEvent,
)
from chatstream.instrumentation import instrument, uninstrument
from chatstream.message import (
    ChatMessage,
    MessageRole,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from chatstream.provider import ModelProvider, OpenAICompatibleProvider
from chatstream.tools import ToolDefinition

__all__ = [
    "AuthenticationFailed",
    "CapabilityCache",
    "ChatMessage",
    "ChatStreamError",
    "DecoderSettings",
    "EmptyResponseError",
    "FrameParseError",
    "InvalidRequestError",
    "MessageRole",
    "ModelNotAvailable",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "ProviderError",
    "ProviderSettings",
    "RateLimited",
    "StreamCancelled",
    "StreamComplete",
    "StreamDecoder",
    "StreamEvent",
    "StreamResult",
    "StreamStatus",
    "TextEvent",
    "ToolCallEvent",
    "ToolCallPart",
    "ToolDefinition",
    "ToolResultPart",
    "TransportError",
    "configure_logging",
    "instrument",
    "uninstrument",
]

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, aclosing
from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from chatstream.capability import CapabilityCache
from chatstream.config import DecoderSettings, ProviderSettings
from chatstream.decoder import StreamDecoder, StreamResult, StreamStatus
from chatstream.errors import (
    AuthenticationFailed,
    ChatStreamError,
    EmptyResponseError,
    InvalidRequestError,
    ModelNotAvailable,
    ProviderError,
    RateLimited,
    TransportError,
)
from chatstream.events import StreamCancelled, StreamComplete, StreamEvent, TextEvent
from chatstream.instrumentation import record_error, record_stream_result, stream_span
from chatstream.message import ChatMessage, convert_messages, validate_request
from chatstream.tools import ToolDefinition, convert_tools

logger = logging.getLogger(__name__)

_TOOL_ERROR = re.compile(r"tool|tool_choice|function_call|tool_calls", re.IGNORECASE)


class ModelProvider:
    """Base class for chat backends that stream decoder events."""

    system = "unknown"

    def stream_chat(
            self,
            model: str,
            messages: list[ChatMessage],
            tools: list[ToolDefinition] | None = None,
            cancel_event: asyncio.Event | None = None,
            **options: Any,
    ) -> AsyncIterator[StreamEvent]:
        raise NotImplementedError

    async def complete(
            self,
            model: str,
            messages: list[ChatMessage],
            tools: list[ToolDefinition] | None = None,
            **options: Any,
    ) -> StreamResult:
        """Drain ``stream_chat()`` and return the final summary."""
        result = None
        async for event in self.stream_chat(model, messages, tools, **options):
            if isinstance(event, (StreamComplete, StreamCancelled)):
                result = event.result
        if result is None:
            raise RuntimeError("stream_chat() ended without a terminal event")
        return result


class OpenAICompatibleProvider(ModelProvider):
    """Streams chat completions from an OpenAI-compatible endpoint.

    The raw ``text/event-stream`` body is fed through a
    :class:`StreamDecoder` rather than the SDK's own stream parser, so
    split frames, keepalives and resent tool calls are handled the same
    way for every backend.

    Tools are sent optimistically.  When a model rejects them the
    request is retried once without tools and the model is remembered
    as not tool capable in *capabilities*.

    Args:
        settings: Endpoint and client settings.
        decoder_settings: Passed to every :class:`StreamDecoder`.
        capabilities: Tool-support cache shared with the model catalog.
        client: Preconfigured ``AsyncOpenAI`` client, mostly for tests.
    """

    system = "openai"

    def __init__(
            self,
            settings: ProviderSettings,
            decoder_settings: DecoderSettings | None = None,
            capabilities: CapabilityCache | None = None,
            client: AsyncOpenAI | None = None,
    ):
        self.settings = settings
        self.decoder_settings = decoder_settings or DecoderSettings()
        self.capabilities = capabilities if capabilities is not None else CapabilityCache()
        if client is None:
            api_key = settings.resolved_api_key()
            if not api_key:
                raise ChatStreamError("An API key is required")
            client = AsyncOpenAI(
                base_url=settings.base_url,
                api_key=api_key,
                max_retries=settings.max_retries,
                timeout=settings.timeout,
            )
        self.client = client

    @classmethod
    def for_region(cls, region: str, api_key: str | None = None, **kwargs):
        """Provider for the Bedrock Mantle endpoint of *region*."""
        return cls(ProviderSettings.for_region(region, api_key=api_key), **kwargs)

    async def stream_chat(
            self,
            model: str,
            messages: list[ChatMessage],
            tools: list[ToolDefinition] | None = None,
            cancel_event: asyncio.Event | None = None,
            **options: Any,
    ) -> AsyncIterator[StreamEvent]:
        validate_request(messages)
        openai_messages = convert_messages(messages)
        if not openai_messages:
            raise InvalidRequestError("No valid messages to send")
        tool_schemas = self._tools_for(model, tools)
        logger.debug(
            f"chat request: model={model} stream=true "
            f"messages={len(openai_messages)} "
            f"tools={len(tool_schemas) if tool_schemas else 0}"
        )

        async with stream_span(self.system, model) as span:
            try:
                async with AsyncExitStack() as stack:
                    response = await self._open(
                        stack, model, openai_messages, tool_schemas, options,
                    )
                    content_type = response.headers.get("content-type", "").lower()
                    if "text/event-stream" in content_type:
                        decoder = StreamDecoder(self.decoder_settings)
                        events = decoder.iter(
                            response.iter_bytes(), cancel_event=cancel_event,
                        )
                    else:
                        logger.debug(
                            f"chat response is not SSE (content-type="
                            f"'{content_type}'); reading full body"
                        )
                        events = self._read_body(response)
                    events = await stack.enter_async_context(aclosing(events))
                    async for event in events:
                        if isinstance(event, (StreamComplete, StreamCancelled)):
                            record_stream_result(span, event.result)
                        yield event
            except ChatStreamError as e:
                logger.warning(f"chat exception: {e}")
                record_error(span, e)
                raise

    def _tools_for(self, model: str, tools: list[ToolDefinition] | None):
        if not self.settings.send_tools:
            return None
        if self.capabilities.get(model) is False:
            logger.debug(f"skipping tools for {model}: cached as unsupported")
            return None
        return convert_tools(tools)

    def _request(self, model, messages, tools, options):
        kwargs = dict(model=model, messages=messages, stream=True, **options)
        if tools:
            kwargs["tools"] = tools
        return self.client.chat.completions.with_streaming_response.create(**kwargs)

    async def _open(self, stack: AsyncExitStack, model, messages, tools, options):
        """Send the request, retrying once without tools if they are rejected."""
        try:
            response = await stack.enter_async_context(
                self._request(model, messages, tools, options)
            )
        except APIStatusError as e:
            if not tools or not _TOOL_ERROR.search(_error_text(e)):
                raise self._status_error(e, model) from e
            logger.warning(
                f"model rejected tools; caching toolCalling=false for "
                f"{model} and retrying without tools"
            )
            self.capabilities.set(model, False)
            return await self._open(stack, model, messages, None, options)
        except APIConnectionError as e:
            raise TransportError(f"Connection to {self.settings.base_url} failed: {e}") from e

        if tools and self.capabilities.set(model, True):
            logger.info(f"{model} accepted tools; caching toolCalling=true")
        return response

    def _status_error(self, err: APIStatusError, model: str) -> ProviderError:
        body = _error_text(err)
        logger.warning(
            f"chat error status={err.status_code} "
            f"body (truncated 2000 chars): {body[:2000]}"
        )
        if err.status_code == 401:
            return AuthenticationFailed(body=body)
        if err.status_code == 404:
            return ModelNotAvailable(model, body=body)
        if err.status_code == 429:
            return RateLimited(body=body)
        return ProviderError(err.status_code, body)

    async def _read_body(self, response) -> AsyncIterator[StreamEvent]:
        """Handle an endpoint that answered a stream request with plain JSON."""
        raw = await response.read()
        text = raw.decode("utf-8", errors="replace")
        logger.debug(f"chat raw body (truncated 4000 chars): {text[:4000]}")
        message_text = _message_text(text)
        if not message_text:
            logger.warning("chat parsed no message content")
            raise EmptyResponseError()
        yield TextEvent(text=message_text)
        yield StreamComplete(result=StreamResult(
            status=StreamStatus.COMPLETED, text=message_text,
        ))


def _error_text(err: APIStatusError) -> str:
    if err.body is not None:
        return err.body if isinstance(err.body, str) else json.dumps(err.body)
    return err.message or ""


def _message_text(body: str) -> str | None:
    try:
        parsed = json.loads(body)
        content = parsed["choices"][0]["message"]["content"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError):
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            p.get("text") or ""
            for p in content
            if isinstance(p, dict) and p.get("type") == "text"
        )
    return None

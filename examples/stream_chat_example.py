"""Streaming chat example: print decoded text and tool calls as they arrive.

Demonstrates:
- Building an OpenAICompatibleProvider from environment settings
- Offering a tool defined from a plain function
- Consuming the decoder's ordered event stream
- Cancelling a stream with Ctrl-C

Usage:
    CHATSTREAM_API_KEY=... uv run examples/stream_chat_example.py --model openai.gpt-oss-120b --region us-east-1
    uv run examples/stream_chat_example.py --base-url http://localhost:8000/v1 --model Qwen/Qwen3-8B --debug --trace
"""

import argparse
import asyncio
import signal

from chatstream import (
    ChatMessage,
    ChatStreamError,
    DecoderSettings,
    OpenAICompatibleProvider,
    ProviderSettings,
    StreamCancelled,
    StreamComplete,
    TextEvent,
    ToolCallEvent,
    ToolDefinition,
    configure_logging,
)


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from chatstream.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


def get_weather(city: str, days: int = 1):
    """Look up the weather forecast for a city."""


async def chat(provider: OpenAICompatibleProvider, model: str, prompt: str):
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, cancel.set)
    tools = [ToolDefinition.from_function(get_weather)]
    messages = [ChatMessage.user(prompt)]
    try:
        async for event in provider.stream_chat(
            model, messages, tools, cancel_event=cancel,
        ):
            if isinstance(event, TextEvent):
                print(event.text, end="", flush=True)
            elif isinstance(event, ToolCallEvent):
                print(f"\n[tool call {event.call_id}] {event.name}({event.arguments})")
            elif isinstance(event, StreamComplete):
                print(f"\n-- done ({event.result.chunk_count} chunks)")
            elif isinstance(event, StreamCancelled):
                print("\n-- cancelled")
    except ChatStreamError as e:
        print(f"\nerror: {e}")
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--model", required=True)
    parser.add_argument("--region", default="us-east-1")
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--prompt", default="What's the weather in Oslo tomorrow?")
    parser.add_argument("--placeholders", action="store_true")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    decoder_settings = DecoderSettings.from_env()
    if args.placeholders:
        decoder_settings.emit_placeholders = True
    configure_logging(debug=args.debug or decoder_settings.debug_logging)
    if args.trace:
        setup_tracing("chatstream-example")

    if args.base_url:
        settings = ProviderSettings(base_url=args.base_url)
    else:
        settings = ProviderSettings.for_region(args.region)
    provider = OpenAICompatibleProvider(settings, decoder_settings=decoder_settings)
    asyncio.run(chat(provider, args.model, args.prompt))


if __name__ == "__main__":
    main()

"""Settings for the stream decoder and the provider client.

Both are plain pydantic models; ``from_env()`` builds them from
``CHATSTREAM_*`` environment variables for callers without their own
configuration store.
"""

import logging
import os

from pydantic import BaseModel, Field

MANTLE_URL_TEMPLATE = "https://bedrock-mantle.{region}.api.aws/v1"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class DecoderSettings(BaseModel):
    """Tuning knobs for :class:`chatstream.decoder.StreamDecoder`.

    The stall thresholds are heuristics; nothing depends on their
    exact values.

    Args:
        emit_placeholders: Emit a single placeholder text event when
            the model is reasoning or stalled before any output.
            Off by default so placeholders never pollute transcripts.
        heartbeat_interval: Seconds between stall checks.
        first_byte_warning: Warn when no byte arrived for this long.
        data_stall_warning: Warn when bytes arrive but no ``data:``
            frame was seen for this long.
    """

    emit_placeholders: bool = False
    heartbeat_interval: float = Field(default=5.0, gt=0)
    first_byte_warning: float = Field(default=5.0, ge=0)
    data_stall_warning: float = Field(default=15.0, ge=0)
    thinking_placeholder: str = "Thinking…"
    waiting_placeholder: str = "(Waiting for model output…)"
    debug_logging: bool = False

    @classmethod
    def from_env(cls) -> "DecoderSettings":
        return cls(
            emit_placeholders=_env_bool("CHATSTREAM_EMIT_PLACEHOLDERS", False),
            heartbeat_interval=_env_float("CHATSTREAM_HEARTBEAT_INTERVAL", 5.0),
            first_byte_warning=_env_float("CHATSTREAM_FIRST_BYTE_WARNING", 5.0),
            data_stall_warning=_env_float("CHATSTREAM_DATA_STALL_WARNING", 15.0),
            debug_logging=_env_bool("CHATSTREAM_DEBUG", False),
        )


class ProviderSettings(BaseModel):
    """Connection settings for an OpenAI-compatible chat endpoint."""

    base_url: str
    api_key: str | None = None
    send_tools: bool = True
    timeout: float = Field(default=600.0, gt=0)
    max_retries: int = Field(default=5, ge=0)

    def resolved_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        return os.getenv("CHATSTREAM_API_KEY") or os.getenv("OPENAI_API_KEY")

    @classmethod
    def for_region(cls, region: str, **kwargs) -> "ProviderSettings":
        """Settings pointing at the Bedrock Mantle endpoint of *region*."""
        return cls(base_url=MANTLE_URL_TEMPLATE.format(region=region), **kwargs)

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        base_url = os.getenv("CHATSTREAM_BASE_URL")
        if not base_url:
            region = os.getenv("CHATSTREAM_REGION", "us-east-1")
            base_url = MANTLE_URL_TEMPLATE.format(region=region)
        return cls(
            base_url=base_url,
            send_tools=_env_bool("CHATSTREAM_SEND_TOOLS", True),
        )


def configure_logging(debug: bool = False, log_file: str | None = None) -> logging.Logger:
    """Attach handlers to the ``chatstream`` logger.

    The library never configures logging on import; applications call
    this (or set up ``logging`` themselves) to see decoder diagnostics.
    """
    root = logging.getLogger("chatstream")
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    formatter = logging.Formatter(
        '%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return root

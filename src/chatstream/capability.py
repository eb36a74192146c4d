import time
from collections.abc import Callable, Mapping


class CapabilityCache:
    """Per-model boolean capability flags with a time-to-live.

    Records what a backend has shown a model can do at runtime (for
    example whether it accepts ``tools``).  The cache is an explicit
    object handed to whoever needs it; there is no module-level
    instance.

    Args:
        ttl: Seconds an entry stays valid.  ``None`` keeps entries
            forever.
        clock: Monotonic time source, injectable for tests.

    Example::

        cache = CapabilityCache(ttl=24 * 3600)
        if cache.set("mistral.large", False):
            refresh_model_picker()
    """

    def __init__(
        self,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[bool, float]] = {}

    def get(self, model_id: str) -> bool | None:
        """Cached flag for *model_id*, or ``None`` if unknown or expired."""
        entry = self._entries.get(model_id)
        if entry is None:
            return None
        value, stored_at = entry
        if self.ttl is not None and self._clock() - stored_at > self.ttl:
            del self._entries[model_id]
            return None
        return value

    def set(self, model_id: str, value: bool) -> bool:
        """Store *value*; return ``True`` when the visible value changed."""
        previous = self.get(model_id)
        self._entries[model_id] = (value, self._clock())
        return previous != value

    def merge(self, values: Mapping[str, bool]) -> list[str]:
        """Store several flags; return the model ids whose value changed."""
        return [
            model_id for model_id, value in values.items()
            if self.set(model_id, value)
        ]

    def snapshot(self) -> dict[str, bool]:
        """All live entries, for persisting elsewhere."""
        return {
            model_id: value
            for model_id in list(self._entries)
            if (value := self.get(model_id)) is not None
        }

    def __len__(self) -> int:
        return len(self.snapshot())

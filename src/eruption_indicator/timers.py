"""Registry of main-loop timers so teardown can sweep every pending callback."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

AfterFn = Callable[[int, Callable[[], Any]], object]
AfterCancelFn = Callable[[object], None]

_LOGGER = logging.getLogger(__name__)

# Placeholder handle for a repeating timer whose callback is running.
_FIRING = object()


class TimerRegistry:
    """Keyed one-shot and repeating timers on top of an ``after``/``cancel`` pair.

    Scheduling a key that is already pending cancels the previous handle first,
    so a key never has more than one outstanding callback.
    """

    def __init__(self, after: AfterFn, after_cancel: AfterCancelFn) -> None:
        self._after = after
        self._after_cancel = after_cancel
        self._handles: Dict[str, object] = {}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule(self, key: str, delay_ms: int, callback: Callable[[], None]) -> object:
        self.cancel(key)

        def _fire() -> bool:
            self._handles.pop(key, None)
            callback()
            return False

        handle = self._after(delay_ms, _fire)
        self._handles[key] = handle
        return handle

    def schedule_repeating(self, key: str, interval_ms: int, callback: Callable[[], None]) -> object:
        self.cancel(key)

        def _tick() -> bool:
            self._handles[key] = _FIRING
            try:
                callback()
            finally:
                # The callback may have cancelled or replaced this key.
                if self._handles.get(key) is _FIRING:
                    self._handles[key] = self._after(interval_ms, _tick)
            return False

        handle = self._after(interval_ms, _tick)
        self._handles[key] = handle
        return handle

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        if handle is not _FIRING:
            self._after_cancel(handle)
        return True

    def cancel_all(self) -> int:
        keys = list(self._handles)
        for key in keys:
            self.cancel(key)
        if keys:
            _LOGGER.debug("Cancelled %d pending timer(s): %s", len(keys), ", ".join(keys))
        return len(keys)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def pending(self) -> List[str]:
        return list(self._handles)

    def __len__(self) -> int:
        return len(self._handles)


class Debouncer:
    """Coalesce a burst of values into one deferred call carrying the last value."""

    def __init__(self, timers: TimerRegistry, key: str, delay_ms: int, callback: Callable[[Any], None]) -> None:
        self.delay_ms = delay_ms
        self.callback = callback
        self._timers = timers
        self._key = key
        self._last_value: Optional[Any] = None

    def update(self, value: Any) -> None:
        self._last_value = value
        self._timers.schedule(self._key, self.delay_ms, self._fire)

    def cancel(self) -> None:
        self._timers.cancel(self._key)
        self._last_value = None

    @property
    def pending(self) -> bool:
        return self._timers.is_pending(self._key)

    def _fire(self) -> None:
        value, self._last_value = self._last_value, None
        if value is not None:
            self.callback(value)


__all__ = ["AfterCancelFn", "AfterFn", "Debouncer", "TimerRegistry"]

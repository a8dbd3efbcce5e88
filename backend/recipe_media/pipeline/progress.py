from __future__ import annotations
"""Progress sinks — where the transfer client reports upload percentage.

The transfer client only ever calls ``sink.update(percent)``. Callers pick the
adapter that fits them: a plain callback, an ``asyncio.Queue`` consumer, or
the state machine's own sink.
"""

import asyncio
from collections.abc import Callable
from typing import Protocol


class ProgressSink(Protocol):
    def update(self, percent: int) -> None: ...


class NullSink:
    def update(self, percent: int) -> None:
        pass


class CallbackSink:
    """Forward each update to ``callback(percent)``."""

    def __init__(self, callback: Callable[[int], None]):
        self._callback = callback

    def update(self, percent: int) -> None:
        self._callback(percent)


class QueueSink:
    """Push updates onto an asyncio queue for a consumer task."""

    def __init__(self, queue: asyncio.Queue[int]):
        self.queue = queue

    def update(self, percent: int) -> None:
        self.queue.put_nowait(percent)


class MonotonicProgress:
    """Clamp to 0..100 and drop anything that would move progress backwards.

    Wraps one transfer call; repeated values are dropped as well so the inner
    sink only sees strictly increasing percentages.
    """

    def __init__(self, inner: ProgressSink | None = None):
        self.inner = inner or NullSink()
        self.value = -1

    def update(self, percent: int) -> None:
        percent = max(0, min(100, int(percent)))
        if percent <= self.value:
            return
        self.value = percent
        self.inner.update(percent)

    def report_bytes(self, sent: int, total: int) -> None:
        if total <= 0:
            self.update(100)
            return
        self.update(round(sent * 100 / total))

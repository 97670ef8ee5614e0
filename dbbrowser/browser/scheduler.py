"""Cancellable timers for polling, timeouts and notification expiry.

Timers live in an arena keyed by integer tokens. Components keep the
token and cancel through the scheduler, so a superseded timer can never
fire against stale state. :class:`ManualScheduler` replaces the event
loop clock in tests.
"""

import asyncio
import heapq
import itertools
from typing import Callable, Dict, List, Optional, Tuple

TimerCallback = Callable[[], None]


class Scheduler:
    """Base class for timer arenas."""

    def __init__(self):
        self._tokens = itertools.count(1)

    def _next_token(self) -> int:
        return next(self._tokens)

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: TimerCallback) -> int:
        """Run ``callback`` after ``delay`` seconds; return its token."""
        raise NotImplementedError

    def cancel(self, token: Optional[int]) -> bool:
        """Cancel a pending timer. Unknown or fired tokens are ignored."""
        raise NotImplementedError

    def pending(self) -> int:
        """Number of timers that have neither fired nor been cancelled."""
        raise NotImplementedError

    def cancel_all(self) -> None:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Timers backed by ``loop.call_later`` on the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self._loop = loop
        self._handles: Dict[int, asyncio.TimerHandle] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: TimerCallback) -> int:
        token = self._next_token()

        def fire():
            if self._handles.pop(token, None) is not None:
                callback()

        self._handles[token] = self.loop.call_later(max(delay, 0.0), fire)
        return token

    def cancel(self, token: Optional[int]) -> bool:
        handle = self._handles.pop(token, None) if token is not None else None
        if handle is None:
            return False
        handle.cancel()
        return True

    def pending(self) -> int:
        return len(self._handles)

    def cancel_all(self) -> None:
        for token in list(self._handles):
            self.cancel(token)


class ManualScheduler(Scheduler):
    """Deterministic scheduler whose clock only moves when told to.

    ``advance()`` fires every timer that falls due, in due-time order,
    including timers scheduled by callbacks that run during the advance.
    """

    def __init__(self, start: float = 0.0):
        super().__init__()
        self._now = start
        self._queue: List[Tuple[float, int]] = []
        self._callbacks: Dict[int, TimerCallback] = {}

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> int:
        token = self._next_token()
        self._callbacks[token] = callback
        heapq.heappush(self._queue, (self._now + max(delay, 0.0), token))
        return token

    def cancel(self, token: Optional[int]) -> bool:
        return self._callbacks.pop(token, None) is not None

    def pending(self) -> int:
        return len(self._callbacks)

    def cancel_all(self) -> None:
        self._callbacks.clear()
        self._queue.clear()

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers. Returns how many fired."""
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, token = heapq.heappop(self._queue)
            callback = self._callbacks.pop(token, None)
            if callback is None:
                continue
            self._now = max(self._now, due)
            callback()
            fired += 1
        self._now = target
        return fired

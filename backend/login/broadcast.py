"""
Replay-latest multicast of session states.

Responsibilities:
- Hold the current state
- Deliver every published state to every live subscription, in order
- Preload each new subscription with the current state

Non-responsibilities:
- No transition logic (publishers decide what to publish)
- No backpressure: subscription buffers are unbounded
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from typing import Generic, TypeVar


T = TypeVar("T")


class StateSubscription(Generic[T]):
    """
    One observer's view of a StateBroadcaster.

    Async-iterable: yields buffered values in publication order and stops
    once the subscription or the broadcaster is closed and the buffer is
    empty. Must be consumed on the event loop it was created on.
    """

    def __init__(self, broadcaster: StateBroadcaster[T]) -> None:
        self._broadcaster = broadcaster
        self._buffer: deque[T] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False

    # ------------------------------------------------------------------
    # Delivery (called by the broadcaster under its lock)
    # ------------------------------------------------------------------

    def _deliver(self, value: T) -> None:
        if self._closed:
            return
        self._buffer.append(value)
        self._wakeup.set()

    def _finish(self) -> None:
        self._closed = True
        self._wakeup.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def drain(self) -> tuple[T, ...]:
        """
        Take all buffered values without waiting.

        Returns a FIFO-ordered tuple; empty when nothing is buffered.
        """
        if not self._buffer:
            return ()
        out = tuple(self._buffer)
        self._buffer.clear()
        return out

    def close(self) -> None:
        """Stop receiving values. Idempotent."""
        self._broadcaster._remove(self)  # pylint: disable=protected-access
        self._finish()

    def __aiter__(self) -> StateSubscription[T]:
        return self

    async def __anext__(self) -> T:
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()
        return self._buffer.popleft()


class StateBroadcaster(Generic[T]):
    """
    Current value + subscriber set, guarded by one mutex.

    Guarantees:
    - A new subscription's first value is the value current at subscribe time
    - A subscription never sees values published before it subscribed
    - All subscriptions see the same relative order
    """

    def __init__(self, initial: T) -> None:
        self._lock = threading.Lock()
        self._current = initial
        self._subscribers: list[StateSubscription[T]] = []
        self._closed = False

    @property
    def current(self) -> T:
        return self._current

    def subscribe(self) -> StateSubscription[T]:
        sub: StateSubscription[T] = StateSubscription(self)
        with self._lock:
            if self._closed:
                sub._finish()  # pylint: disable=protected-access
                return sub
            sub._deliver(self._current)  # pylint: disable=protected-access
            self._subscribers.append(sub)
        return sub

    def publish(self, value: T) -> None:
        with self._lock:
            self._current = value
            for sub in self._subscribers:
                sub._deliver(value)  # pylint: disable=protected-access

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def close(self) -> None:
        """End every subscription. Later subscribers get an empty stream."""
        with self._lock:
            self._closed = True
            subs = self._subscribers
            self._subscribers = []
        for sub in subs:
            sub._finish()  # pylint: disable=protected-access

    def _remove(self, sub: StateSubscription[T]) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

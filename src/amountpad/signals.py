"""In-process asynchronous signals.

A signal holds the latest value of something that changes over time (the
typed expression, the current exchange rates, the base currency) and
notifies listeners when it changes.  Consumers either subscribe for
ongoing changes or take the current value once with ``await current()``.

``CombinedSignal`` joins several signals with combine-latest semantics:
it caches the latest value of every source and recomputes whenever any
of them changes.  It is not a queue; intermediate values that are
overwritten before anyone looks are simply gone.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Any, Callable, Generic, Iterator, Protocol, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

Listener = Callable[[Any], None]

_UNSET: Any = object()


class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` detaches the listener."""

    def __init__(self, release: Callable[[], None]) -> None:
        self._release: Callable[[], None] | None = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def cancel(self) -> None:
        if self._release is not None:
            release, self._release = self._release, None
            release()


class Signal(Protocol[T]):
    """What the engine needs from an upstream source."""

    @property
    def has_value(self) -> bool: ...

    @property
    def value(self) -> T: ...

    def subscribe(self, listener: Callable[[T], None], *, replay: bool = True) -> Subscription: ...

    async def current(self) -> T: ...


class StateSignal(Generic[T]):
    """A mutable latest-value cell.

    ``set()`` only notifies when the new value differs from the current one
    (distinct-until-changed), so listeners never see the same value twice
    in a row.
    """

    def __init__(self, initial: Any = _UNSET, *, name: str = "") -> None:
        self.name = name
        self._value: Any = initial
        self._listeners: list[Callable[[T], None]] = []
        self._waiters: list[asyncio.Future] = []

    def __repr__(self) -> str:
        shown = "<unset>" if self._value is _UNSET else repr(self._value)
        return f"StateSignal({self.name or '?'}={shown})"

    @property
    def has_value(self) -> bool:
        return self._value is not _UNSET

    @property
    def value(self) -> T:
        if self._value is _UNSET:
            raise LookupError(f"Signal {self.name or '?'!r} has no value yet")
        return self._value

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set(self, value: T) -> bool:
        """Store *value*; returns True if listeners were notified."""
        if self._value is not _UNSET and self._value == value:
            return False
        self._value = value
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(value)
        for listener in list(self._listeners):
            listener(value)
        return True

    def subscribe(self, listener: Callable[[T], None], *, replay: bool = True) -> Subscription:
        """Register *listener*; with *replay* it is called at once with the current value."""
        self._listeners.append(listener)

        def release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        if replay and self._value is not _UNSET:
            listener(self._value)
        return Subscription(release)

    async def current(self) -> T:
        """Return the current value, waiting once for the first one if unset."""
        if self._value is not _UNSET:
            return self._value
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            return await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)


class CombinedSignal(StateSignal[R]):
    """Combine-latest over *sources*.

    Args:
        sources: Upstream signals, in the order *fn* receives them.
        fn: Pure function of the latest source values.
        optional: Indexes of sources that may be missing; *fn* receives
            ``None`` for them until they emit.  All other sources must
            have a value before the first computation.
    """

    def __init__(
        self,
        sources: Sequence[Signal[Any]],
        fn: Callable[..., R],
        *,
        optional: Sequence[int] = (),
        name: str = "",
    ) -> None:
        super().__init__(name=name)
        self._sources = list(sources)
        self._fn = fn
        self._optional = frozenset(optional)
        self._latest: list[Any] = [_UNSET] * len(self._sources)
        self._subscriptions: list[Subscription] = []
        self._hold_depth = 0
        self._dirty = False

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        """Subscribe to every source and compute the first value."""
        if self._subscriptions:
            return
        with self.hold():
            for index, source in enumerate(self._sources):
                self._subscriptions.append(source.subscribe(self._updater(index)))

    def close(self) -> None:
        """Release all source subscriptions."""
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Defer recomputation until the outermost ``hold`` exits.

        Several source writes made inside the block produce at most one
        new combined value.
        """
        self._hold_depth += 1
        try:
            yield
        finally:
            self._hold_depth -= 1
            if self._hold_depth == 0 and self._dirty:
                self._recompute()

    def _updater(self, index: int) -> Callable[[Any], None]:
        def update(value: Any) -> None:
            self._latest[index] = value
            if self._hold_depth:
                self._dirty = True
            else:
                self._recompute()

        return update

    def _recompute(self) -> None:
        self._dirty = False
        args: list[Any] = []
        for index, value in enumerate(self._latest):
            if value is _UNSET:
                if index not in self._optional:
                    return
                value = None
            args.append(value)
        self.set(self._fn(*args))

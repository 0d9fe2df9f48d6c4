"""Latest-value signals and combine-latest joins."""

from __future__ import annotations

import asyncio

import pytest

from amountpad.signals import CombinedSignal, StateSignal


class TestStateSignal:
    def test_unset_value(self) -> None:
        sig: StateSignal[int] = StateSignal(name="x")
        assert not sig.has_value
        with pytest.raises(LookupError, match="'x'"):
            sig.value

    def test_set_notifies_on_change_only(self) -> None:
        sig = StateSignal(1)
        seen: list[int] = []
        sig.subscribe(seen.append, replay=False)
        assert sig.set(2) is True
        assert sig.set(2) is False
        sig.set(3)
        assert seen == [2, 3]

    def test_subscribe_replays_current_value(self) -> None:
        sig = StateSignal("a")
        seen: list[str] = []
        sig.subscribe(seen.append)
        assert seen == ["a"]

    def test_subscribe_unset_does_not_replay(self) -> None:
        sig: StateSignal[str] = StateSignal()
        seen: list[str] = []
        sig.subscribe(seen.append)
        assert seen == []
        sig.set("b")
        assert seen == ["b"]

    def test_cancel_subscription(self) -> None:
        sig = StateSignal(0)
        seen: list[int] = []
        sub = sig.subscribe(seen.append, replay=False)
        assert sub.active
        sub.cancel()
        sub.cancel()
        assert not sub.active
        assert sig.listener_count == 0
        sig.set(1)
        assert seen == []

    def test_listener_errors_propagate(self) -> None:
        sig = StateSignal(0)

        def boom(value: int) -> None:
            raise RuntimeError("listener failed")

        sig.subscribe(boom, replay=False)
        with pytest.raises(RuntimeError, match="listener failed"):
            sig.set(1)

    def test_current_returns_existing_value(self) -> None:
        sig = StateSignal(5)
        assert asyncio.run(sig.current()) == 5

    def test_current_waits_for_first_value(self) -> None:
        async def scenario() -> int:
            sig: StateSignal[int] = StateSignal()
            task = asyncio.ensure_future(sig.current())
            await asyncio.sleep(0)
            assert not task.done()
            sig.set(7)
            return await task

        assert asyncio.run(scenario()) == 7

    def test_current_is_one_shot(self) -> None:
        async def scenario() -> tuple[int, int]:
            sig: StateSignal[int] = StateSignal()
            task = asyncio.ensure_future(sig.current())
            await asyncio.sleep(0)
            sig.set(1)
            first = await task
            sig.set(2)
            return first, sig.listener_count

        assert asyncio.run(scenario()) == (1, 0)

    def test_cancelled_current_leaves_no_waiter(self) -> None:
        async def scenario() -> StateSignal[int]:
            sig: StateSignal[int] = StateSignal()
            task = asyncio.ensure_future(sig.current())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return sig

        sig = asyncio.run(scenario())
        assert sig._waiters == []


class TestCombinedSignal:
    def test_waits_for_required_sources(self) -> None:
        a: StateSignal[int] = StateSignal()
        b = StateSignal(10)
        combined = CombinedSignal([a, b], lambda x, y: x + y)
        combined.start()
        assert not combined.has_value
        a.set(1)
        assert combined.value == 11

    def test_recomputes_on_any_change(self) -> None:
        a = StateSignal(1)
        b = StateSignal(2)
        combined = CombinedSignal([a, b], lambda x, y: x * y)
        combined.start()
        assert combined.value == 2
        b.set(5)
        assert combined.value == 5
        a.set(3)
        assert combined.value == 15

    def test_optional_sources_default_to_none(self) -> None:
        a = StateSignal("x")
        b: StateSignal[str] = StateSignal()
        combined = CombinedSignal([a, b], lambda x, y: (x, y), optional=(1,))
        combined.start()
        assert combined.value == ("x", None)
        b.set("y")
        assert combined.value == ("x", "y")

    def test_hold_batches_updates(self) -> None:
        a = StateSignal(1)
        b = StateSignal(1)
        calls: list[tuple[int, int]] = []

        def fn(x: int, y: int) -> int:
            calls.append((x, y))
            return x + y

        combined = CombinedSignal([a, b], fn)
        combined.start()
        seen: list[int] = []
        combined.subscribe(seen.append, replay=False)
        with combined.hold():
            a.set(2)
            with combined.hold():
                b.set(3)
            assert calls == [(1, 1)]
        assert calls == [(1, 1), (2, 3)]
        assert seen == [5]

    def test_hold_without_changes_does_not_recompute(self) -> None:
        a = StateSignal(1)
        calls: list[int] = []
        combined = CombinedSignal([a], lambda x: calls.append(x) or x)
        combined.start()
        with combined.hold():
            pass
        assert calls == [1]

    def test_distinct_output(self) -> None:
        a = StateSignal(1)
        combined = CombinedSignal([a], lambda x: x % 2)
        combined.start()
        seen: list[int] = []
        combined.subscribe(seen.append, replay=False)
        a.set(3)
        a.set(4)
        assert seen == [0]

    def test_close_releases_sources(self) -> None:
        a = StateSignal(1)
        combined = CombinedSignal([a], lambda x: x)
        combined.start()
        assert a.listener_count == 1
        combined.close()
        assert a.listener_count == 0
        a.set(2)
        assert combined.value == 1

    def test_start_is_idempotent(self) -> None:
        a = StateSignal(1)
        combined = CombinedSignal([a], lambda x: x)
        assert not combined.started
        combined.start()
        combined.start()
        assert combined.started
        assert a.listener_count == 1

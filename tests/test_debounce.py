"""Unit tests for the debounce controller."""

import asyncio

import pytest

from callrate import ConfigurationError, DebouncedFunction, debounce


class Recorder:
    """Callable that records every call it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __call__(self, *args):
        self.calls.append(args)


@pytest.mark.asyncio
async def test_delays_execution_until_calls_stop():
    fn = Recorder()
    debounced = debounce(fn, 50)

    debounced()
    debounced()
    debounced()
    assert fn.calls == []

    await asyncio.sleep(0.08)
    assert len(fn.calls) == 1


@pytest.mark.asyncio
async def test_each_call_resets_quiet_period():
    fn = Recorder()
    debounced = debounce(fn, 50)

    debounced()
    await asyncio.sleep(0.03)
    debounced()
    await asyncio.sleep(0.03)
    assert fn.calls == []

    await asyncio.sleep(0.04)
    assert len(fn.calls) == 1


@pytest.mark.asyncio
async def test_burst_executes_once_with_last_arguments():
    fn = Recorder()
    debounced = debounce(fn, 30)

    for value in range(5):
        assert debounced(value) is None

    await asyncio.sleep(0.06)
    assert fn.calls == [(4,)]


@pytest.mark.asyncio
async def test_leading_fires_immediately_then_trails_once():
    fn = Recorder()
    debounced = debounce(fn, 50, leading=True)

    debounced("a")
    assert fn.calls == [("a",)]

    debounced("b")
    debounced("c")
    await asyncio.sleep(0.08)

    assert fn.calls == [("a",), ("c",)]
    assert debounced.pending is False


@pytest.mark.asyncio
async def test_leading_isolated_call_does_not_fire_twice():
    fn = Recorder()
    debounced = debounce(fn, 30, leading=True)

    debounced("only")
    assert debounced.pending is True

    await asyncio.sleep(0.06)
    assert fn.calls == [("only",)]
    assert debounced.pending is False


@pytest.mark.asyncio
async def test_leading_rearms_after_burst_resolves():
    fn = Recorder()
    debounced = debounce(fn, 20, leading=True)

    debounced(1)
    await asyncio.sleep(0.04)
    debounced(2)

    assert fn.calls == [(1,), (2,)]
    debounced.cancel()


@pytest.mark.asyncio
async def test_max_wait_forces_execution_under_continuous_calls():
    fn = Recorder()
    debounced = debounce(fn, 50, max_wait_ms=80)

    # Without max_wait_ms the quiet timer would keep getting pushed back
    debounced()
    await asyncio.sleep(0.03)
    debounced()
    await asyncio.sleep(0.03)
    debounced()
    await asyncio.sleep(0.03)

    assert len(fn.calls) >= 1
    debounced.cancel()


@pytest.mark.asyncio
async def test_max_wait_keeps_firing_while_calls_continue():
    fn = Recorder()
    debounced = debounce(fn, 50, max_wait_ms=80)

    for step in range(15):
        debounced(step)
        await asyncio.sleep(0.02)

    assert len(fn.calls) >= 2
    # Every forced execution used the latest arguments available at the time
    assert [args[0] for args in fn.calls] == sorted(args[0] for args in fn.calls)
    debounced.cancel()


@pytest.mark.asyncio
async def test_cancel_prevents_execution():
    fn = Recorder()
    debounced = debounce(fn, 50, max_wait_ms=60)

    debounced()
    debounced.cancel()

    assert debounced.pending is False
    await asyncio.sleep(0.08)
    assert fn.calls == []


@pytest.mark.asyncio
async def test_flush_executes_immediately_with_latest_arguments():
    fn = Recorder()
    debounced = debounce(fn, 100)

    debounced("hello")
    debounced("world")
    debounced.flush()

    assert fn.calls == [("world",)]
    assert debounced.pending is False

    debounced.flush()
    await asyncio.sleep(0.12)
    assert fn.calls == [("world",)]


@pytest.mark.asyncio
async def test_flush_with_nothing_pending_is_noop():
    fn = Recorder()
    debounced = debounce(fn, 30)

    debounced.flush()
    assert fn.calls == []


@pytest.mark.asyncio
async def test_pending_reflects_state():
    debounced = debounce(lambda: None, 50)

    assert debounced.pending is False
    debounced()
    assert debounced.pending is True

    await asyncio.sleep(0.08)
    assert debounced.pending is False


@pytest.mark.asyncio
async def test_coroutine_function_runs_as_task():
    saved: list[str] = []

    @debounce(wait_ms=20)
    async def persist(value: str) -> None:
        await asyncio.sleep(0)
        saved.append(value)

    assert isinstance(persist, DebouncedFunction)
    persist("draft-1")
    persist("draft-2")

    await asyncio.sleep(0.05)
    assert saved == ["draft-2"]


@pytest.mark.asyncio
async def test_exception_from_leading_call_propagates():
    def boom() -> None:
        raise RuntimeError("leading failed")

    debounced = debounce(boom, 20, leading=True)

    with pytest.raises(RuntimeError, match="leading failed"):
        debounced()
    debounced.cancel()


def test_preserves_wrapped_metadata():
    def on_input(text: str) -> None:
        """Search as the user types."""

    debounced = debounce(on_input, 300)

    assert debounced.__name__ == "on_input"
    assert debounced.__doc__ == "Search as the user types."


@pytest.mark.parametrize(
    "kwargs",
    [
        {"wait_ms": -5},
        {"wait_ms": 10, "max_wait_ms": 0},
        {"wait_ms": 10, "max_wait_ms": -1},
        {"wait_ms": None},
    ],
)
def test_invalid_durations_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        debounce(lambda: None, **kwargs)

import asyncio

import pytest
from pydantic import ValidationError

from extend_client.errors import PollingTimeoutError
from extend_client.models import PollingConfig
from extend_client.polling import (
    apply_jitter,
    calculate_backoff_delay,
    calculate_hybrid_delay,
    estimate_backoff_attempt,
    poll_until_done,
)


def neutral():
    return 0.5


def highest():
    return 1.0


def lowest():
    return 0.0


@pytest.fixture
def fast_config() -> PollingConfig:
    """Short intervals so polling tests finish quickly."""
    return PollingConfig(
        fast_poll_duration_ms=1000,
        fast_poll_interval_ms=10,
        initial_delay_ms=10,
        max_delay_ms=50,
        jitter_fraction=0,
    )


class Sequence:
    """Async retrieve function returning the given results in order, repeating the last."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self):
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        return result


def test_backoff_grows_by_multiplier():
    delays = [
        calculate_backoff_delay(attempt, 1000, 30000, 0.25, random_source=neutral)
        for attempt in range(5)
    ]
    assert delays == [1000, 2000, 4000, 8000, 16000]


def test_backoff_caps_at_max_delay():
    assert calculate_backoff_delay(10, 1000, 30000, 0.25, random_source=neutral) == 30000
    assert calculate_backoff_delay(0, 1000, 500, 0.25, random_source=neutral) == 500


def test_backoff_survives_huge_attempt_numbers():
    assert calculate_backoff_delay(100000, 1000, 30000, 0, 2.0) == 30000


def test_jitter_bounds():
    assert calculate_backoff_delay(0, 1000, 30000, 0.25, random_source=highest) == 1250
    assert calculate_backoff_delay(0, 1000, 30000, 0.25, random_source=lowest) == 750
    assert calculate_backoff_delay(0, 1000, 30000, 0.5, random_source=highest) == 1500


def test_zero_jitter_ignores_random_source():
    assert calculate_backoff_delay(0, 1000, 30000, 0, random_source=highest) == 1000
    assert calculate_backoff_delay(0, 1000, 30000, 0, random_source=lowest) == 1000


def test_jitter_rounds_to_whole_milliseconds():
    delay = apply_jitter(1000, 0.25, lambda: 0.7513)
    assert isinstance(delay, int)
    assert delay == 1126


def test_fast_phase_uses_fixed_interval():
    config = PollingConfig(jitter_fraction=0)
    assert calculate_hybrid_delay(0, config) == 1000
    assert calculate_hybrid_delay(15000, config) == 1000
    assert calculate_hybrid_delay(29999, config) == 1000


def test_fast_phase_applies_jitter():
    config = PollingConfig(fast_poll_interval_ms=500)
    assert calculate_hybrid_delay(0, config, random_source=highest) == 625
    assert calculate_hybrid_delay(0, config, random_source=lowest) == 375


def test_backoff_phase_starts_at_initial_delay():
    config = PollingConfig(jitter_fraction=0)
    assert calculate_hybrid_delay(30000, config) == 1000


def test_backoff_attempt_is_derived_from_elapsed_time():
    config = PollingConfig(
        fast_poll_duration_ms=0, initial_delay_ms=1000, backoff_multiplier=2, jitter_fraction=0
    )
    # 1000 + 2000 spent, third wait (attempt 2) is in progress after 4000ms
    assert estimate_backoff_attempt(4000, 1000, 2) == 2
    assert calculate_hybrid_delay(4000, config) == 4000
    assert calculate_hybrid_delay(500, config) == 1000


def test_linear_multiplier_keeps_initial_delay():
    config = PollingConfig(backoff_multiplier=1, initial_delay_ms=2000, jitter_fraction=0)
    for elapsed in (30000, 45000, 120000, 10_000_000):
        assert calculate_hybrid_delay(elapsed, config) == 2000
    assert estimate_backoff_attempt(10000, 2000, 1) == 5


def test_delays_stay_within_bounds():
    config = PollingConfig()
    for elapsed in range(0, 3_600_000, 7919):
        for source in (lowest, neutral, highest):
            delay = calculate_hybrid_delay(elapsed, config, random_source=source)
            assert 0 < delay <= config.max_delay_ms * (1 + config.jitter_fraction)


def test_deterministic_without_jitter():
    config = PollingConfig(jitter_fraction=0)
    elapsed_values = range(0, 600_000, 1000)
    first = [calculate_hybrid_delay(e, config, random_source=lowest) for e in elapsed_values]
    second = [calculate_hybrid_delay(e, config, random_source=highest) for e in elapsed_values]
    assert first == second
    assert all(0 < delay <= config.max_delay_ms for delay in first)


def test_config_rejects_full_jitter():
    with pytest.raises(ValidationError):
        PollingConfig(jitter_fraction=1)


def test_config_defaults():
    config = PollingConfig()
    assert config.max_wait_ms is None
    assert config.fast_poll_duration_ms == 30000
    assert config.fast_poll_interval_ms == 1000
    assert config.initial_delay_ms == 1000
    assert config.max_delay_ms == 30000
    assert config.backoff_multiplier == 1.15
    assert config.jitter_fraction == 0.25


@pytest.mark.asyncio
async def test_returns_immediately_when_already_terminal():
    retrieve = Sequence({"status": "DONE", "value": 42})

    result = await poll_until_done(retrieve, lambda r: r["status"] == "DONE")

    assert result == {"status": "DONE", "value": 42}
    assert retrieve.calls == 1


@pytest.mark.asyncio
async def test_returns_first_terminal_result(fast_config):
    retrieve = Sequence(
        {"status": "PROCESSING"},
        {"status": "PROCESSING"},
        {"status": "PROCESSED", "n": 3},
        {"status": "PROCESSED", "n": 4},
    )

    result = await poll_until_done(
        retrieve, lambda r: r["status"] != "PROCESSING", fast_config
    )

    assert result == {"status": "PROCESSED", "n": 3}
    assert retrieve.calls == 3


@pytest.mark.asyncio
async def test_flapping_predicate_stops_at_first_terminal(fast_config):
    """Progress is assumed monotonic: nothing is retrieved after the first terminal result."""
    retrieve = Sequence({"status": "PROCESSING"}, {"status": "DONE"}, {"status": "PROCESSING"})

    result = await poll_until_done(retrieve, lambda r: r["status"] == "DONE", fast_config)

    assert result == {"status": "DONE"}
    assert retrieve.calls == 2


@pytest.mark.asyncio
async def test_times_out_after_max_wait(fast_config):
    config = fast_config.model_copy(update={"max_wait_ms": 50})
    retrieve = Sequence({"status": "PROCESSING"})

    with pytest.raises(PollingTimeoutError) as exc_info:
        await poll_until_done(retrieve, lambda r: False, config)

    assert exc_info.value.max_wait_ms == 50
    assert exc_info.value.elapsed_ms >= 50
    assert "Polling timed out" in str(exc_info.value)
    assert retrieve.calls > 1


@pytest.mark.asyncio
async def test_retrieve_errors_propagate_unwrapped(fast_config):
    calls = 0

    async def retrieve():
        nonlocal calls
        calls += 1
        if calls == 2:
            raise ConnectionError("boom")
        return {"status": "PROCESSING"}

    with pytest.raises(ConnectionError, match="boom"):
        await poll_until_done(retrieve, lambda r: False, fast_config)
    assert calls == 2


@pytest.mark.asyncio
async def test_cancellation_stops_polling(fast_config):
    retrieve = Sequence({"status": "PROCESSING"})
    task = asyncio.create_task(poll_until_done(retrieve, lambda r: False, fast_config))

    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    calls_at_cancel = retrieve.calls
    await asyncio.sleep(0.05)
    assert retrieve.calls == calls_at_cancel


@pytest.mark.asyncio
async def test_concurrent_polls_are_independent(fast_config):
    retrievers = [
        Sequence(*([{"status": "PROCESSING"}] * n + [{"status": "DONE", "id": n}]))
        for n in range(3)
    ]

    results = await asyncio.gather(
        *[poll_until_done(r, lambda x: x["status"] == "DONE", fast_config) for r in retrievers]
    )

    assert [result["id"] for result in results] == [0, 1, 2]
    assert [r.calls for r in retrievers] == [1, 2, 3]


@pytest.mark.asyncio
async def test_sleep_is_clamped_to_deadline():
    config = PollingConfig(fast_poll_interval_ms=5000, max_wait_ms=50, jitter_fraction=0)
    retrieve = Sequence({"status": "PROCESSING"})
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(PollingTimeoutError) as exc_info:
        await poll_until_done(retrieve, lambda r: False, config)

    assert loop.time() - started < 1
    assert retrieve.calls == 2
    assert exc_info.value.elapsed_ms >= 50

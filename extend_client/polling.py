"""
Hybrid polling: fixed-interval fast polls for an initial window, then
exponential backoff with proportional jitter.

With the default configuration a run is polled every second for the first
30 seconds, after which the interval grows by 1.15x per backoff attempt up to
30 seconds between polls.
"""

import asyncio
import math
import random
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from extend_client.errors import PollingTimeoutError
from extend_client.models import PollingConfig

T = TypeVar("T")

RandomSource = Callable[[], float]


def apply_jitter(
    delay_ms: float, jitter_fraction: float, random_source: RandomSource = random.random
) -> int:
    """Randomizes a delay by +/- jitter_fraction and rounds it to whole milliseconds"""
    jitter = (random_source() * 2 - 1) * jitter_fraction
    return max(1, round(delay_ms * (1 + jitter)))


def calculate_backoff_delay(
    attempt: int,
    initial_delay_ms: float,
    max_delay_ms: float,
    jitter_fraction: float,
    backoff_multiplier: float = 2.0,
    random_source: RandomSource = random.random,
) -> int:
    """Calculates initial_delay * multiplier^attempt, capped at max_delay, with jitter"""
    try:
        exponential_delay = initial_delay_ms * backoff_multiplier**attempt
    except OverflowError:
        exponential_delay = max_delay_ms
    capped_delay = min(exponential_delay, max_delay_ms)
    return apply_jitter(capped_delay, jitter_fraction, random_source)


def estimate_backoff_attempt(
    time_in_backoff_ms: float, initial_delay_ms: float, backoff_multiplier: float
) -> int:
    """
    Estimates how many backoff waits fit into the time spent in the backoff phase.

    Inverts the geometric series S = a * (r^n - 1) / (r - 1) for n, so the
    schedule depends only on elapsed time and not on how many polls actually
    happened. Slow retrievals therefore advance the schedule as if the
    idealized delays had been used; the result is an estimate.
    """
    if backoff_multiplier == 1:
        return math.floor(time_in_backoff_ms / initial_delay_ms)

    inner_value = time_in_backoff_ms * (backoff_multiplier - 1) / initial_delay_ms + 1
    if inner_value <= 0:
        return 0
    return max(0, math.floor(math.log(inner_value) / math.log(backoff_multiplier)))


def calculate_hybrid_delay(
    elapsed_ms: float,
    config: PollingConfig,
    random_source: RandomSource = random.random,
) -> int:
    """Calculates the next wait from the elapsed time since polling started"""
    if elapsed_ms < config.fast_poll_duration_ms:
        return apply_jitter(
            config.fast_poll_interval_ms, config.jitter_fraction, random_source
        )

    attempt = estimate_backoff_attempt(
        elapsed_ms - config.fast_poll_duration_ms,
        config.initial_delay_ms,
        config.backoff_multiplier,
    )
    return calculate_backoff_delay(
        attempt,
        config.initial_delay_ms,
        config.max_delay_ms,
        config.jitter_fraction,
        config.backoff_multiplier,
        random_source,
    )


async def poll_until_done(
    retrieve: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    config: Optional[PollingConfig] = None,
    *,
    random_source: RandomSource = random.random,
) -> T:
    """
    Calls retrieve until is_terminal accepts its result, and returns that result.

    Polls indefinitely unless config.max_wait_ms is set, in which case
    PollingTimeoutError is raised once that much time has passed without a
    terminal result. Exceptions raised by retrieve propagate unchanged and
    are never retried here. Cancelling the awaiting task stops polling at the
    pending retrieval or sleep.
    """
    config = config or PollingConfig()
    loop = asyncio.get_running_loop()
    start_time = loop.time()

    while True:
        result = await retrieve()

        if is_terminal(result):
            return result

        elapsed_ms = (loop.time() - start_time) * 1000

        if config.max_wait_ms is not None and elapsed_ms >= config.max_wait_ms:
            message = (
                f"Polling timed out after {elapsed_ms:.0f}ms (max: {config.max_wait_ms:.0f}ms)"
            )
            logger.warning(message)
            raise PollingTimeoutError(
                message,
                elapsed_ms,
                config.max_wait_ms,
            )

        delay_ms: float = calculate_hybrid_delay(elapsed_ms, config, random_source)

        # Never sleep past the deadline
        if config.max_wait_ms is not None:
            delay_ms = min(delay_ms, config.max_wait_ms - elapsed_ms)

        logger.debug(
            f"Not terminal after {elapsed_ms:.0f}ms, waiting {delay_ms:.0f}ms before next poll"
        )
        await asyncio.sleep(delay_ms / 1000)

import time
from typing import Callable, Optional


def _sleep_ms(ms: float) -> None:
    time.sleep(ms / 1000)


def wait_until(
    predicate: Callable[[], bool],
    timeout_ms: float,
    interval_ms: float,
    sleep: Callable[[float], None] = _sleep_ms,
    clock: Callable[[], float] = time.monotonic,
    on_tick: Optional[Callable[[int, float], None]] = None,
) -> bool:
    """Poll ``predicate`` until it returns True or ``timeout_ms`` elapses.

    The predicate is checked immediately, then after every ``interval_ms``.
    The final sleep is shortened so the ceiling is not overshot by a whole
    interval.

    Args:
        predicate: Condition to wait for
        timeout_ms: Ceiling in milliseconds
        interval_ms: Time between checks in milliseconds
        sleep: Function sleeping for a number of milliseconds
        clock: Monotonic clock returning seconds
        on_tick: Called after each failed check with (checks so far, elapsed seconds)

    Returns:
        True if the predicate held before the ceiling, False otherwise
    """
    start = clock()
    deadline = start + timeout_ms / 1000
    checks = 0
    while True:
        if predicate():
            return True
        checks += 1
        now = clock()
        remaining_ms = (deadline - now) * 1000
        if remaining_ms <= 0:
            return False
        if on_tick:
            on_tick(checks, now - start)
        sleep(min(interval_ms, remaining_ms))


def device_type_for_width(width: Optional[int]) -> str:
    """Classify a viewport width as mobile, tablet or desktop."""
    if width is None:
        return "desktop"
    if width < 768:
        return "mobile"
    if width < 1024:
        return "tablet"
    return "desktop"


def truncate(text: str, length: int = 50) -> str:
    """Shorten text for log lines."""
    return text if len(text) <= length else f"{text[:length]}..."

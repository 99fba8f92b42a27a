from dataclasses import dataclass

from .decision import Decision, DecisionReason


@dataclass(frozen=True)
class WindowBounds:
    current_time: int
    current_window_start: int
    previous_window_start: int
    elapsed: int


def window_bounds(now_s: float, window_size_seconds: int) -> WindowBounds:
    """Align ``now_s`` (truncated to whole seconds) to fixed windows."""
    current_time = int(now_s)
    current_window_start = current_time - (current_time % window_size_seconds)
    return WindowBounds(
        current_time=current_time,
        current_window_start=current_window_start,
        previous_window_start=current_window_start - window_size_seconds,
        elapsed=current_time - current_window_start,
    )


def weighted_rate(
    previous_count: int, current_count: int, elapsed: int, window_size_seconds: int
) -> float:
    """Blend the previous window's count, decayed linearly, with the current one."""
    weight = (window_size_seconds - elapsed) / window_size_seconds
    return previous_count * weight + current_count


def sliding_window_decide(
    bounds: WindowBounds,
    window_size_seconds: int,
    previous_count: int,
    current_count: int,
    limit: int,
) -> Decision:
    """
    Weighted sliding-window counter pure decision function.

    Args:
        bounds: window alignment for the current request
        window_size_seconds: width of each fixed window
        previous_count: entries recorded in [previous_window_start, current_window_start)
        current_count: entries recorded in [current_window_start, current_time]
        limit: maximum admitted requests per effective window

    Returns:
        Decision; a rate equal to the limit is rejected.
    """
    rate = weighted_rate(previous_count, current_count, bounds.elapsed, window_size_seconds)
    if rate >= limit:
        return Decision(
            allowed=False,
            reason=DecisionReason.OVER_LIMIT,
            limit=limit,
            weighted_rate=rate,
            retry_after_s=window_size_seconds - bounds.elapsed,
        )
    return Decision(
        allowed=True,
        reason=DecisionReason.UNDER_LIMIT,
        limit=limit,
        weighted_rate=rate,
    )

from __future__ import annotations

from contextlib import contextmanager
from functools import wraps
from time import perf_counter
from typing import Callable, Iterator, ParamSpec, TypeVar

from .trace import get_current_trace

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def timed_stage(stage: str) -> Iterator[None]:
    """Adds the elapsed wall time of the block to the active trace, if any."""
    started = perf_counter()
    try:
        yield
    finally:
        trace = get_current_trace()
        if trace is not None:
            trace.record_stage_time(stage, (perf_counter() - started) * 1000.0)


def instrument_stage(stage: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    # Handlers are synchronous; every instrumented callable runs in the worker thread.
    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with timed_stage(stage):
                return func(*args, **kwargs)

        return wrapper

    return decorator

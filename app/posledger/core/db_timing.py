from __future__ import annotations

from contextvars import ContextVar

_request_timer: ContextVar["DbTimer | None"] = ContextVar("request_db_timer", default=None)


class DbTimer:
    """Accumulates SQL execution time for the request running in the current context.

    The timer object itself is stored in the context variable and mutated in place,
    so time spent in threadpool endpoints (which run on a copy of the context) is
    still counted.
    """

    def __init__(self) -> None:
        self._token = None
        self.elapsed_ms: float = 0.0

    def __enter__(self) -> "DbTimer":
        self._token = _request_timer.set(self)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        _request_timer.reset(self._token)


def timing_active() -> bool:
    return _request_timer.get() is not None


def record_query_time(delta_ms: float) -> None:
    timer = _request_timer.get()
    if timer is None:
        return
    timer.elapsed_ms += delta_ms

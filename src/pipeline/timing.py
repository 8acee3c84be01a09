"""Per-stage timing for the interpretation pipeline.

``@timed_stage`` records how long a stage function took into the list opened
by ``collect_timings()`` and into the stage latency histogram. Outside a
``collect_timings`` block only the histogram is updated.

    with collect_timings() as timings:
        state = await extract_stage(state)
    result = result.model_copy(update={"timings": tuple(timings)})
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import logging
import time
from typing import List, Optional

from taskflow_ai.metrics import STAGE_LATENCY_SECONDS, record
from taskflow_ai.models import StageTiming

logger = logging.getLogger(__name__)

_current_timings: contextvars.ContextVar[Optional[List[StageTiming]]] = contextvars.ContextVar(
    "_current_timings", default=None
)


class collect_timings:
    """Context manager activating timing collection for ``@timed_stage``."""

    def __enter__(self) -> List[StageTiming]:
        self._timings: List[StageTiming] = []
        self._token = _current_timings.set(self._timings)
        return self._timings

    def __exit__(self, *exc) -> None:
        _current_timings.reset(self._token)


def timed_stage(name: str):
    """Record the duration of a stage, sync or async, including failed runs."""

    def decorator(fn):
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def wrapper(*args, **kwargs):
                timings = _current_timings.get(None)
                t0 = time.monotonic_ns()
                try:
                    return await fn(*args, **kwargs)
                finally:
                    _record(timings, name, t0)

        else:

            @functools.wraps(fn)
            def wrapper(*args, **kwargs):
                timings = _current_timings.get(None)
                t0 = time.monotonic_ns()
                try:
                    return fn(*args, **kwargs)
                finally:
                    _record(timings, name, t0)

        return wrapper

    return decorator


def _record(timings: Optional[List[StageTiming]], name: str, t0: int) -> None:
    elapsed_ns = time.monotonic_ns() - t0
    duration_ms = elapsed_ns // 1_000_000
    logger.debug("%s: %d ms", name, duration_ms)
    record(STAGE_LATENCY_SECONDS, amount=elapsed_ns / 1e9, observe=True, stage=name)
    if timings is not None:
        timings.append(StageTiming(stage=name, duration_ms=duration_ms))

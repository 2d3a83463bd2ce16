"""
Evaluation-cache switch and trace context.

Densities memoize their last value and rely on value-dirty notifications from
their variables to know when it is stale. Code that moves a variable many times
in a row without caring about those notifications (an integrator sampling an
observable, for instance) must switch the memoization off for the duration:

>>> with EvalCacheManager.disable_caching():
...     for x in points:
...         observable.set_val(x)
...         values.append(density.get_val())

While caching is disabled, densities neither read nor store memoized values.
Variables still propagate value-dirty notifications, so a value memoized
before the block is recomputed after it. The switch is counted, so
nested blocks compose, and it is held in a :class:`~contextvars.ContextVar`,
so it is local to the current thread/context.
"""

import itertools
import time
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from binsampling.log import logger

from .perf import StatsTool

__all__ = ["EvalCacheManager", "TraceManager", "disable_caching"]


class EvalCacheManager:
    """Manage the context-local "caching disabled" condition."""
    _DISABLE_DEPTH: ContextVar[int] = ContextVar("_EVAL_DISABLE_DEPTH", default=0)

    @classmethod
    @contextmanager
    def disable_caching(cls) -> Generator[None, None, None]:
        """
        Disable value memoization for the extent of the block.

        The previous state is restored on exit, including when the block raises.
        """
        token = cls._DISABLE_DEPTH.set(cls._DISABLE_DEPTH.get() + 1)
        try:
            yield
        finally:
            cls._DISABLE_DEPTH.reset(token)

    @classmethod
    def cache_enabled(cls) -> bool:
        """Return whether value memoization is enabled for the current ctx."""
        return cls._DISABLE_DEPTH.get() == 0


def disable_caching():
    """Shorthand for :meth:`EvalCacheManager.disable_caching`."""
    return EvalCacheManager.disable_caching()


# --- runtime trace context (run-level id + call path) ---
class TraceManager:
    """Debug-level tracing of nested evaluation phases."""
    _CALC_PATH: ContextVar[tuple[str, ...]] = ContextVar("_CALC_PATH", default=())
    _CALC_RUN_ID: ContextVar[int | None] = ContextVar("_CALC_RUN_ID", default=None)
    _RUN_COUNTER = itertools.count(1)

    @staticmethod
    def _node_label(node: Any) -> str:
        return getattr(node, "name", node.__class__.__name__)

    @classmethod
    def trace_cache_event(cls, node: Any, event: str, payload: dict | None = None) -> None:
        """Log a cache-related event (e.g. 'hit' / 'miss') for `node`."""
        path = cls._CALC_PATH.get()
        run_id = cls._CALC_RUN_ID.get()
        prefix = f"calc#{run_id}[cache] {' > '.join((*path, cls._node_label(node)))}"
        msg = f"{prefix} | {event}"
        if payload is not None:
            msg = f"{msg}: {payload}"
        logger.debug(msg)

    @classmethod
    @contextmanager
    def trace_phase(cls, node: Any, phase: str) -> Iterator[int]:
        """
        Log entry and exit (with elapsed time) of ``phase`` on ``node``.

        The outermost phase allocates a run id that nested phases reuse, so the
        records of one evaluation can be grouped.
        """
        run_token = None
        run_id = cls._CALC_RUN_ID.get()
        if run_id is None:
            run_id = next(cls._RUN_COUNTER)
            run_token = cls._CALC_RUN_ID.set(run_id)

        new_path = (*cls._CALC_PATH.get(), cls._node_label(node))
        path_token = cls._CALC_PATH.set(new_path)
        prefix = f"calc#{run_id} : {' > '.join(new_path)}"

        logger.debug("%s | enter: %s", prefix, phase)
        start = time.perf_counter()
        try:
            yield run_id
        finally:
            elapsed = time.perf_counter() - start
            logger.debug("%s | leave: %s (elapsed=%s)", prefix, phase, StatsTool._format_time(elapsed))
            cls._CALC_PATH.reset(path_token)
            if run_token is not None:
                cls._CALC_RUN_ID.reset(run_token)

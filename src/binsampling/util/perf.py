"""
perf.py
=======

Timing and memory bookkeeping for the evaluation paths of binsampling.

Bin sampling trades accuracy for run time: every bin average costs a full
adaptive integration (21 density evaluations per initial interval, more when
the integrator subdivides). :class:`PerfStats` measures where the time of a
batch evaluation goes and reports it through a logger.

Classes
-------
StatsTool
    Base class for formatting time and memory statistics.
StepInfo
    Stores the statistics of a single step.
PerfStats
    Profiles named steps within a block and reports them as a table.
"""

import contextlib
import logging
import time
import tracemalloc


class StatsTool:
    """Formatting helpers shared by the statistics containers."""

    @staticmethod
    def _format_time(t):
        if t is None:
            return "-"
        if t < 1e-3:
            return f"{t*1e6:.1f} μs"
        elif t < 1:
            return f"{t*1e3:.2f} ms"
        elif t < 60:
            return f"{t:.3f} s"
        else:
            return f"{t/60:.2f} min"

    @staticmethod
    def _format_mem(m):
        if m is None:
            return "-"
        mabs = abs(m)
        if mabs < 1024:
            return f"{m:.1f} B"
        elif mabs < 1048576:        # 1024**2
            return f"{m/1024:.1f} KiB"
        elif mabs < 1073741824:      # 1024**3
            return f"{m/1048576:.2f} MiB"
        else:
            return f"{m/1073741824:.2f} GiB"


class StepInfo(StatsTool):
    """
    Statistics of one profiled step.

    Attributes
    ----------
    time : float or None
        Wall-clock time of the step, in seconds.
    calls : int
        How many times the step was entered.
    memory_start, memory_end, memory_peak : int or None
        Traced memory (bytes) at entry, exit and the peak in between.
    """

    def __init__(self):
        self.time = None
        self.calls = 0
        self.memory_peak = None
        self.memory_start = None
        self.memory_end = None

    def __repr__(self):
        return (f"StepInfo(Time={self._format_time(self.time)}, calls={self.calls}, "
                f"Peak={self._format_mem(self.max_memory_used)})")

    @property
    def memory_used(self):
        if self.memory_start is not None and self.memory_end is not None:
            return self.memory_end - self.memory_start
        return None

    @property
    def max_memory_used(self):
        if self.memory_peak is not None and self.memory_start is not None:
            return self.memory_peak - self.memory_start
        return None


class PerfStats(StatsTool):
    """
    Profiles named steps within a block and reports statistics.

    Steps with the same name are accumulated, so a step entered once per bin
    reports the total time spent in it together with the number of calls.

    Parameters
    ----------
    time : bool, optional
        Enable time profiling (default True).
    memory : bool, optional
        Enable memory profiling with :mod:`tracemalloc` (default False).
    tracemalloc_nframe : int, optional
        Number of frames to store in tracemalloc (default 1).
    """

    def __init__(self, time=True, memory=False, tracemalloc_nframe=1):
        self.time_enabled = time
        self.memory_enabled = memory
        self.tracemalloc_nframe = tracemalloc_nframe
        self.steps: dict[str, StepInfo] = {}
        self._start_time = None
        self._mem_start = None
        self._mem_end = None
        self._total_time = None
        self._tracemalloc_started = False

    @property
    def enabled(self) -> bool:
        return bool(self.time_enabled or self.memory_enabled)

    def reset(self):
        self.steps.clear()
        self._start_time = None
        self._mem_start = None
        self._mem_end = None
        self._total_time = None

    def __enter__(self):
        self.reset()
        self._start_time = time.perf_counter() if self.time_enabled else None
        if self.memory_enabled:
            self._tracemalloc_started = not tracemalloc.is_tracing()
            if self._tracemalloc_started:
                tracemalloc.start(self.tracemalloc_nframe)
            self._mem_start, _ = tracemalloc.get_traced_memory()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.time_enabled and self._start_time is not None:
            self._total_time = time.perf_counter() - self._start_time
        if self.memory_enabled:
            self._mem_end, _ = tracemalloc.get_traced_memory()
            if self._tracemalloc_started:
                tracemalloc.stop()
                self._tracemalloc_started = False

    @contextlib.contextmanager
    def step(self, name):
        """
        Context manager accumulating statistics under ``name``.

        Raises
        ------
        RuntimeError
            If profiling is enabled but PerfStats is not used as a context manager.
        """
        if not self.enabled:
            yield None
            return
        if (self.time_enabled and self._start_time is None) or \
           (self.memory_enabled and self._mem_start is None):
            raise RuntimeError("PerfStats must be used as a context manager (with ... as ...) before calling step.")
        info = self.steps.setdefault(name, StepInfo())
        if self.memory_enabled:
            current, _ = tracemalloc.get_traced_memory()
            if info.memory_start is None:
                info.memory_start = current
            tracemalloc.reset_peak()
        t0 = time.perf_counter() if self.time_enabled else None
        try:
            yield info
        finally:
            info.calls += 1
            if t0 is not None:
                info.time = (info.time or 0.0) + (time.perf_counter() - t0)
            if self.memory_enabled:
                info.memory_end, peak = tracemalloc.get_traced_memory()
                info.memory_peak = peak if info.memory_peak is None else max(info.memory_peak, peak)

    def report(self, logger: logging.Logger | None = None, title: str = "") -> str:
        """
        Log (or print) a table of the profiled steps.

        Returns the rendered table, or an empty string when profiling is off.
        """
        if not self.enabled:
            return ""
        header = (
            f"{'Step':<15} | {'Calls':>7} | {'Time':>12} | {'Peak Mem':>15}"
        )
        lines = [title] if title else []
        lines.extend(["-" * len(header), header, "-" * len(header)])

        for name, info in self.steps.items():
            lines.append(
                f"{name:<15} | {info.calls:>7} | {self._format_time(info.time):>12} | "
                f"{self._format_mem(info.max_memory_used):>15}"
            )
        lines.append("-" * len(header))
        lines.append(f"{'Total':<15} | {'':>7} | {self._format_time(self._total_time):>12} | {'':>15}")
        lines.append("-" * len(header))

        msg = "\n" + "\n".join(lines)
        if logger is not None:
            logger.info(msg)
        else:
            print(msg)
        return msg

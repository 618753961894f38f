import time
import functools
import os
import csv
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar
from typing_extensions import ParamSpec
from grainpy.kernel.system.logging import get_logger
from grainpy.kernel.system.config import APP_CONFIG

logger = get_logger("perf")

P = ParamSpec("P")
R = TypeVar("R")


def get_perf_log_path() -> str:
    return os.path.join(APP_CONFIG.cache_dir, "perf_stats.csv")


def init_perf_log() -> None:
    log_path = get_perf_log_path()
    os.makedirs(os.path.dirname(log_path), exist_ok=True)

    if not os.path.exists(log_path):
        with open(log_path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["timestamp", "function", "duration_ms", "image_shape"])


def log_to_csv(function_name: str, duration_ms: float, shape: Any) -> None:
    try:
        init_perf_log()
        with open(get_perf_log_path(), "a", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(
                [
                    time.strftime("%Y-%m-%d %H:%M:%S"),
                    function_name,
                    f"{duration_ms:.3f}",
                    str(shape),
                ]
            )
    except OSError as e:
        logger.error(f"Failed to log perf stats: {e}")


def time_function(func: Callable[P, R]) -> Callable[P, R]:
    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start = time.perf_counter()
        result = func(*args, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000

        # Try to find image shape for context
        shape: Any = "N/A"
        for arg in list(args) + list(kwargs.values()):
            if hasattr(arg, "shape"):
                shape = getattr(arg, "shape")
                break

        logger.debug(f"PERF: {func.__name__} took {duration_ms:.3f}ms (shape: {shape})")
        if APP_CONFIG.perf_log:
            log_to_csv(func.__name__, duration_ms, shape)
        return result

    return wrapper


@dataclass
class Benchmark:
    name: str
    start: float
    pixel_count: Optional[int] = None
    end: Optional[float] = None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end is None:
            return None
        return (self.end - self.start) * 1000.0

    @property
    def pixels_per_second(self) -> Optional[float]:
        duration = self.duration_ms
        if duration is None or not self.pixel_count or duration <= 0:
            return None
        return self.pixel_count / (duration / 1000.0)


class PerformanceTracker:
    """
    Named stage timings for a single processing request.
    """

    def __init__(self) -> None:
        self._benchmarks: Dict[str, Benchmark] = {}
        self._order: List[str] = []

    def start(self, name: str, pixel_count: Optional[int] = None) -> None:
        if name not in self._benchmarks:
            self._order.append(name)
        self._benchmarks[name] = Benchmark(name, time.perf_counter(), pixel_count)

    def end(self, name: str) -> Optional[float]:
        bench = self._benchmarks.get(name)
        if bench is None:
            logger.warning(f"Benchmark '{name}' was never started")
            return None
        bench.end = time.perf_counter()
        return bench.duration_ms

    def get(self, name: str) -> Optional[Benchmark]:
        return self._benchmarks.get(name)

    def durations(self) -> Dict[str, float]:
        return {
            name: self._benchmarks[name].duration_ms or 0.0
            for name in self._order
            if self._benchmarks[name].end is not None
        }

    def log_summary(self) -> None:
        for name in self._order:
            bench = self._benchmarks[name]
            if bench.duration_ms is None:
                continue
            msg = f"{name}: {bench.duration_ms:.2f}ms"
            pps = bench.pixels_per_second
            if pps:
                msg += f" ({pps / 1e6:.2f}M px/s)"
            logger.info(msg)

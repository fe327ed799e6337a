"""A small metrics registry with Prometheus text exposition."""

from __future__ import annotations

import bisect
import math
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Iterator

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
DEFAULT_BUCKETS = (60.0, 150.0, 300.0, 600.0, 900.0, 1200.0)


def _format_value(value: float) -> str:
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if math.isnan(value):
        return "NaN"
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


class Counter:
    """A monotonically increasing value."""

    kind = "counter"

    def __init__(self, name: str, help: str) -> None:
        self.name = name
        self.help = help
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        return self._value

    def inc(self) -> None:
        self.add(1)

    def add(self, amount: float) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += amount

    def _describe(self) -> dict[str, Any]:
        return {"name": self.name, "help": self.help, "type": self.kind, "value": self.value}

    def _samples(self) -> Iterator[str]:
        yield f"{self.name} {_format_value(self.value)}"


class Histogram:
    """Counts observations into cumulative buckets."""

    kind = "histogram"

    def __init__(self, name: str, help: str, buckets: Iterable[float] = DEFAULT_BUCKETS) -> None:
        self.name = name
        self.help = help
        self.buckets = sorted({float(b) for b in buckets if not math.isinf(b)})
        self._counts = [0] * len(self.buckets)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            if index < len(self._counts):
                self._counts[index] += 1
            self._sum += value
            self._count += 1

    def _cumulative(self) -> dict[float, int]:
        out: dict[float, int] = {}
        running = 0
        for bound, count in zip(self.buckets, self._counts):
            running += count
            out[bound] = running
        out[math.inf] = self._count
        return out

    def _describe(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "help": self.help,
                "type": self.kind,
                "buckets": self._cumulative(),
                "sum": self._sum,
                "count": self._count,
            }

    def _samples(self) -> Iterator[str]:
        described = self._describe()
        for bound, count in described["buckets"].items():
            yield f'{self.name}_bucket{{le="{_format_value(bound)}"}} {count}'
        yield f"{self.name}_sum {_format_value(described['sum'])}"
        yield f"{self.name}_count {described['count']}"


class GaugeFunc:
    """A gauge whose value is computed by a function at collection time."""

    kind = "gauge"

    def __init__(self, name: str, help: str, func: Callable[[], float]) -> None:
        self.name = name
        self.help = help
        self.func = func

    def collect(self) -> float:
        return float(self.func())

    def _describe(self) -> dict[str, Any]:
        return {"name": self.name, "help": self.help, "type": self.kind, "value": self.collect()}

    def _samples(self) -> Iterator[str]:
        yield f"{self.name} {_format_value(self.collect())}"


class Registry:
    """Holds registered metrics by unique name."""

    def __init__(self) -> None:
        self._metrics: dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, metric):
        """Register a metric; a duplicate name raises ValueError."""
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {metric.name}"
                )
            self._metrics[metric.name] = metric
        return metric

    def _sorted(self) -> list[Any]:
        with self._lock:
            return [self._metrics[name] for name in sorted(self._metrics)]

    def gather(self) -> list[dict[str, Any]]:
        """Return a snapshot of every metric, sorted by name."""
        return [metric._describe() for metric in self._sorted()]

    def expose(self) -> str:
        """Render all metrics in the Prometheus text format."""
        lines: list[str] = []
        for metric in self._sorted():
            lines.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(metric._samples())
        return "".join(line + "\n" for line in lines)


_DEFAULT_REGISTRY = Registry()


def default_registry() -> Registry:
    """Return the process-wide registry."""
    return _DEFAULT_REGISTRY


class Collector(ABC):
    """Records server provisioning timings and errors."""

    @abstractmethod
    def track_server_create_time(self, start: float) -> None:
        """Record time taken to provision a server."""

    @abstractmethod
    def track_server_init_time(self, start: float) -> None:
        """Record time taken for a server to accept connections."""

    @abstractmethod
    def track_server_setup_time(self, start: float) -> None:
        """Record time taken to install software on a server."""

    @abstractmethod
    def incr_server_create_error(self) -> None:
        """Count an error provisioning a server."""

    @abstractmethod
    def incr_server_init_error(self) -> None:
        """Count an error connecting to a server."""

    @abstractmethod
    def incr_server_setup_error(self) -> None:
        """Count an error installing software on a server."""


def _round_seconds(seconds: float) -> float:
    return math.copysign(math.floor(abs(seconds) + 0.5), seconds)


class PrometheusCollector(Collector):
    """Collector backed by registry metrics; start times are epoch seconds."""

    def __init__(
        self,
        registry: Registry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        registry = registry if registry is not None else default_registry()
        self._clock = clock
        self._create_time = Histogram(
            "drone_server_create_time_seconds", "Elapsed time creating a server."
        )
        self._init_time = Histogram(
            "drone_server_boot_time_seconds", "Elapsed time initializing a server."
        )
        self._setup_time = Histogram(
            "drone_server_install_time_seconds",
            "Elapsed time installing software on a server.",
        )
        self._create_err = Counter(
            "drone_server_create_errors_total",
            "Total number of errors initializing a server.",
        )
        self._init_err = Counter(
            "drone_server_boot_errors_total",
            "Total number of errors initializing a server.",
        )
        self._setup_err = Counter(
            "drone_server_install_errors_total",
            "Total number of errors installing software on a server.",
        )
        for metric in (
            self._create_time,
            self._init_time,
            self._setup_time,
            self._create_err,
            self._init_err,
            self._setup_err,
        ):
            registry.register(metric)

    def _elapsed(self, start: float) -> float:
        return _round_seconds(self._clock() - start)

    def track_server_create_time(self, start: float) -> None:
        self._create_time.observe(self._elapsed(start))

    def track_server_init_time(self, start: float) -> None:
        self._init_time.observe(self._elapsed(start))

    def track_server_setup_time(self, start: float) -> None:
        self._setup_time.observe(self._elapsed(start))

    def incr_server_create_error(self) -> None:
        self._create_err.inc()

    def incr_server_init_error(self) -> None:
        self._init_err.inc()

    def incr_server_setup_error(self) -> None:
        self._setup_err.inc()


class NopCollector(Collector):
    """Collector that records nothing."""

    def track_server_create_time(self, start: float) -> None:
        return None

    def track_server_init_time(self, start: float) -> None:
        return None

    def track_server_setup_time(self, start: float) -> None:
        return None

    def incr_server_create_error(self) -> None:
        return None

    def incr_server_init_error(self) -> None:
        return None

    def incr_server_setup_error(self) -> None:
        return None
"""
Metrics collection and Prometheus-compatible exposition.

Counters are optionally labelled (e.g. by topic) so drops, requeues and
failures can be told apart per inbound stream.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Any

PREFIX = "lcr_"


def _key(name: str, labels: dict[str, str]) -> str:
    if not labels:
        return f"{PREFIX}{name}"
    rendered = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{PREFIX}{name}{{{rendered}}}"


class MetricsCollector:
    """Counters, gauges and handler durations for the processor."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._duration_counts: dict[str, int] = defaultdict(int)
        self._duration_sums: dict[str, float] = defaultdict(float)
        self._start_time = time.time()

    def inc(self, name: str, value: int = 1, **labels: str) -> None:
        """Increment a counter."""
        self._counters[_key(name, labels)] += value

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[_key(name, {})] = value

    def observe(self, name: str, seconds: float) -> None:
        """Record a duration sample (summary: count + sum)."""
        key = _key(name, {})
        self._duration_counts[key] += 1
        self._duration_sums[key] += seconds

    def get(self, name: str, **labels: str) -> int | float:
        full = _key(name, labels)
        if full in self._gauges:
            return self._gauges[full]
        return self._counters.get(full, 0)

    def total(self, name: str) -> int:
        """Sum of a counter across all label sets."""
        base = f"{PREFIX}{name}"
        return sum(
            v for k, v in self._counters.items() if k == base or k.startswith(base + "{")
        )

    def to_prometheus(self) -> str:
        lines = []
        seen: set[str] = set()
        for key, value in sorted(self._counters.items()):
            family = key.split("{", 1)[0]
            if family not in seen:
                lines.append(f"# TYPE {family} counter")
                seen.add(family)
            lines.append(f"{key} {value}")
        for key, value in sorted(self._gauges.items()):
            lines.append(f"# TYPE {key} gauge")
            lines.append(f"{key} {value}")
        for key, count in sorted(self._duration_counts.items()):
            lines.append(f"# TYPE {key} summary")
            lines.append(f"{key}_count {count}")
            lines.append(f"{key}_sum {self._duration_sums[key]:.6f}")
        uptime = time.time() - self._start_time
        lines.append(f"# TYPE {PREFIX}uptime_seconds gauge")
        lines.append(f"{PREFIX}uptime_seconds {uptime:.1f}")
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "uptime_seconds": time.time() - self._start_time,
        }

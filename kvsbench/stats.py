"""Latency histograms, per-core counters and the periodic report line."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Sequence

HIST_START_US = 0
HIST_BUCKET_US = 1
HIST_BUCKETS = 4096

FRACTIONS = (0.5, 0.9, 0.95, 0.99, 0.999, 0.9999)

_COUNTERS = ("tx_get", "tx_set", "rx_get", "rx_set", "rx_success",
             "rx_fail", "epupd")


class LatencyHistogram:
    """Latency counts in 1 us buckets; the last bucket collects overflow."""

    def __init__(self) -> None:
        self.counts = [0] * HIST_BUCKETS

    def record(self, nanos: int) -> None:
        """Count one request that took ``nanos`` nanoseconds."""
        if nanos < 0:
            raise ValueError("latency must not be negative")
        bucket = (nanos // 1000 - HIST_START_US) // HIST_BUCKET_US
        self.counts[min(bucket, HIST_BUCKETS - 1)] += 1

    def merge(self, other: LatencyHistogram) -> None:
        """Add the counts of ``other`` to this histogram."""
        self.counts = [a + b for a, b in zip(self.counts, other.counts)]

    def clear(self) -> None:
        """Reset every bucket to zero."""
        self.counts = [0] * HIST_BUCKETS

    def total(self) -> int:
        """Number of recorded samples."""
        return sum(self.counts)

    def fraction_buckets(self, fracs: Sequence[float]) -> list[int]:
        """Index of the first bucket at which each fraction of samples is reached."""
        total = self.total()
        goals = [int(total * f) for f in fracs]
        idxs = [0] * len(goals)
        running = 0
        j = 0
        for i, count in enumerate(self.counts):
            if j >= len(goals):
                break
            running += count
            while j < len(goals) and running >= goals[j]:
                idxs[j] = i
                j += 1
        return idxs


def bucket_value(index: int) -> int:
    """Lower bound in microseconds of a bucket, or -1 for the overflow bucket."""
    if index == HIST_BUCKETS - 1:
        return -1
    return index * HIST_BUCKET_US + HIST_START_US


@dataclass
class CoreStats:
    """Counters kept by one benchmark core.

    ``take`` hands out the counters and zeroes them; the histogram keeps
    accumulating across reports.
    """

    tx_get: int = 0
    tx_set: int = 0
    rx_get: int = 0
    rx_set: int = 0
    rx_success: int = 0
    rx_fail: int = 0
    epupd: int = 0
    hist: LatencyHistogram = field(default_factory=LatencyHistogram)
    _lock: threading.Lock = field(default_factory=threading.Lock,
                                  repr=False, compare=False)

    def take(self) -> CoreStats:
        """Return a snapshot of the counters and reset them to zero."""
        with self._lock:
            values = {name: getattr(self, name) for name in _COUNTERS}
            for name in _COUNTERS:
                setattr(self, name, 0)
        hist = LatencyHistogram()
        hist.merge(self.hist)
        return CoreStats(**values, hist=hist)


def _label(frac: float) -> str:
    return f"{frac * 100:g}p"


def format_report(throughput: float, histogram: LatencyHistogram,
                  fracs: Sequence[float] = FRACTIONS) -> str:
    """Format the throughput (ops/s) and latency percentiles as one line."""
    positions = histogram.fraction_buckets(fracs)
    parts = [f"TP: total={throughput / 1_000_000:.4f} mops"]
    parts += [f"{_label(f)}={bucket_value(p)} us"
              for f, p in zip(fracs, positions)]
    return "  ".join(parts)
"""Closed-loop load generator for memcached binary protocol key-value servers."""

__version__ = "0.1.0"
__all__ = ["bench", "connection", "protocol", "rng", "settings", "stats", "workload"]
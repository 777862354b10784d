"""Key generation, key popularity distributions and operation mix."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from itertools import accumulate
from typing import Sequence

from kvsbench.rng import Rng
from kvsbench.settings import KeyDistribution, Settings


class Operation(Enum):
    GET = "get"
    SET = "set"


@dataclass
class Key:
    """A key and the cumulative probability up to and including it."""

    key: bytes
    cdf: float = 0.0


def generate_keys(rng: Rng, count: int, key_size: int) -> list[bytes]:
    """Generate ``count`` random keys of ``key_size`` bytes each."""
    return [rng.gen_bytes(key_size) for _ in range(count)]


def distribute_uniform(count: int) -> list[float]:
    """Cumulative probabilities of a uniform distribution over ``count`` keys."""
    p = 1.0 / count
    return list(accumulate(p for _ in range(count)))


def distribute_zipf(count: int, s: float) -> list[float]:
    """Cumulative probabilities of a Zipf distribution with parameter ``s``."""
    weights = [1 / pow(i + 1, s) for i in range(count)]
    total = 0.0
    for w in weights:
        total += w
    return list(accumulate(w / total for w in weights))


def _in_range(keys: Sequence[Key], i: int, x: float) -> int:
    cdf = keys[i].cdf
    if x < cdf:
        if i == 0:
            return 0
        return -1 if x <= keys[i - 1].cdf else 0
    if x > cdf:
        return 0 if i == len(keys) - 1 else 1
    return 0


def draw_key(keys: Sequence[Key], x: float) -> Key:
    """Pick the key whose cdf interval holds ``x`` by binary search."""
    if not keys:
        raise ValueError("cannot draw from an empty key set")
    low, high, mid = 0, len(keys) - 1, 0
    while low < high:
        mid = (low + high) // 2
        res = _in_range(keys, mid, x)
        if res < 0:
            high = mid - 1
        elif res > 0:
            low = mid + 1
        else:
            break
    return keys[mid]


class Workload:
    """The shared key set and the generator that seeds per-core streams."""

    def __init__(self, settings: Settings) -> None:
        self.get_prob = settings.get_prob
        key_rng = Rng(settings.key_seed)
        self.op_rng = Rng(settings.op_seed)
        raw = generate_keys(key_rng, settings.keynum, settings.keysize)
        if settings.keydist is KeyDistribution.UNIFORM:
            cdfs = distribute_uniform(len(raw))
        else:
            cdfs = distribute_zipf(len(raw), settings.zipf_s)
        self.keys = [Key(k, c) for k, c in zip(raw, cdfs)]

    def core(self) -> WorkloadCore:
        """Create a per-core operation stream seeded from this workload."""
        high = self.op_rng.gen32()
        low = self.op_rng.gen32()
        return WorkloadCore(self, (high << 16) ^ low)


class WorkloadCore:
    """A per-core stream of (key, operation) pairs."""

    def __init__(self, workload: Workload, seed: int) -> None:
        self.workload = workload
        self.rng = Rng(seed)

    def next_op(self) -> tuple[Key, Operation]:
        """Return the next key and whether to GET or SET it."""
        if self.rng.gend() <= self.workload.get_prob:
            op = Operation.GET
        else:
            op = Operation.SET
        return draw_key(self.workload.keys, self.rng.gend()), op
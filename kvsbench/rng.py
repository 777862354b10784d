"""48-bit linear congruential generator compatible with java.util.Random."""

from __future__ import annotations

_A = 0x5DEECE66D
_C = 0xB
_M = 1 << 48


class Rng:
    """Deterministic pseudo-random generator with a 48-bit state."""

    def __init__(self, seed: int) -> None:
        self.seed = (seed ^ _A) % _M

    def gen32(self) -> int:
        """Advance the state and return the next unsigned 32-bit value."""
        self.seed = (_A * self.seed + _C) % _M
        return self.seed >> 16

    def gend(self) -> float:
        """Return a float drawn uniformly from [0, 1)."""
        high = self.gen32() >> 6
        low = self.gen32() >> 5
        return ((high << 27) + low) / float(1 << 53)

    def gen_bytes(self, size: int) -> bytes:
        """Return ``size`` pseudo-random bytes.

        Whole 4-byte words are written little-endian; the trailing bytes come
        from the high end of one further value, which is drawn even when
        ``size`` is a multiple of four.
        """
        if size < 0:
            raise ValueError("size must not be negative")
        words, rest = divmod(size, 4)
        out = bytearray()
        for _ in range(words):
            out += self.gen32().to_bytes(4, "little")
        tail = self.gen32().to_bytes(4, "big")
        out += tail[:rest]
        return bytes(out)
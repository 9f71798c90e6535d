"""
Seeded shuffling that does not depend on Python's ``random`` module.

The seed is expanded with SHA-256 in counter mode, so the same seed yields
the same permutation in any process and in any language that can hash.
"""

import hashlib
import secrets


def new_seed():
    return secrets.token_hex(16)


class SeedStream:
    def __init__(self, seed):
        self._seed = str(seed).encode("utf-8")
        self._counter = 0
        self._buffer = 0
        self._bits = 0

    def _refill(self):
        block = hashlib.sha256(self._seed + self._counter.to_bytes(8, "big")).digest()
        self._counter += 1
        self._buffer = (self._buffer << 256) | int.from_bytes(block, "big")
        self._bits += 256

    def getbits(self, k):
        while self._bits < k:
            self._refill()
        self._bits -= k
        value = self._buffer >> self._bits
        self._buffer &= (1 << self._bits) - 1
        return value

    def randbelow(self, n):
        if n <= 0:
            raise ValueError("randbelow needs a positive bound")
        k = n.bit_length()
        while True:
            r = self.getbits(k)
            if r < n:
                return r


def shuffle(items, seed):
    """Return a Fisher-Yates permutation of ``items`` driven by ``seed``."""
    out = list(items)
    stream = SeedStream(seed)
    for i in range(len(out) - 1, 0, -1):
        j = stream.randbelow(i + 1)
        out[i], out[j] = out[j], out[i]
    return out

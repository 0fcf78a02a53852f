import hashlib
import logging

import numpy as np

from .errors import InputValidationError

logger = logging.getLogger(__name__)


class SeededRNG:
    """
    Deterministic float stream derived from a string seed.

    The seed string is hashed with SHA-256 and fed to a numpy PCG64
    generator, so the sequence is identical across platforms and runs for
    calls made in the same order. Each tabulation owns its own instance.
    """

    def __init__(self, seed: str):
        if not seed:
            raise InputValidationError("Seed must be a non-empty string")
        self.seed = seed
        digest = hashlib.sha256(seed.encode("utf-8")).digest()
        self._generator = np.random.default_rng(int.from_bytes(digest, "big"))
        self.draws = 0

    def next(self) -> float:
        """Next float in [0, 1)."""
        self.draws += 1
        return float(self._generator.random())

    def __call__(self) -> float:
        return self.next()

    def draw_index(self, n: int) -> int:
        """Uniform index in [0, n) drawn from one float of the stream."""
        if n < 1:
            raise ValueError(f"Cannot draw from an empty range (n={n})")
        idx = int(self.next() * n)
        # float rounding can land exactly on n for very large n
        return min(idx, n - 1)

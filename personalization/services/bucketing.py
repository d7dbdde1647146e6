"""Sources of the single draw in [0, 1) used to bucket a visitor into a variant.

A source is any callable ``(visitor_id, experiment_id) -> float``. Both
sources here are reproducible: the same inputs always give the same draw.
"""
import hashlib
import random
from typing import Callable

BucketingSource = Callable[[str, str], float]


def hash_bucket(visitor_id: str, experiment_id: str) -> float:
    """Maps SHA-256 of ``experiment_id:visitor_id`` onto [0, 1)."""
    digest = hashlib.sha256(f"{experiment_id}:{visitor_id}".encode()).digest()
    # first 8 bytes as an unsigned int, normalized
    return int.from_bytes(digest[:8], "big") / 2**64


def seeded_random_bucket(seed: int) -> BucketingSource:
    """Draws from a PRNG seeded by ``seed`` plus the visitor and experiment ids.

    Useful for simulations that want a different but repeatable population
    split per seed.
    """

    def draw(visitor_id: str, experiment_id: str) -> float:
        return random.Random(f"{seed}:{experiment_id}:{visitor_id}").random()

    return draw

"""
Random variate samplers used by Thompson sampling.

All samplers are pure functions of the supplied generator. Pass a seeded
``random.Random`` for reproducible draws; omit it to use the module-level
generator.
"""
from __future__ import annotations

import math
import random
from typing import Optional

_default_rng = random.Random()


def _rng_or_default(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else _default_rng


def standard_normal(rng: Optional[random.Random] = None) -> float:
    """
    Draw from N(0, 1) with the Box-Muller transform.

    ``random()`` can return exactly 0.0, where log is undefined, so both
    uniforms are redrawn until non-zero.
    """
    rng = _rng_or_default(rng)
    u = 0.0
    while u == 0.0:
        u = rng.random()
    v = 0.0
    while v == 0.0:
        v = rng.random()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def sample_gamma(shape: float, rng: Optional[random.Random] = None) -> float:
    """
    Draw from Gamma(shape, 1) using Marsaglia and Tsang's method.

    Args:
        shape: Shape parameter, must be positive
        rng: Optional random generator

    Returns:
        A positive gamma variate
    """
    if shape <= 0:
        raise ValueError(f"Gamma shape must be positive, got {shape}")

    rng = _rng_or_default(rng)

    if shape < 1.0:
        # Boost: Gamma(k) = Gamma(k + 1) * U^(1/k)
        u = 0.0
        while u == 0.0:
            u = rng.random()
        return sample_gamma(shape + 1.0, rng) * u ** (1.0 / shape)

    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)

    while True:
        x = standard_normal(rng)
        v = 1.0 + c * x
        while v <= 0.0:
            x = standard_normal(rng)
            v = 1.0 + c * x

        v = v * v * v
        u = rng.random()

        if u < 1.0 - 0.0331 * (x * x) * (x * x):
            return d * v
        if u > 0.0 and math.log(u) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
            return d * v


def sample_beta(alpha: float, beta: float, rng: Optional[random.Random] = None) -> float:
    """Draw from Beta(alpha, beta) as a ratio of two gamma variates."""
    rng = _rng_or_default(rng)
    x = sample_gamma(alpha, rng)
    y = sample_gamma(beta, rng)
    return x / (x + y)

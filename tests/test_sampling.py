"""
Tests for the random variate samplers.

Moments are checked over many seeded draws within statistical tolerance.
"""
import math
import random

import pytest

from qpolicy.learning.sampling import standard_normal, sample_gamma, sample_beta

N = 20000


def _mean(xs):
    return sum(xs) / len(xs)


def _std(xs):
    m = _mean(xs)
    return math.sqrt(sum((x - m) ** 2 for x in xs) / len(xs))


class TestStandardNormal:
    """Tests for the Box-Muller sampler."""

    def test_moments(self):
        """Mean near 0 and standard deviation near 1."""
        rng = random.Random(1)
        samples = [standard_normal(rng) for _ in range(N)]
        assert abs(_mean(samples)) < 0.05
        assert abs(_std(samples) - 1.0) < 0.05

    def test_zero_uniform_is_resampled(self):
        """A 0.0 uniform draw must not reach log()."""

        class ZeroFirst(random.Random):
            def __init__(self):
                super().__init__(0)
                self.calls = 0

            def random(self):
                self.calls += 1
                if self.calls == 1:
                    return 0.0
                return super().random()

        rng = ZeroFirst()
        value = standard_normal(rng)
        assert math.isfinite(value)
        assert rng.calls >= 3

    def test_seeded_is_reproducible(self):
        a = [standard_normal(random.Random(7)) for _ in range(3)]
        b = [standard_normal(random.Random(7)) for _ in range(3)]
        assert a == b


class TestGamma:
    """Tests for the Marsaglia-Tsang sampler."""

    @pytest.mark.parametrize("shape", [1.0, 3.0, 10.0])
    def test_mean_matches_shape(self, shape):
        """Gamma(k, 1) has mean k."""
        rng = random.Random(2)
        samples = [sample_gamma(shape, rng) for _ in range(N)]
        assert _mean(samples) == pytest.approx(shape, rel=0.05)

    def test_small_shape_uses_boost(self):
        """Shapes below 1 are supported and keep mean k."""
        rng = random.Random(3)
        samples = [sample_gamma(0.5, rng) for _ in range(N)]
        assert all(s >= 0.0 for s in samples)
        assert _mean(samples) == pytest.approx(0.5, abs=0.05)

    def test_samples_positive(self):
        rng = random.Random(4)
        assert all(sample_gamma(2.0, rng) > 0.0 for _ in range(1000))

    @pytest.mark.parametrize("shape", [0.0, -1.0])
    def test_rejects_non_positive_shape(self, shape):
        with pytest.raises(ValueError):
            sample_gamma(shape)


class TestBeta:
    """Tests for the ratio-of-gammas Beta sampler."""

    @pytest.mark.parametrize("a,b", [(1, 1), (2, 5), (10, 3)])
    def test_mean(self, a, b):
        """Beta(a, b) has mean a / (a + b)."""
        rng = random.Random(5)
        samples = [sample_beta(a, b, rng) for _ in range(N)]
        assert _mean(samples) == pytest.approx(a / (a + b), abs=0.02)

    def test_bounded_in_unit_interval(self):
        rng = random.Random(6)
        for _ in range(1000):
            x = sample_beta(2, 3, rng)
            assert 0.0 <= x <= 1.0

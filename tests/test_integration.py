"""Tests for the integration module."""

import numpy as np
import pytest
from scipy.integrate import trapezoid

from sfhgrid import exceptions
from sfhgrid.utils.integrate import (
    IntegrationHint,
    integrate,
    integrate_hinted,
)


@pytest.fixture
def irregular_samples():
    """Fixture for irregularly sampled data."""
    rng = np.random.default_rng(42)
    xs = np.sort(rng.uniform(0, 10, 200))
    ys = np.sin(xs) + 2.0
    return xs, ys


@pytest.fixture
def monotone_bounds():
    """Fixture for a monotone sweep of integration intervals."""
    edges = np.concatenate([[-1.0], np.linspace(0.0, 10.0, 57), [12.0]])
    return list(zip(edges[:-1], edges[1:]))


class TestIntegrate:
    """Tests for the unhinted integrator."""

    def test_constant(self):
        """Test a constant function integrates to the interval length."""
        xs = np.array([0.0, 1.0, 2.5, 4.0, 10.0])
        ys = np.ones_like(xs)

        for a, b in [(0.0, 10.0), (0.3, 0.7), (1.2, 7.9), (2.5, 4.0)]:
            assert integrate(xs, ys, a, b) == pytest.approx(b - a)

    def test_full_range_matches_trapezoid(self, irregular_samples):
        """Test integrating over the full domain matches scipy."""
        xs, ys = irregular_samples
        expected = trapezoid(ys, xs)
        result = integrate(xs, ys, xs[0], xs[-1])
        np.testing.assert_allclose(result, expected, rtol=1e-12)

    def test_linear_partial_segments(self):
        """Test a linear function is integrated exactly."""
        xs = np.array([0.0, 2.0, 3.0, 7.0])
        ys = 2.0 * xs + 1.0

        # Integral of 2x + 1 is x^2 + x
        assert integrate(xs, ys, 0.5, 6.0) == pytest.approx(
            (36.0 + 6.0) - (0.25 + 0.5)
        )

    def test_bounds_are_clipped(self):
        """Test bounds outside the domain are clipped."""
        xs = np.array([0.0, 1.0, 2.0])
        ys = np.ones(3)

        assert integrate(xs, ys, -5.0, 5.0) == pytest.approx(2.0)

    def test_empty_interval(self):
        """Test an empty or inverted interval integrates to zero."""
        xs = np.array([0.0, 1.0, 2.0])
        ys = np.ones(3)

        assert integrate(xs, ys, 1.0, 1.0) == 0.0
        assert integrate(xs, ys, 1.5, 0.5) == 0.0
        assert integrate(xs, ys, 3.0, 4.0) == 0.0

    def test_invalid_samples(self):
        """Test mismatched or too short samples are rejected."""
        with pytest.raises(exceptions.InconsistentArguments):
            integrate([0.0, 1.0], [1.0], 0.0, 1.0)
        with pytest.raises(exceptions.InconsistentArguments):
            integrate([0.0], [1.0], 0.0, 1.0)


class TestIntegrateHinted:
    """Tests for the hinted integrator."""

    def test_constant_sweep(self, monotone_bounds):
        """Test a constant function over a monotone sweep."""
        xs = np.linspace(0.0, 10.0, 13)
        ys = np.ones_like(xs)

        hint = IntegrationHint()
        for a, b in monotone_bounds:
            expected = max(0.0, min(b, 10.0) - max(a, 0.0))
            assert integrate_hinted(xs, ys, hint, a, b) == pytest.approx(
                expected
            )

    def test_matches_unhinted(self, irregular_samples, monotone_bounds):
        """Test the hinted results are identical to the unhinted ones."""
        xs, ys = irregular_samples

        hint = IntegrationHint()
        for a, b in monotone_bounds:
            assert integrate_hinted(xs, ys, hint, a, b) == integrate(
                xs, ys, a, b
            )

    def test_stale_hint(self, irregular_samples):
        """Test a hint ahead of the interval does not change the result."""
        xs, ys = irregular_samples

        hint = IntegrationHint()
        integrate_hinted(xs, ys, hint, 8.0, 9.5)
        assert hint.is_set

        # Going backwards forces a full search
        assert integrate_hinted(xs, ys, hint, 1.0, 2.0) == integrate(
            xs, ys, 1.0, 2.0
        )

    def test_hint_points_at_upper_bound(self):
        """Test the hint holds the segment of the upper bound."""
        xs = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
        ys = np.ones_like(xs)

        hint = IntegrationHint()
        assert not hint.is_set

        integrate_hinted(xs, ys, hint, 0.5, 2.5)
        assert hint.index == 2

        hint.reset()
        assert not hint.is_set

    def test_sequence_inputs(self):
        """Test plain lists are accepted like in integrate."""
        hint = IntegrationHint()

        assert integrate_hinted(
            [0.0, 1.0, 2.0], [1.0, 1.0, 1.0], hint, 0.0, 2.0
        ) == pytest.approx(2.0)
        assert hint.index == 1

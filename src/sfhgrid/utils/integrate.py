"""A module containing integration helper functions.

The functions here integrate a tabulated function, linearly interpolated
between its samples, over an arbitrary sub-interval of its domain. This is
the operation at the heart of the grid builder, which integrates a star
formation history over every SSP age bin in turn.

Because the bins are visited in increasing order of time, the position of
the previous integration bound is a very good starting guess for the next
one. integrate_hinted exploits this with an explicit IntegrationHint cursor
threaded through a sweep of calls, turning the per-call search for the
integration bounds into an amortised O(1) operation.

Example:
    hint = IntegrationHint()
    for t1, t2 in zip(bin_starts, bin_ends):
        formed = integrate_hinted(x, y, hint, t1, t2)
"""

import numpy as np
from scipy.integrate import trapezoid

from sfhgrid import exceptions


class IntegrationHint:
    """A cursor remembering where the last hinted search ended.

    Attributes:
        index (int):
            The index i of the last located segment [x[i], x[i+1]], or None
            if the hint is uninitialised (which forces a full search).
    """

    __slots__ = ("index",)

    def __init__(self):
        """Initialise an empty (uninitialised) hint."""
        self.index = None

    @property
    def is_set(self):
        """Return whether the hint holds a position."""
        return self.index is not None

    def reset(self):
        """Forget the stored position."""
        self.index = None

    def __repr__(self):
        """Return a string representation of the hint."""
        return f"IntegrationHint(index={self.index})"


def _check_samples(x, y):
    """Ensure the samples can be integrated.

    Args:
        x (np.ndarray of float): The sample positions.
        y (np.ndarray of float): The sample values.

    Raises:
        InconsistentArguments
            If the arrays do not match or hold fewer than two samples.
    """
    if x.ndim != 1 or x.shape != y.shape:
        raise exceptions.InconsistentArguments(
            "x and y must be 1D arrays of the same length "
            f"(got shapes {x.shape} and {y.shape})."
        )
    if x.size < 2:
        raise exceptions.InconsistentArguments(
            "At least two samples are needed to integrate."
        )


def _full_search(x, value):
    """Locate the segment holding value with a binary search.

    Args:
        x (np.ndarray of float): The (increasing) sample positions.
        value (float): The position to locate.

    Returns:
        int:
            The index i such that x[i] <= value < x[i+1], clipped to the
            first and last segments.
    """
    i = int(np.searchsorted(x, value, side="right")) - 1
    return min(max(i, 0), x.size - 2)


def _hinted_search(x, value, start):
    """Locate the segment holding value, starting from a known segment.

    Args:
        x (np.ndarray of float): The (increasing) sample positions.
        value (float): The position to locate.
        start (int): A segment index with x[start] <= value.

    Returns:
        int:
            The same index _full_search would return.
    """
    last = x.size - 2

    # The common case in a sweep, value is still in the same segment
    if start >= last or value < x[start + 1]:
        return min(start, last)

    i = start + int(np.searchsorted(x[start + 1 :], value, side="right"))
    return min(i, last)


def _interp(x, y, i, value):
    """Linearly interpolate y at value within segment i."""
    return y[i] + (y[i + 1] - y[i]) * (value - x[i]) / (x[i + 1] - x[i])


def _integrate_segments(x, y, ia, ib, a, b):
    """Integrate between a (in segment ia) and b (in segment ib).

    Args:
        x (np.ndarray of float): The sample positions.
        y (np.ndarray of float): The sample values.
        ia (int): The segment holding a.
        ib (int): The segment holding b.
        a (float): The lower bound.
        b (float): The upper bound.

    Returns:
        float: The integral.
    """
    ya = _interp(x, y, ia, a)
    yb = _interp(x, y, ib, b)

    if ia == ib:
        return float(0.5 * (b - a) * (ya + yb))

    # Partial first segment, full inner segments, partial last segment
    total = 0.5 * (x[ia + 1] - a) * (ya + y[ia + 1])
    if ib > ia + 1:
        total += trapezoid(y[ia + 1 : ib + 1], x[ia + 1 : ib + 1])
    total += 0.5 * (b - x[ib]) * (y[ib] + yb)

    return float(total)


def integrate(x, y, a, b):
    """Integrate tabulated samples over [a, b].

    The samples are linearly interpolated (i.e. trapezoidal integration).
    The bounds are clipped to the sampled domain and an empty (or inverted)
    interval integrates to zero.

    Args:
        x (array-like of float):
            The increasing sample positions.
        y (array-like of float):
            The sample values.
        a (float):
            The lower integration bound.
        b (float):
            The upper integration bound.

    Returns:
        float:
            The integral of y over [a, b].
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    _check_samples(x, y)

    a = max(float(a), x[0])
    b = min(float(b), x[-1])
    if b <= a:
        return 0.0

    ia = _full_search(x, a)
    ib = _full_search(x, b)

    return _integrate_segments(x, y, ia, ib, a, b)


def integrate_hinted(x, y, hint, a, b):
    """Integrate tabulated samples over [a, b] reusing a search hint.

    This returns exactly what integrate(x, y, a, b) returns. The hint is
    only used to speed up locating the bounds: when it is set and still at
    or before a, the search resumes from it, otherwise a full search is
    performed. On return the hint holds the segment containing b, ready for
    a following call with a >= b.

    Args:
        x (array-like of float):
            The increasing sample positions.
        y (array-like of float):
            The sample values.
        hint (IntegrationHint):
            The cursor carried across a sweep of calls.
        a (float):
            The lower integration bound.
        b (float):
            The upper integration bound.

    Returns:
        float:
            The integral of y over [a, b].
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    _check_samples(x, y)

    a = max(float(a), x[0])
    b = min(float(b), x[-1])
    if b <= a:
        return 0.0

    if (
        hint.index is not None
        and 0 <= hint.index <= x.size - 2
        and x[hint.index] <= a
    ):
        ia = _hinted_search(x, a, hint.index)
    else:
        ia = _full_search(x, a)

    ib = _hinted_search(x, b, ia)
    hint.index = ib

    return _integrate_segments(x, y, ia, ib, a, b)

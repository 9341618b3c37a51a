"""A module for indexing the nodes of a multi-dimensional model grid.

A grid node is identified either by a tuple of per-axis indices or by a
single flat offset. Flattening is row-major, so the last axis varies
fastest, and the same order is used when advancing through the grid one
combination at a time.

Example usage:

    index = GridIndex([2, 3])

    ids = [0, 0]
    while True:
        print(ids, index.flatten(ids))
        if not index.increment(ids):
            break
"""

import numpy as np

from sfhgrid import exceptions


class GridIndex:
    """The mapping between per-axis indices and flat grid offsets.

    Attributes:
        dims (tuple of int):
            The size of each axis.
        strides (tuple of int):
            The flat offset corresponding to a unit step along each axis.
    """

    def __init__(self, dims):
        """Initialise the index.

        Args:
            dims (sequence of int):
                The size of each axis.
        """
        self.dims = tuple(int(d) for d in dims)

        if any(d <= 0 for d in self.dims):
            raise exceptions.InconsistentArguments(
                f"Grid dimensions must be positive (got {self.dims})."
            )

        strides = []
        stride = 1
        for d in reversed(self.dims):
            strides.append(stride)
            stride *= d
        self.strides = tuple(reversed(strides))

    @property
    def ndim(self):
        """Return the number of axes."""
        return len(self.dims)

    @property
    def size(self):
        """Return the number of grid nodes."""
        return int(np.prod(self.dims, dtype=np.int64))

    def _check_ids(self, ids):
        if len(ids) != self.ndim:
            raise exceptions.InconsistentArguments(
                f"Expected {self.ndim} indices (got {len(ids)})."
            )
        for axis, (i, d) in enumerate(zip(ids, self.dims)):
            if not 0 <= i < d:
                raise exceptions.InconsistentArguments(
                    f"Index {i} out of range for axis {axis} of size {d}."
                )

    def flatten(self, ids):
        """Return the flat offset of a node.

        Args:
            ids (sequence of int):
                The index along each axis.

        Returns:
            int
                The flat offset.
        """
        self._check_ids(ids)
        return sum(int(i) * s for i, s in zip(ids, self.strides))

    def unflatten(self, flat):
        """Return the per-axis indices of a flat offset.

        Args:
            flat (int):
                The flat offset.

        Returns:
            list of int
                The index along each axis.
        """
        flat = int(flat)
        if not 0 <= flat < self.size:
            raise exceptions.InconsistentArguments(
                f"Flat index {flat} out of range for a grid of "
                f"{self.size} nodes."
            )

        ids = []
        for s in self.strides:
            ids.append(flat // s)
            flat %= s

        return ids

    def increment(self, ids):
        """Advance indices to the next combination, in place.

        The last axis is advanced first. When it overflows it is reset to 0
        and the carry moves to the previous axis, like an odometer.

        Args:
            ids (list of int):
                The indices to advance.

        Returns:
            bool
                False if the indices wrapped back to all zeros (i.e. the
                passed indices were the last combination), True otherwise.
        """
        for axis in range(self.ndim - 1, -1, -1):
            ids[axis] += 1
            if ids[axis] < self.dims[axis]:
                return True
            ids[axis] = 0

        return False

    def __iter__(self):
        """Iterate over all index tuples in flat order."""
        ids = [0] * self.ndim
        while True:
            yield tuple(ids)
            if not self.increment(ids):
                return

    def __len__(self):
        """Return the number of grid nodes."""
        return self.size

    def __repr__(self):
        """Return a string representation of the index."""
        return f"GridIndex(dims={list(self.dims)})"

from __future__ import annotations

import numpy as np


class DistanceCache:
    """
    Square buffer of pairwise distances between windowed instances.

    Only the strict lower triangle of the live block is meaningful: for
    `j < i < size`, `matrix[i, j]` is the distance between window positions `i`
    and `j`. The buffer is allocated once with `capacity x capacity` entries and
    reused across resizes; entries outside the live block are stale.
    """

    def __init__(self, capacity: int):
        self.capacity = capacity
        self.matrix = np.zeros((capacity, capacity), dtype=float)

    def append_row(self, new_row_index: int, distances: np.ndarray):
        """Writes the distances from a new instance to the `new_row_index` older ones."""
        self.matrix[new_row_index, :new_row_index] = distances[:new_row_index]

    def remove_at(self, index: int, current_size: int):
        """Closes the gap left by removing window position `index`."""
        n = current_size
        if index >= n - 1:
            return
        # rows below the gap move up one; their columns left of the gap keep their place
        self.matrix[index:n - 1, :index] = self.matrix[index + 1:n, :index].copy()
        self.matrix[index:n - 1, index:n - 1] = self.matrix[index + 1:n, index + 1:n].copy()

    def truncate_front(self, k: int, current_size: int):
        """Drops the `k` oldest rows and columns."""
        n = current_size
        if k <= 0:
            return
        self.matrix[:n - k, :n - k] = self.matrix[k:n, k:n].copy()

    def row(self, index: int, start: int = 0, end: int = None) -> np.ndarray:
        """Distances from position `index` to positions `[start, end)`, `end <= index`."""
        end = index if end is None else end
        return self.matrix[index, start:end]

    def lower_triangle(self, size: int) -> np.ndarray:
        """Copy of the live block with stale entries on and above the diagonal zeroed."""
        return np.tril(self.matrix[:size, :size], k=-1)

    def reset(self):
        self.matrix.fill(0.0)

    def __repr__(self):
        return f"DistanceCache(capacity={self.capacity})"

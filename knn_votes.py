from __future__ import annotations

import math

import numpy as np

from attribute_ranges import AttributeRangeTracker
from window_store import StoredInstance


def distance(a: StoredInstance, b: StoredInstance, ranges: AttributeRangeTracker) -> float:
    """
    Min-max normalised Euclidean distance over the input attributes.

    Attributes whose observed range is zero are skipped. When either operand is
    sparse, the listed attributes of both are co-iterated; an attribute listed
    by only one operand contributes its own normalised value squared.
    """
    if a.dense and b.dense:
        span = ranges.span
        mask = span != 0
        diff = (a.values[mask] - b.values[mask]) / span[mask]
        return math.sqrt(float(np.dot(diff, diff)))

    minimum = ranges.minimum
    span = ranges.span
    total = 0.0
    p1, p2 = 0, 0
    n1, n2 = len(a.indices), len(b.indices)
    while p1 < n1 or p2 < n2:
        i1 = a.indices[p1] if p1 < n1 else None
        i2 = b.indices[p2] if p2 < n2 else None
        if i2 is None or (i1 is not None and i1 < i2):
            if span[i1] != 0:
                v1 = (a.values[p1] - minimum[i1]) / span[i1]
                total += v1 * v1
            p1 += 1
        elif i1 is None or i2 < i1:
            if span[i2] != 0:
                v2 = (b.values[p2] - minimum[i2]) / span[i2]
                total += v2 * v2
            p2 += 1
        else:
            if span[i1] != 0:
                d = (a.values[p1] - b.values[p2]) / span[i1]
                total += d * d
            p1 += 1
            p2 += 1
    return math.sqrt(total)


def distances_to(instance: StoredInstance, others, ranges: AttributeRangeTracker) -> np.ndarray:
    """Distances from `instance` to every instance of `others`, in order."""
    others = list(others)
    return np.fromiter((distance(instance, other, ranges) for other in others), dtype=float, count=len(others))


def nearest_k(k: int, distances: np.ndarray, range_start: int, range_end: int) -> np.ndarray:
    """
    Indices of the `k` smallest distances within `[range_start, range_end]`.

    The remaining minimum is picked `k` times, so results come in increasing
    distance order and ties go to the lowest index not yet selected.
    """
    k = min(k, range_end - range_start + 1)
    if k <= 0:
        return np.zeros(0, dtype=np.intp)
    candidates = np.array(distances[range_start:range_end + 1], dtype=float)
    selected = np.empty(k, dtype=np.intp)
    for n in range(k):
        best = int(np.argmin(candidates))
        selected[n] = best + range_start
        candidates[best] = np.inf
    return selected


def vote(neighbor_indices, instances, n_labels: int) -> np.ndarray:
    """
    Per-label `[1 - frequency, frequency]` pairs, where frequency is the share of
    neighbours whose stored label is set. No neighbours gives `[0.5, 0.5]`.
    """
    if len(neighbor_indices) == 0:
        return np.full((n_labels, 2), 0.5)
    labels = np.stack([instances[i].labels for i in neighbor_indices])
    frequency = labels.mean(axis=0)
    return np.column_stack((1.0 - frequency, frequency))


def correct_labels(votes: np.ndarray, labels: np.ndarray, threshold: float = 0.5) -> int:
    """Number of labels whose thresholded vote matches the true labels."""
    predicted = votes[:, 1] >= threshold
    return int(np.count_nonzero(predicted == labels))

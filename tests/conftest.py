from __future__ import annotations

import numpy as np
import pytest

from knn_votes import distance
from punitive_sam_knn import PunitiveSAMkNN
from stream_header import StreamHeader


@pytest.fixture
def header2() -> StreamHeader:
    """Two numeric features, one label."""
    return StreamHeader(feature_names=["a", "b"], label_names=["y"], relation="toy")


@pytest.fixture
def make_model():
    def _make(header: StreamHeader, **params) -> PunitiveSAMkNN:
        model = PunitiveSAMkNN(**params)
        model.set_model_context(header)
        return model
    return _make


def recomputed_distances(model: PunitiveSAMkNN) -> np.ndarray:
    """Lower triangle of the live window's distances, recomputed from scratch."""
    n = model.window_size
    expected = np.zeros((n, n))
    for i in range(n):
        for j in range(i):
            expected[i, j] = distance(model.window[i], model.window[j], model.ranges)
    return expected


def assert_cache_consistent(model: PunitiveSAMkNN):
    n = model.window_size
    np.testing.assert_allclose(model.distance_cache.lower_triangle(n), recomputed_distances(model), atol=1e-12)

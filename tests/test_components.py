from __future__ import annotations

import math

import numpy as np
import pytest

from attribute_ranges import AttributeRangeTracker
from distance_cache import DistanceCache
from error_tracker import ErrorTracker
from knn_votes import correct_labels, distance, nearest_k, vote
from stream_header import ConfigurationError, InvalidInstanceShape, StreamHeader, require_header
from window_store import WindowStore, features_to_instance, to_instance


HEADER = StreamHeader(feature_names=["a", "b", "c"], label_names=["l0", "l1"])


def _instance(x, y=None):
    y = y if y is not None else {"l0": 0, "l1": 0}
    return to_instance(x, y, HEADER)


# --- stream header ---------------------------------------------------------

def test_require_header_rejects_missing_context():
    with pytest.raises(ConfigurationError):
        require_header(None)


def test_require_header_rejects_header_without_labels():
    with pytest.raises(ConfigurationError):
        require_header(StreamHeader(["a"], []))


def test_require_header_rejects_overlapping_names():
    with pytest.raises(ConfigurationError):
        require_header(StreamHeader(["a", "y"], ["y"]))


# --- instance conversion ---------------------------------------------------

def test_full_feature_dict_is_dense():
    inst = _instance({"c": 3.0, "a": 1.0, "b": 2.0})
    assert inst.dense
    assert inst.indices.tolist() == [0, 1, 2]
    assert inst.values.tolist() == [1.0, 2.0, 3.0]


def test_partial_feature_dict_is_sparse():
    inst = _instance({"c": 3.0, "a": None})
    assert not inst.dense
    assert inst.indices.tolist() == [2]


def test_unknown_feature_is_rejected():
    with pytest.raises(InvalidInstanceShape):
        features_to_instance({"zzz": 1.0}, HEADER)


def test_non_numeric_feature_is_rejected():
    with pytest.raises(InvalidInstanceShape):
        features_to_instance({"a": "red"}, HEADER)


@pytest.mark.parametrize("y", [{"l0": 1}, {"l0": 1, "l1": 0, "l2": 1}, {"l0": 1, "zz": 0}, {"l0": 2, "l1": 0}])
def test_label_shape_is_checked(y):
    with pytest.raises(InvalidInstanceShape):
        to_instance({"a": 1.0, "b": 1.0, "c": 1.0}, y, HEADER)


# --- attribute ranges ------------------------------------------------------

def test_ranges_only_widen_and_include_zero():
    ranges = AttributeRangeTracker(3)
    ranges.observe(_instance({"a": 2.0, "b": -1.0, "c": 5.0}))
    ranges.observe(_instance({"a": 1.0, "b": -3.0, "c": 4.0}))
    assert ranges.minimum.tolist() == [0.0, -3.0, 0.0]
    assert ranges.maximum.tolist() == [2.0, 0.0, 5.0]


def test_sparse_instance_only_touches_listed_attributes():
    ranges = AttributeRangeTracker(3)
    ranges.observe(_instance({"b": 4.0}))
    assert ranges.maximum.tolist() == [0.0, 4.0, 0.0]


# --- distance --------------------------------------------------------------

def _ranges_for(*instances):
    ranges = AttributeRangeTracker(3)
    for inst in instances:
        ranges.observe(inst)
    return ranges


def test_dense_distance_is_normalised_euclidean():
    a = _instance({"a": 0.0, "b": 0.0, "c": 0.0})
    b = _instance({"a": 2.0, "b": 10.0, "c": 0.0})
    ranges = _ranges_for(a, b)
    # a and b span their full ranges; c has zero range and is skipped
    assert distance(a, b, ranges) == pytest.approx(math.sqrt(2.0))


def test_zero_range_attributes_contribute_nothing():
    a = _instance({"a": 0.0, "b": 0.0, "c": 0.0})
    assert distance(a, a, _ranges_for(a)) == 0.0


def test_sparse_distance_merges_listed_positions():
    a = _instance({"a": 1.0, "c": 2.0})
    b = _instance({"b": 4.0, "c": 1.0})
    ranges = _ranges_for(a, b)
    # a: listed only in a -> (1/1)^2 ; b: listed only in b -> (4/4)^2 ; c: (2-1)/2 -> 0.25
    assert distance(a, b, ranges) == pytest.approx(math.sqrt(1.0 + 1.0 + 0.25))


def test_sparse_distance_against_dense_operand():
    dense = _instance({"a": 1.0, "b": 2.0, "c": 0.0})
    sparse = _instance({"b": 2.0})
    ranges = _ranges_for(dense, sparse)
    # a listed only in dense -> 1 ; b equal -> 0 ; c zero range -> skipped
    assert distance(dense, sparse, ranges) == pytest.approx(1.0)
    assert distance(sparse, dense, ranges) == pytest.approx(1.0)


# --- nearest neighbours and votes -----------------------------------------

def test_nearest_k_orders_by_distance_and_breaks_ties_by_index():
    distances = np.array([0.5, 0.1, 0.3, 0.1, 0.9])
    assert nearest_k(3, distances, 0, 4).tolist() == [1, 3, 2]


def test_nearest_k_respects_range():
    distances = np.array([0.0, 0.5, 0.4, 0.3, 0.0])
    assert nearest_k(2, distances, 1, 3).tolist() == [3, 2]


def test_nearest_k_caps_at_range_length():
    assert nearest_k(5, np.array([0.2, 0.1]), 0, 1).tolist() == [1, 0]
    assert nearest_k(3, np.array([0.2, 0.1]), 1, 0).tolist() == []


def test_vote_is_neighbor_label_frequency():
    window = [_instance({"a": 0.0}, {"l0": 1, "l1": 0}),
              _instance({"a": 0.0}, {"l0": 1, "l1": 1}),
              _instance({"a": 0.0}, {"l0": 0, "l1": 0})]
    votes = vote([0, 1, 2], window, 2)
    np.testing.assert_allclose(votes, [[1 / 3, 2 / 3], [2 / 3, 1 / 3]])


def test_vote_without_neighbors_is_neutral():
    votes = vote([], [], 3)
    assert votes.tolist() == [[0.5, 0.5]] * 3


def test_correct_labels_thresholds_at_one_half():
    votes = np.array([[0.5, 0.5], [1.0, 0.0], [0.0, 1.0]])
    assert correct_labels(votes, np.array([True, True, True])) == 2


# --- distance cache --------------------------------------------------------

def _cache_from_points(points):
    """Cache whose entries are |p_i - p_j| for scalar points."""
    cache = DistanceCache(len(points) + 2)
    for i, p in enumerate(points):
        cache.append_row(i, np.abs(np.array(points[:i], dtype=float) - p))
    return cache


def _expected(points):
    pts = np.array(points, dtype=float)
    return np.tril(np.abs(pts[:, None] - pts[None, :]), k=-1)


def test_append_row_fills_lower_triangle():
    points = [0.0, 1.0, 3.0, 7.0]
    cache = _cache_from_points(points)
    np.testing.assert_allclose(cache.lower_triangle(4), _expected(points))


@pytest.mark.parametrize("index", [0, 1, 2, 4])
def test_remove_at_keeps_pairs_aligned(index):
    points = [0.0, 1.0, 3.0, 7.0, 15.0]
    cache = _cache_from_points(points)
    cache.remove_at(index, len(points))
    survivors = points[:index] + points[index + 1:]
    np.testing.assert_allclose(cache.lower_triangle(len(survivors)), _expected(survivors))


@pytest.mark.parametrize("k", [1, 3])
def test_truncate_front_drops_oldest(k):
    points = [0.0, 1.0, 3.0, 7.0, 15.0]
    cache = _cache_from_points(points)
    cache.truncate_front(k, len(points))
    np.testing.assert_allclose(cache.lower_triangle(len(points) - k), _expected(points[k:]))


def test_cache_buffer_is_never_reallocated():
    cache = _cache_from_points([0.0, 1.0, 2.0])
    buffer = cache.matrix
    cache.remove_at(0, 3)
    cache.truncate_front(1, 2)
    assert cache.matrix is buffer
    assert cache.matrix.shape == (5, 5)


# --- error tracker ---------------------------------------------------------

def test_error_tracker_accumulates_and_thresholds():
    errors = ErrorTracker()
    errors.record_miss(7, 1)
    errors.record_miss(7, 2)
    errors.record_miss(8, 0)
    assert errors.get(7) == 3
    assert 8 not in errors
    assert errors.threshold_exceeded(7, penalty=1.0, n_labels=2)
    assert not errors.threshold_exceeded(7, penalty=1.5, n_labels=2)
    assert errors.over_threshold(1.0, 2) == [7]


def test_error_tracker_rejects_negative_counts_and_removes():
    errors = ErrorTracker()
    with pytest.raises(ValueError):
        errors.record_miss(1, -1)
    errors.record_miss(1, 1)
    errors.remove(1)
    errors.remove(1)
    assert len(errors) == 0


# --- window store ----------------------------------------------------------

def test_window_store_assigns_distinct_identities_to_equal_instances():
    store = WindowStore(max_size=3)
    first = _instance({"a": 1.0, "b": 1.0, "c": 1.0})
    second = _instance({"a": 1.0, "b": 1.0, "c": 1.0})
    store.append(first)
    store.append(second)
    assert first.uid != second.uid
    assert store.index_of(second.uid) == 1


def test_window_store_drop_front_and_capacity():
    store = WindowStore(max_size=2)
    store.append(_instance({"a": 1.0}))
    store.append(_instance({"a": 2.0}))
    with pytest.raises(OverflowError):
        store.append(_instance({"a": 3.0}))
    dropped = store.drop_front(1)
    assert [d.values.tolist() for d in dropped] == [[1.0]]
    assert len(store) == 1

from __future__ import annotations

import logging
import typing

import numpy as np

from river import base

from attribute_ranges import AttributeRangeTracker
from distance_cache import DistanceCache
from error_tracker import ErrorTracker
from knn_votes import distances_to, nearest_k, vote
from stream_header import ConfigurationError, StreamHeader, require_header
from window_adapter import AdaptationMetric, WindowSizeAdapter
from window_store import WindowStore, features_to_instance, labels_to_array, to_instance


class PunitiveSAMkNN(base.MultiLabelClassifier):
    """
    Multi-label punitive kNN with self-adjusting memory for drifting streams.

    The learner keeps a bounded window of recent labelled instances and predicts
    each label by the vote frequency of the k nearest windowed neighbours.
    Pairwise distances between windowed instances are cached so that the window
    size can be re-evaluated after every training step: smaller sub-windows made
    of the most recent instances are scored by replaying test-then-train
    predictions over them, and the window shrinks to the best-scoring size.

    Neighbours are punished for their votes. Whenever a prediction is made with
    the true label vector available, every selected neighbour is charged one
    error per label it disagrees on with the query. A stored instance whose
    accumulated error exceeds `penalty * n_labels` is evicted on the next
    training step.

    Parameters
    ----------
    k
        Number of neighbours.
    max_window_size
        Maximum number of stored instances. The distance buffer holds
        `max_window_size ** 2` entries.
    min_window_size
        The window is only adapted once it holds twice this many instances.
    penalty
        Error multiplier: an instance is evicted when its accumulated error is
        strictly greater than `penalty * n_labels`.
    reduction_ratio
        Ratio between consecutive candidate window sizes, in `[0, 1)`.
    metric
        Score used to compare candidate window sizes, either
        `"subset_accuracy"` or `"hamming_score"`.

    Examples
    --------
    >>> from stream_header import StreamHeader
    >>> model = PunitiveSAMkNN(k=1, max_window_size=10, min_window_size=2)
    >>> model.set_model_context(StreamHeader(["a", "b"], ["l0", "l1"]))
    >>> model.learn_one({"a": 0.1, "b": 0.2}, {"l0": True, "l1": False}).window_size
    1
    >>> model.predict_one({"a": 0.1, "b": 0.3})
    {'l0': True, 'l1': False}
    """

    def __init__(
        self,
        k: int = 3,
        max_window_size: int = 1000,
        min_window_size: int = 50,
        penalty: float = 1.0,
        reduction_ratio: float = 0.5,
        metric: str | AdaptationMetric = "subset_accuracy",
    ):
        self.k = k
        self.max_window_size = max_window_size
        self.min_window_size = min_window_size
        self.penalty = penalty
        self.reduction_ratio = reduction_ratio
        self.metric = metric

        if k < 1:
            raise ConfigurationError(f"k must be at least 1, got {k}.")
        if max_window_size < 1:
            raise ConfigurationError(f"max_window_size must be at least 1, got {max_window_size}.")
        if min_window_size < 1:
            raise ConfigurationError(f"min_window_size must be at least 1, got {min_window_size}.")
        if penalty < 0:
            raise ConfigurationError(f"penalty cannot be negative, got {penalty}.")
        if not 0 <= reduction_ratio < 1:
            raise ConfigurationError(f"reduction_ratio must lie in [0, 1), got {reduction_ratio}.")
        self._metric = AdaptationMetric.parse(metric)

        self._header: StreamHeader | None = None
        self._window: WindowStore | None = None
        self._cache: DistanceCache | None = None
        self._ranges: AttributeRangeTracker | None = None
        self._errors: ErrorTracker | None = None
        self._adapter: WindowSizeAdapter | None = None

        self.n_punitive_evictions = 0
        self.n_shrink_evictions = 0
        self.n_hard_cap_evictions = 0

    def set_model_context(self, header: StreamHeader):
        """Declares the stream's features and labels and allocates the model state."""
        self._header = require_header(header)
        self._window = WindowStore(self.max_window_size)
        self._cache = DistanceCache(self.max_window_size)
        self._ranges = AttributeRangeTracker(self._header.n_features)
        self._errors = ErrorTracker()
        self._adapter = WindowSizeAdapter(
            k=self.k,
            min_window_size=self.min_window_size,
            reduction_ratio=self.reduction_ratio,
            metric=self._metric,
            n_labels=self._header.n_labels,
        )
        self.n_punitive_evictions = 0
        self.n_shrink_evictions = 0
        self.n_hard_cap_evictions = 0
        logging.info(f"{self.__class__.__name__} ready: {self._header.n_features} attributes, "
                     f"{self._header.n_labels} labels, window up to {self.max_window_size}.")
        return self

    def reset(self):
        """Forgets every stored instance but keeps the model context and its buffers."""
        if self._header is None:
            return self
        self._window.clear()
        self._cache.reset()
        self._ranges.reset()
        self._errors.clear()
        self._adapter.reset()
        self.n_punitive_evictions = 0
        self.n_shrink_evictions = 0
        self.n_hard_cap_evictions = 0
        return self

    # --- read-only views ---------------------------------------------------

    @property
    def header(self) -> StreamHeader:
        return self._require_context()

    @property
    def window_size(self) -> int:
        return 0 if self._window is None else len(self._window)

    @property
    def window(self) -> WindowStore:
        self._require_context()
        return self._window

    @property
    def distance_cache(self) -> DistanceCache:
        self._require_context()
        return self._cache

    @property
    def errors(self) -> ErrorTracker:
        self._require_context()
        return self._errors

    @property
    def ranges(self) -> AttributeRangeTracker:
        self._require_context()
        return self._ranges

    @property
    def adapter(self) -> WindowSizeAdapter:
        self._require_context()
        return self._adapter

    def _require_context(self) -> StreamHeader:
        if self._header is None:
            raise ConfigurationError("Error: no model context available. Call set_model_context first.")
        return self._header

    # --- learning ----------------------------------------------------------

    def learn_one(self, x: dict, y: dict):
        header = self._require_context()
        instance = to_instance(x, y, header)

        new_index = self._window.append(instance)
        self._ranges.observe(instance)
        self._cache.append_row(new_index, distances_to(instance, self._window[:new_index], self._ranges))

        self._evict_punished()

        window_size = len(self._window)
        new_window_size = self._adapter.select_size(self._window, self._cache)
        if new_window_size < window_size:
            diff = window_size - new_window_size
            for dropped in self._window.drop_front(diff):
                self._errors.remove(dropped.uid)
            self._cache.truncate_front(diff, window_size)
            self._adapter.adapt_histories()
            self.n_shrink_evictions += diff
            logging.debug(f"Window shrunk from {window_size} to {new_window_size} "
                          f"(scores {np.round(self._adapter.scores, 4).tolist()}).")
            window_size = new_window_size

        if window_size == self.max_window_size:
            self._cache.truncate_front(1, window_size)
            oldest = self._window.drop_front(1)[0]
            self._errors.remove(oldest.uid)
            self.n_hard_cap_evictions += 1

        return self

    def _evict_punished(self):
        for uid in self._errors.over_threshold(self.penalty, self._header.n_labels):
            index = self._window.index_of(uid)
            if index >= 0:
                self._cache.remove_at(index, len(self._window))
                self._window.remove_at(index)
                self.n_punitive_evictions += 1
                logging.debug(f"Punitive eviction of instance {uid} at window position {index} "
                              f"({self._errors.get(uid)} errors).")
            self._errors.remove(uid)

    # --- prediction --------------------------------------------------------

    def _votes(self, x: dict, y: dict | None) -> np.ndarray:
        header = self._require_context()
        query = features_to_instance(x, header)
        truth = None if y is None else labels_to_array(y, header)

        window_size = len(self._window)
        if window_size == 0:
            return vote([], self._window, header.n_labels)

        distances = distances_to(query, self._window, self._ranges)
        neighbors = nearest_k(self.k, distances, 0, window_size - 1)
        votes = vote(neighbors, self._window, header.n_labels)

        if truth is not None:
            for index in neighbors:
                neighbor = self._window[index]
                self._errors.record_miss(neighbor.uid, int(np.count_nonzero(neighbor.labels != truth)))

        return votes

    def predict_proba_one(self, x: dict, y: dict | None = None) -> typing.Dict[typing.Hashable, typing.Dict[bool, float]]:
        """
        Per-label vote frequencies as `{label: {False: p0, True: p1}}`.

        When the true labels `y` are given, the neighbours that voted are charged
        with the labels they got wrong for this query.
        """
        votes = self._votes(x, y)
        return {
            label: {False: float(votes[j, 0]), True: float(votes[j, 1])}
            for j, label in enumerate(self._header.label_names)
        }

    def predict_one(self, x: dict, y: dict | None = None) -> typing.Dict[typing.Hashable, bool]:
        votes = self._votes(x, y)
        return {label: bool(votes[j, 1] >= votes[j, 0]) for j, label in enumerate(self._header.label_names)}

from __future__ import annotations

import enum
import logging
import typing

import numpy as np

from distance_cache import DistanceCache
from knn_votes import correct_labels, nearest_k, vote
from stream_header import ConfigurationError
from window_store import WindowStore


class AdaptationMetric(enum.Enum):
    SUBSET_ACCURACY = "subset_accuracy"
    HAMMING_SCORE = "hamming_score"

    @classmethod
    def parse(cls, metric) -> "AdaptationMetric":
        if isinstance(metric, cls):
            return metric
        try:
            return cls(str(metric).strip().lower().replace(" ", "_").replace("-", "_"))
        except ValueError:
            raise ConfigurationError(
                f"Invalid metric: {metric!r}. Valid options are: {[m.value for m in cls]}"
            ) from None

    def score(self, history: typing.Sequence[int], n_labels: int) -> float:
        if len(history) == 0:
            return 0.0
        scores = np.asarray(history)
        if self is AdaptationMetric.SUBSET_ACCURACY:
            return float(np.count_nonzero(scores == n_labels)) / len(scores)
        return float(scores.sum()) / (n_labels * len(scores))


class WindowSizeAdapter:
    """
    Chooses the window size that maximises a replayed test-then-train score.

    Candidate sizes form a geometric sequence starting at the current window
    size. For each candidate `s`, the sub-window `[size - s, size)` is replayed:
    every position is predicted from its k nearest neighbours among the earlier
    positions of the same sub-window, and the number of correctly predicted
    labels is appended to that candidate's prediction history. Histories are
    keyed by sub-window offset and extended incrementally between calls.

    Parameters
    ----------
    k
        Number of neighbours used in the replay.
    min_window_size
        Adaptation only happens once the window holds twice this many instances.
    reduction_ratio
        Factor between consecutive candidate sizes.
    metric
        Score applied to each prediction history.
    n_labels
        Number of output labels.
    """

    def __init__(self, k: int, min_window_size: int, reduction_ratio: float,
                 metric: AdaptationMetric, n_labels: int):
        self.k = k
        self.min_window_size = min_window_size
        self.reduction_ratio = reduction_ratio
        self.metric = metric
        self.n_labels = n_labels

        self.histories: typing.Dict[int, typing.List[int]] = {}
        self.candidates: typing.List[int] = []
        self.scores: typing.List[float] = []
        self.chosen_index = 0

    def candidate_sizes(self, window_size: int) -> typing.List[int]:
        sizes = [window_size]
        while sizes[-1] >= 2 * self.min_window_size:
            sizes.append(int(sizes[-1] * self.reduction_ratio))
        return sizes

    def select_size(self, window: WindowStore, cache: DistanceCache) -> int:
        window_size = len(window)
        self.chosen_index = 0
        if window_size < 2 * self.min_window_size:
            self.candidates = [window_size]
            self.scores = []
            return window_size

        self.candidates = self.candidate_sizes(window_size)
        offsets = {window_size - s for s in self.candidates}
        for offset in list(self.histories):
            if offset not in offsets:
                del self.histories[offset]

        self.scores = []
        for size in self.candidates:
            offset = window_size - size
            history = self.histories.setdefault(offset, [])
            self._replay(window, cache, offset, history)
            self.scores.append(self.metric.score(history, self.n_labels))

        self.chosen_index = int(np.argmax(self.scores))
        return self.candidates[self.chosen_index]

    def _replay(self, window: WindowStore, cache: DistanceCache, offset: int, history: typing.List[int]):
        """Extends `history` from its current length to the end of the window."""
        for i in range(offset + len(history), len(window)):
            neighbors = nearest_k(self.k, cache.row(i, 0, i), offset, i - 1)
            votes = vote(neighbors, window, self.n_labels)
            history.append(correct_labels(votes, window[i].labels))

    def adapt_histories(self, n_discarded: int = None):
        """
        Re-keys the histories after the window dropped its oldest instances.

        Once per discarded larger candidate, the history with the smallest offset
        is removed and the remaining offsets are reduced by the new smallest one.
        """
        n_discarded = self.chosen_index if n_discarded is None else n_discarded
        for _ in range(n_discarded):
            if not self.histories:
                break
            del self.histories[min(self.histories)]
            if not self.histories:
                break
            base = min(self.histories)
            self.histories = {key - base: history for key, history in self.histories.items()}
        logging.debug(f"Prediction histories re-keyed after dropping {n_discarded} candidate(s): "
                      f"{sorted(self.histories)}")

    def reset(self):
        self.histories.clear()
        self.candidates = []
        self.scores = []
        self.chosen_index = 0

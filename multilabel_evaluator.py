from __future__ import annotations

import logging
import typing

import numpy as np

from stream_header import StreamHeader


METRIC_NAMES = (
    "Subset Accuracy",
    "Hamming Score",
    "Example-Based Accuracy",
    "Example-Based Precision",
    "Example-Based Recall",
    "Example-Based F-Measure",
    "Micro-Averaged Precision",
    "Micro-Averaged Recall",
    "Micro-Averaged F-Measure",
    "Macro-Averaged Precision",
    "Macro-Averaged Recall",
    "Macro-Averaged F-Measure",
)


def _f_measure(precision: float, recall: float) -> float:
    if precision + recall == 0:
        return 0.0
    return 2.0 * precision * recall / (precision + recall)


class PrequentialMultiLabelEvaluator:
    """
    Fading-factor multi-label performance evaluator.

    Every running sum is multiplied by `alpha` before a new result is added, so
    older predictions weigh exponentially less. The normaliser `b` follows the
    same recursion, which makes each measure a faded average.

    A label is counted as predicted positive when `p(True) >= p(False)`.

    Parameters
    ----------
    alpha
        Fading factor in `(0, 1]`. `1.0` gives plain cumulative averages.
    label_names
        Optional label order. When omitted it is taken from the first result.
    """

    def __init__(self, alpha: float = 0.995, label_names: typing.Sequence = None):
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must lie in (0, 1], got {alpha}.")
        self.alpha = alpha
        self.label_names = None if label_names is None else tuple(label_names)
        self.reset()

    @classmethod
    def for_header(cls, header: StreamHeader, alpha: float = 0.995) -> "PrequentialMultiLabelEvaluator":
        return cls(alpha=alpha, label_names=header.label_names)

    def reset(self):
        n_labels = 0 if self.label_names is None else len(self.label_names)
        self._sum_tp = np.zeros(n_labels)
        self._sum_fp = np.zeros(n_labels)
        self._sum_fn = np.zeros(n_labels)
        self._sum_exact_match = 0.0
        self._sum_hamming = 0.0
        self._sum_example_accuracy = 0.0
        self._sum_example_precision = 0.0
        self._sum_example_recall = 0.0
        self._b = 0.0
        self.n_results = 0

    @property
    def n_labels(self) -> int:
        return 0 if self.label_names is None else len(self.label_names)

    def add_result(self, y_true: dict, y_pred: dict):
        """
        Adds one prediction.

        `y_pred` maps each label to its vote pair `{False: p0, True: p1}`.
        Predictions that do not cover every label are ignored with a warning.
        """
        if self.label_names is None:
            self.label_names = tuple(y_true.keys())
            self.reset()

        if y_pred is None:
            logging.warning("Prediction is None! (Ignoring this prediction)")
            return
        missing = [label for label in self.label_names if label not in y_pred]
        if missing:
            logging.warning(f"Only {len(y_pred)} labels found! (Expecting {self.n_labels}) "
                            f"(Ignoring this prediction)")
            return

        truth = np.array([bool(y_true[label]) for label in self.label_names])
        predicted = np.array([
            y_pred[label].get(True, 0.0) >= y_pred[label].get(False, 0.0) for label in self.label_names
        ])

        tp = truth & predicted
        fn = truth & ~predicted
        fp = ~truth & predicted

        a = self.alpha
        self._sum_tp = self._sum_tp * a + tp
        self._sum_fn = self._sum_fn * a + fn
        self._sum_fp = self._sum_fp * a + fp

        correct = int(np.count_nonzero(truth == predicted))
        self._sum_hamming = self._sum_hamming * a + correct / self.n_labels
        self._sum_exact_match = self._sum_exact_match * a + (1.0 if correct == self.n_labels else 0.0)

        cur_tp, cur_fp, cur_fn = int(tp.sum()), int(fp.sum()), int(fn.sum())
        if cur_tp + cur_fp > 0:
            self._sum_example_precision = self._sum_example_precision * a + cur_tp / (cur_tp + cur_fp)
        if cur_tp + cur_fn > 0:
            self._sum_example_recall = self._sum_example_recall * a + cur_tp / (cur_tp + cur_fn)
        if cur_tp + cur_fn + cur_fp > 0:
            self._sum_example_accuracy = self._sum_example_accuracy * a + cur_tp / (cur_tp + cur_fn + cur_fp)

        self._b = a * self._b + 1.0
        self.n_results += 1

    def _faded(self, value: float) -> float:
        return value / self._b if self._b > 0 else 0.0

    def micro_precision(self) -> float:
        denominator = float((self._sum_tp + self._sum_fp).sum())
        return float(self._sum_tp.sum()) / denominator if denominator > 0 else 0.0

    def micro_recall(self) -> float:
        denominator = float((self._sum_tp + self._sum_fn).sum())
        return float(self._sum_tp.sum()) / denominator if denominator > 0 else 0.0

    def macro_precision(self) -> float:
        if self.n_labels == 0:
            return 0.0
        denominator = self._sum_tp + self._sum_fp
        per_label = np.divide(self._sum_tp, denominator, out=np.zeros_like(denominator), where=denominator != 0)
        return float(per_label.sum()) / self.n_labels

    def macro_recall(self) -> float:
        if self.n_labels == 0:
            return 0.0
        denominator = self._sum_tp + self._sum_fn
        per_label = np.divide(self._sum_tp, denominator, out=np.zeros_like(denominator), where=denominator != 0)
        return float(per_label.sum()) / self.n_labels

    def metrics(self) -> typing.Dict[str, float]:
        example_precision = self._faded(self._sum_example_precision)
        example_recall = self._faded(self._sum_example_recall)
        micro_precision = self.micro_precision()
        micro_recall = self.micro_recall()
        macro_precision = self.macro_precision()
        macro_recall = self.macro_recall()
        values = (
            self._faded(self._sum_exact_match),
            self._faded(self._sum_hamming),
            self._faded(self._sum_example_accuracy),
            example_precision,
            example_recall,
            _f_measure(example_precision, example_recall),
            micro_precision,
            micro_recall,
            _f_measure(micro_precision, micro_recall),
            macro_precision,
            macro_recall,
            _f_measure(macro_precision, macro_recall),
        )
        return dict(zip(METRIC_NAMES, values))

    def subset_accuracy(self) -> float:
        return self._faded(self._sum_exact_match)

    def hamming_score(self) -> float:
        return self._faded(self._sum_hamming)

    def __repr__(self):
        return f"PrequentialMultiLabelEvaluator(alpha={self.alpha}, n_results={self.n_results})"

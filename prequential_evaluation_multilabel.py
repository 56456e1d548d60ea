from __future__ import annotations

import dataclasses
import itertools
import logging
import time
import typing
from typing import Iterable, Optional, Union

import pandas as pd
from tqdm.auto import tqdm

from multilabel_evaluator import PrequentialMultiLabelEvaluator
from stream_header import StreamHeader


@dataclasses.dataclass
class PrequentialMultiLabelResults:
    learner: str
    stream: str
    instances: int
    wallclock: float
    cpu_time: float
    cumulative: typing.Dict[str, float]
    windowed: typing.List[typing.Dict[str, float]]
    window_sizes: typing.List[int]
    predictions: Optional[list] = None
    ground_truth_y: Optional[list] = None

    def metrics_per_window(self) -> pd.DataFrame:
        return pd.DataFrame(self.windowed)

    def cumulative_frame(self) -> pd.DataFrame:
        row = {
            "Learner": self.learner,
            "Stream": self.stream,
            "Instances": self.instances,
            "Wallclock Time (s)": self.wallclock,
            "CPU Time (s)": self.cpu_time,
        }
        row.update(self.cumulative)
        return pd.DataFrame([row])


def prequential_evaluation_multilabel(
    stream: Iterable,
    learner,
    header: StreamHeader,
    max_instances: Optional[int] = None,
    window_size: int = 1000,
    alpha: float = 0.995,
    store_predictions: bool = False,
    store_y: bool = False,
    progress_bar: Union[bool, tqdm] = False,
) -> PrequentialMultiLabelResults:
    """
    Test-then-train evaluation of a multi-label learner over a stream of (x, y) pairs.

    Each instance is first predicted (with its true labels passed along, so that
    punitive learners can charge the neighbours that voted), then scored by a
    fading-factor evaluator, then learned. A snapshot of the evaluator's metrics
    is taken every `window_size` instances and once more at the end of the
    stream when the last window is incomplete.
    """
    if hasattr(learner, "set_model_context"):
        learner.set_model_context(header)

    evaluator = PrequentialMultiLabelEvaluator.for_header(header, alpha=alpha)
    windowed = []
    window_sizes = []
    predictions_to_store = [] if store_predictions else None
    ground_truth_y_to_store = [] if store_y else None

    if isinstance(progress_bar, tqdm):
        actual_progress_bar = progress_bar
    elif progress_bar:
        actual_progress_bar = tqdm(total=max_instances, desc=f"Eval {learner.__class__.__name__}")
    else:
        actual_progress_bar = None

    start_wallclock_time = time.perf_counter()
    start_cpu_time = time.process_time()

    instances_processed = 0
    for x, y in itertools.islice(stream, max_instances):
        y_pred = learner.predict_proba_one(x, y=y)
        evaluator.add_result(y, y_pred)
        learner.learn_one(x, y)
        instances_processed += 1

        window_sizes.append(getattr(learner, "window_size", 0))
        if predictions_to_store is not None:
            predictions_to_store.append(y_pred)
        if ground_truth_y_to_store is not None:
            ground_truth_y_to_store.append(y)

        if window_size and instances_processed % window_size == 0:
            windowed.append({"instances": instances_processed, **evaluator.metrics()})

        if actual_progress_bar is not None:
            actual_progress_bar.update(1)

    if actual_progress_bar is not None:
        actual_progress_bar.close()

    elapsed_wallclock_time = time.perf_counter() - start_wallclock_time
    elapsed_cpu_time = time.process_time() - start_cpu_time

    if window_size and instances_processed % window_size != 0:
        windowed.append({"instances": instances_processed, **evaluator.metrics()})

    logging.info(f"{instances_processed} instances processed in {elapsed_cpu_time:.2f} seconds.")

    return PrequentialMultiLabelResults(
        learner=str(learner),
        stream=header.relation,
        instances=instances_processed,
        wallclock=elapsed_wallclock_time,
        cpu_time=elapsed_cpu_time,
        cumulative=evaluator.metrics(),
        windowed=windowed,
        window_sizes=window_sizes,
        predictions=predictions_to_store,
        ground_truth_y=ground_truth_y_to_store,
    )

from __future__ import annotations

import dataclasses

import numpy as np

from stream_header import StreamHeader


@dataclasses.dataclass
class MultiLabelStreamConfig:
    n_instances: int = 5000
    n_features: int = 6
    n_labels: int = 4
    drift_at: int = 2500
    radius: float = 0.35
    noise: float = 0.02
    seed: int = 42


def header_for(cfg: MultiLabelStreamConfig, relation: str = "drifting_multilabel") -> StreamHeader:
    return StreamHeader(
        feature_names=[f"x{i}" for i in range(cfg.n_features)],
        label_names=[f"label_{j}" for j in range(cfg.n_labels)],
        relation=relation,
    )


def drifting_multilabel_stream(cfg: MultiLabelStreamConfig):
    """
    Multi-label stream with one abrupt concept drift.

    Inputs are uniform in the unit hypercube. Each label has a prototype point
    and is set when the input lies within `radius` of it. At `drift_at` the
    prototypes are redrawn, so the same region of the input space maps to a
    different label set. Each label is flipped with probability `noise`.

    Yields (x, y) pairs in river format.
    """
    rng = np.random.default_rng(cfg.seed)
    header = header_for(cfg)

    centers = rng.random((cfg.n_labels, cfg.n_features))
    centers_d = rng.random((cfg.n_labels, cfg.n_features))

    for t in range(cfg.n_instances):
        drift = t >= cfg.drift_at
        x = rng.random(cfg.n_features)
        prototypes = centers_d if drift else centers
        labels = np.linalg.norm(prototypes - x, axis=1) / np.sqrt(cfg.n_features) < cfg.radius
        flips = rng.random(cfg.n_labels) < cfg.noise
        labels = labels ^ flips

        yield (
            {name: float(v) for name, v in zip(header.feature_names, x)},
            {name: bool(v) for name, v in zip(header.label_names, labels)},
        )

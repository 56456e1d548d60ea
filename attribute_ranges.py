from __future__ import annotations

import numpy as np


class AttributeRangeTracker:
    """
    Running per-attribute minimum and maximum used for min-max normalisation.

    Both bounds start at zero, so every range contains zero (the implicit value
    of attributes missing from sparse instances). Ranges only ever widen; they
    are not re-tightened when old instances leave the window.
    """

    def __init__(self, n_features: int):
        self.n_features = n_features
        self.minimum = np.zeros(n_features, dtype=float)
        self.maximum = np.zeros(n_features, dtype=float)

    def observe(self, instance):
        idx = instance.indices
        values = instance.values
        np.minimum.at(self.minimum, idx, values)
        np.maximum.at(self.maximum, idx, values)

    @property
    def span(self) -> np.ndarray:
        return self.maximum - self.minimum

    def reset(self):
        self.minimum.fill(0.0)
        self.maximum.fill(0.0)

    def __repr__(self):
        return f"AttributeRangeTracker(n_features={self.n_features})"

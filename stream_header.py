from __future__ import annotations

import dataclasses
import functools
import typing


class ConfigurationError(ValueError):
    """Raised when the learner is misconfigured or used without a model context."""


class InvalidInstanceShape(ValueError):
    """Raised when an instance does not match the configured header."""


@dataclasses.dataclass(frozen=True)
class StreamHeader:
    """
    Model context for a multi-label stream.

    Parameters
    ----------
    feature_names
        Names of the numeric input attributes, in attribute order.
    label_names
        Names of the binary output labels, in label order.
    relation
        Optional name of the stream (ARFF relation name).
    """
    feature_names: tuple
    label_names: tuple
    relation: str = "stream"

    def __post_init__(self):
        object.__setattr__(self, "feature_names", tuple(self.feature_names))
        object.__setattr__(self, "label_names", tuple(self.label_names))

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    @property
    def n_labels(self) -> int:
        return len(self.label_names)

    @functools.cached_property
    def feature_positions(self) -> dict:
        return {name: i for i, name in enumerate(self.feature_names)}

    def validate(self):
        if self.n_labels == 0:
            raise ConfigurationError("Header defines no output labels.")
        if len(set(self.feature_names)) != self.n_features:
            raise ConfigurationError("Duplicate feature names in header.")
        if len(set(self.label_names)) != self.n_labels:
            raise ConfigurationError("Duplicate label names in header.")
        overlap = set(self.feature_names) & set(self.label_names)
        if overlap:
            raise ConfigurationError(f"Names used both as feature and label: {sorted(map(str, overlap))}")

    @classmethod
    def from_example(cls, x: dict, y: dict, relation: str = "stream") -> "StreamHeader":
        """Build a header from the keys of a first (x, y) pair."""
        return cls(feature_names=tuple(x.keys()), label_names=tuple(y.keys()), relation=relation)


def require_header(header: typing.Optional[StreamHeader]) -> StreamHeader:
    if header is None:
        raise ConfigurationError("Error: no model context available. Call set_model_context first.")
    if not isinstance(header, StreamHeader):
        raise ConfigurationError(f"Expected a StreamHeader, got {type(header).__name__}.")
    header.validate()
    return header

from __future__ import annotations

import dataclasses
import itertools
import math
import numbers
import typing

import numpy as np

from stream_header import InvalidInstanceShape, StreamHeader


@dataclasses.dataclass(eq=False)
class StoredInstance:
    """
    A labelled instance held by the window.

    `indices`/`values` list the attributes carried by the instance in increasing
    attribute order. Dense instances carry every attribute; sparse instances
    leave out attributes whose value is implicitly zero. `uid` is assigned on
    insertion and is the only identity used for error bookkeeping, so two
    instances with identical values stay distinguishable.
    """
    indices: np.ndarray
    values: np.ndarray
    labels: np.ndarray
    dense: bool
    uid: int = -1


def _as_float(name, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidInstanceShape(f"Feature '{name}' has non-numeric value {value!r}.")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise InvalidInstanceShape(f"Feature '{name}' has non-finite value {value!r}.")
    return value


def _as_label(name, value) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, numbers.Integral) and value in (0, 1):
        return bool(value)
    if isinstance(value, numbers.Real) and float(value) in (0.0, 1.0):
        return bool(value)
    raise InvalidInstanceShape(f"Label '{name}' must be binary, got {value!r}.")


def features_to_instance(x: dict, header: StreamHeader) -> StoredInstance:
    """Converts a river-style feature dict; labels are left empty."""
    positions = header.feature_positions
    pairs = []
    for name, value in x.items():
        if name not in positions:
            raise InvalidInstanceShape(f"Unknown feature '{name}' (not in header).")
        if value is None:
            continue
        pairs.append((positions[name], _as_float(name, value)))
    pairs.sort()
    dense = len(pairs) == header.n_features
    indices = np.fromiter((p[0] for p in pairs), dtype=np.intp, count=len(pairs))
    values = np.fromiter((p[1] for p in pairs), dtype=float, count=len(pairs))
    return StoredInstance(indices=indices, values=values, labels=np.zeros(0, dtype=bool), dense=dense)


def labels_to_array(y: dict, header: StreamHeader) -> np.ndarray:
    if len(y) != header.n_labels:
        raise InvalidInstanceShape(f"Expected {header.n_labels} labels, got {len(y)}.")
    try:
        return np.array([_as_label(name, y[name]) for name in header.label_names], dtype=bool)
    except KeyError as e:
        raise InvalidInstanceShape(f"Missing label {e.args[0]!r}.") from e


def to_instance(x: dict, y: dict, header: StreamHeader) -> StoredInstance:
    instance = features_to_instance(x, header)
    instance.labels = labels_to_array(y, header)
    return instance


class WindowStore:
    """Ordered window of retained instances, oldest first, bounded by `max_size`."""

    def __init__(self, max_size: int):
        self.max_size = max_size
        self._instances: typing.List[StoredInstance] = []
        self._uids = itertools.count()

    def append(self, instance: StoredInstance) -> int:
        """Stores the instance under a fresh identity and returns its position."""
        if len(self._instances) >= self.max_size:
            raise OverflowError(f"Window is full ({self.max_size} instances).")
        instance.uid = next(self._uids)
        self._instances.append(instance)
        return len(self._instances) - 1

    def index_of(self, uid: int) -> int:
        for idx, instance in enumerate(self._instances):
            if instance.uid == uid:
                return idx
        return -1

    def remove_at(self, index: int) -> StoredInstance:
        return self._instances.pop(index)

    def drop_front(self, count: int) -> typing.List[StoredInstance]:
        dropped = self._instances[:count]
        del self._instances[:count]
        return dropped

    def clear(self):
        self._instances.clear()

    def __len__(self):
        return len(self._instances)

    def __getitem__(self, index) -> StoredInstance:
        return self._instances[index]

    def __iter__(self):
        return iter(self._instances)

from __future__ import annotations

import collections
import typing


class ErrorTracker:
    """Accumulated wrong-label votes per windowed instance, keyed by instance uid."""

    def __init__(self):
        self._errors: typing.Dict[int, int] = collections.defaultdict(int)

    def record_miss(self, uid: int, count: int):
        if count < 0:
            raise ValueError(f"Error count cannot be negative, got {count}.")
        if count == 0:
            return
        self._errors[uid] += count

    def threshold_exceeded(self, uid: int, penalty: float, n_labels: int) -> bool:
        return self._errors.get(uid, 0) > penalty * n_labels

    def over_threshold(self, penalty: float, n_labels: int) -> typing.List[int]:
        limit = penalty * n_labels
        return [uid for uid, errors in self._errors.items() if errors > limit]

    def remove(self, uid: int):
        self._errors.pop(uid, None)

    def clear(self):
        self._errors.clear()

    def get(self, uid: int) -> int:
        return self._errors.get(uid, 0)

    def __contains__(self, uid):
        return uid in self._errors

    def __len__(self):
        return len(self._errors)

    def items(self):
        return self._errors.items()

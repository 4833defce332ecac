# Copyright (c) Syntropy Systems
"""Runtime forced-variation overrides."""
from __future__ import annotations

import threading
from typing import Optional


class ForcedVariationStore:
    """Map of user id -> {experiment id: variation id}.

    Set at runtime by callers, independent of datafile reloads. All access
    holds a lock so a decision never sees a half-applied update.
    """

    def __init__(self) -> None:
        self._map: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def set(self, experiment_id: str, user_id: str, variation_id: Optional[str]) -> None:
        """Force a variation, or remove the override when variation_id is None."""
        with self._lock:
            if variation_id is None:
                experiments = self._map.get(user_id)
                if experiments is not None:
                    experiments.pop(experiment_id, None)
                    if not experiments:
                        del self._map[user_id]
                return
            self._map.setdefault(user_id, {})[experiment_id] = variation_id

    def get(self, experiment_id: str, user_id: str) -> Optional[str]:
        with self._lock:
            return self._map.get(user_id, {}).get(experiment_id)

    def clear(self) -> None:
        with self._lock:
            self._map.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._map.values())

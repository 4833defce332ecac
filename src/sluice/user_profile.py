# Copyright (c) Syntropy Systems
"""User profile stores for sticky bucketing.

A store keeps, per user id, the experiment id -> variation id assignments
made earlier. Records use the wire shape::

    {"user_id": "u1", "experiment_bucket_map": {"111127": {"variation_id": "111128"}}}
"""
from __future__ import annotations

import json
import os
import tempfile
import threading
from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from pathlib import Path


class UserProfileService(Protocol):
    """Store consulted and updated by the decision service.

    Both calls may fail; the decision service treats failures as a miss
    (lookup) or a no-op (save).
    """

    def lookup(self, user_id: str) -> Optional[dict[str, Any]]:
        ...

    def save(self, user_profile: dict[str, Any]) -> None:
        ...


class NoOpUserProfileService:
    """Store that remembers nothing."""

    def lookup(self, user_id: str) -> Optional[dict[str, Any]]:
        return None

    def save(self, user_profile: dict[str, Any]) -> None:
        return None


class InMemoryUserProfileService:
    """Process-local store."""

    def __init__(self) -> None:
        self._profiles: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def lookup(self, user_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            record = self._profiles.get(user_id)
            return json.loads(json.dumps(record)) if record is not None else None

    def save(self, user_profile: dict[str, Any]) -> None:
        user_id = user_profile["user_id"]
        with self._lock:
            self._profiles[user_id] = json.loads(json.dumps(user_profile))


class JsonFileUserProfileService:
    """Store backed by a single JSON file mapping user id -> record.

    Writes go to a temporary file in the same directory and are moved into
    place, so readers never see a partial file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            msg = f"Profile store {self.path} is not a JSON object"
            raise ValueError(msg)
        return data

    def lookup(self, user_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._read_all().get(user_id)

    def save(self, user_profile: dict[str, Any]) -> None:
        user_id = user_profile["user_id"]
        with self._lock:
            profiles = self._read_all()
            profiles[user_id] = user_profile

            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=".profiles-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(profiles, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise

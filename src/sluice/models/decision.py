# Copyright (c) Syntropy Systems
"""Decision results and cached decision records."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional

from pydantic import Field, ValidationError, field_validator

from .base import MutableModel
from .datafile import Experiment, Variation


class DecisionSource(str, Enum):
    """Where a feature decision came from."""

    EXPERIMENT = "experiment"
    ROLLOUT = "rollout"


class Decision(NamedTuple):
    """Feature decision: the experiment (or rule), variation, and its source."""

    experiment: Optional[Experiment]
    variation: Optional[Variation]
    source: DecisionSource


class BucketEntry(MutableModel):
    """A previously assigned variation for one experiment."""

    variation_id: str


class UserProfile(MutableModel):
    """Cached decision record for one user, owned by the profile store."""

    user_id: str
    experiment_bucket_map: dict[str, BucketEntry] = Field(default_factory=dict)

    @field_validator("experiment_bucket_map", mode="before")
    @classmethod
    def _drop_invalid_entries(cls, value: object) -> object:
        # One unreadable assignment must not discard the others
        if not isinstance(value, dict):
            return value
        return {
            experiment_id: entry
            for experiment_id, entry in value.items()
            if isinstance(entry, BucketEntry)
            or (isinstance(entry, dict) and isinstance(entry.get("variation_id"), str))
        }

    @classmethod
    def from_record(cls, user_id: str, record: object) -> Optional[UserProfile]:
        """Parse a record returned by a profile store.

        Returns None for missing or malformed records. Individual bucket
        entries without a string variation id are dropped.
        """
        if record is None:
            return None
        if isinstance(record, UserProfile):
            return record
        if not isinstance(record, dict):
            return None
        data = dict(record)
        data.setdefault("user_id", user_id)
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def get_variation_id(self, experiment_id: str) -> Optional[str]:
        """Return the saved variation id for an experiment, if any."""
        entry = self.experiment_bucket_map.get(experiment_id)
        return entry.variation_id if entry is not None else None

    def save_variation(self, experiment_id: str, variation_id: str) -> None:
        """Record an assignment, keeping entries for other experiments."""
        self.experiment_bucket_map[experiment_id] = BucketEntry(
            variation_id=variation_id
        )

    def to_record(self) -> dict[str, object]:
        """Serialize to the store's wire shape."""
        return {
            "user_id": self.user_id,
            "experiment_bucket_map": {
                experiment_id: {"variation_id": entry.variation_id}
                for experiment_id, entry in self.experiment_bucket_map.items()
            },
        }

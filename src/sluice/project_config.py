# Copyright (c) Syntropy Systems
"""Immutable, indexed view of a datafile."""
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Optional, Union, cast

import yaml
from pydantic import ValidationError

from sluice.conditions import ConditionNode, parse_conditions
from sluice.models.datafile import (
    Audience,
    Datafile,
    Experiment,
    FeatureFlag,
    Group,
    Rollout,
    Variation,
)

if TYPE_CHECKING:
    from pathlib import Path


class InvalidDatafileError(ValueError):
    """Raised when a datafile cannot be parsed into a configuration."""


class ProjectConfig:
    """Configuration snapshot with id/key lookup tables.

    Built once per datafile and never mutated afterwards. Every lookup
    returns None for unknown ids or keys instead of raising.
    """

    def __init__(self, datafile: Datafile) -> None:
        self.datafile = datafile
        self.revision = datafile.revision

        self.group_id_map: dict[str, Group] = {g.id: g for g in datafile.groups}
        self.audience_id_map: dict[str, Audience] = {
            a.id: a for a in datafile.audiences
        }
        self.audience_conditions_map: dict[str, Optional[ConditionNode]] = {
            a.id: parse_conditions(a.conditions) for a in datafile.audiences
        }

        experiments = list(datafile.experiments)
        for group in datafile.groups:
            experiments.extend(
                exp.model_copy(update={"group_id": group.id, "group_policy": group.policy})
                for exp in group.experiments
            )

        self.experiment_key_map: dict[str, Experiment] = {}
        self.experiment_id_map: dict[str, Experiment] = {}
        for exp in experiments:
            self.experiment_key_map[exp.key] = exp
            self.experiment_id_map[exp.id] = exp

        self.rollout_id_map: dict[str, Rollout] = {r.id: r for r in datafile.rollouts}
        # Rollout rules are addressable by id but not by key; their keys
        # are not unique across rollouts.
        self.rollout_rule_id_map: dict[str, Experiment] = {
            rule.id: rule for r in datafile.rollouts for rule in r.experiments
        }

        self.feature_flag_key_map: dict[str, FeatureFlag] = {
            f.key: f for f in datafile.feature_flags
        }

        self.variation_id_map: dict[str, dict[str, Variation]] = {}
        self.variation_key_map: dict[str, dict[str, Variation]] = {}
        for exp in [*experiments, *self.rollout_rule_id_map.values()]:
            self.variation_id_map[exp.id] = {v.id: v for v in exp.variations}
            self.variation_key_map[exp.id] = {v.key: v for v in exp.variations}

    @classmethod
    def from_datafile(cls, data: Union[dict[str, object], str, bytes]) -> ProjectConfig:
        """Validate a datafile (dict or JSON text) and index it."""
        if isinstance(data, (str, bytes)):
            try:
                data = cast("dict[str, object]", json.loads(data))
            except ValueError as e:
                msg = f"Datafile is not valid JSON: {e}"
                raise InvalidDatafileError(msg) from e
        if not isinstance(data, dict):
            msg = "Datafile must be a JSON object"
            raise InvalidDatafileError(msg)
        try:
            return cls(Datafile.model_validate(data))
        except ValidationError as e:
            msg = f"Datafile failed validation: {e}"
            raise InvalidDatafileError(msg) from e

    @classmethod
    def from_file(cls, path: Path) -> ProjectConfig:
        """Load a JSON or YAML datafile from disk."""
        try:
            with path.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Could not parse datafile {path}: {e}"
            raise InvalidDatafileError(msg) from e
        return cls.from_datafile(cast("dict[str, object]", data))

    def get_experiment_from_key(self, experiment_key: str) -> Optional[Experiment]:
        return self.experiment_key_map.get(experiment_key)

    def get_experiment_from_id(self, experiment_id: str) -> Optional[Experiment]:
        return self.experiment_id_map.get(experiment_id)

    def get_rollout_rule(self, rule_id: str) -> Optional[Experiment]:
        return self.rollout_rule_id_map.get(rule_id)

    def get_group(self, group_id: str) -> Optional[Group]:
        return self.group_id_map.get(group_id)

    def get_audience(self, audience_id: str) -> Optional[Audience]:
        return self.audience_id_map.get(audience_id)

    def get_audience_conditions(self, audience_id: str) -> Optional[ConditionNode]:
        """Parsed condition tree for an audience (None when empty or unknown)."""
        return self.audience_conditions_map.get(audience_id)

    def get_feature_flag(self, feature_key: str) -> Optional[FeatureFlag]:
        return self.feature_flag_key_map.get(feature_key)

    def get_rollout(self, rollout_id: str) -> Optional[Rollout]:
        return self.rollout_id_map.get(rollout_id)

    def get_variation_from_id(
        self, experiment: Experiment, variation_id: str
    ) -> Optional[Variation]:
        """Resolve a variation id within an experiment."""
        return self.variation_id_map.get(experiment.id, {}).get(variation_id)

    def get_variation_from_key(
        self, experiment: Experiment, variation_key: str
    ) -> Optional[Variation]:
        """Resolve a variation key within an experiment."""
        return self.variation_key_map.get(experiment.id, {}).get(variation_key)

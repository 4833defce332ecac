# Copyright (c) Syntropy Systems
"""Pydantic models for the experiment/feature datafile."""

from __future__ import annotations

from typing import Optional, cast

from pydantic import Field, field_validator

from .base import JSONValue, SluiceBaseModel

RUNNING_STATUS = "Running"

GROUP_POLICY_RANDOM = "random"
GROUP_POLICY_OVERLAPPING = "overlapping"


class Variation(SluiceBaseModel):
    """A variation of an experiment. Variables are carried, never inspected."""

    id: str
    key: str
    variables: list[dict[str, JSONValue]] = Field(default_factory=list)
    feature_enabled: Optional[bool] = Field(default=None, alias="featureEnabled")


class TrafficAllocation(SluiceBaseModel):
    """One cumulative range of a traffic allocation, in basis points."""

    entity_id: str = Field(alias="entityId")
    end_of_range: int = Field(alias="endOfRange", ge=0, le=10000)


class Experiment(SluiceBaseModel):
    """Experiment (or rollout targeting rule) definition."""

    id: str
    key: str
    status: str = "Not started"
    layer_id: Optional[str] = Field(default=None, alias="layerId")
    audience_ids: list[str] = Field(default_factory=list, alias="audienceIds")
    variations: list[Variation] = Field(default_factory=list)
    traffic_allocation: list[TrafficAllocation] = Field(
        default_factory=list, alias="trafficAllocation"
    )
    # user id -> variation key
    forced_variations: dict[str, str] = Field(
        default_factory=dict, alias="forcedVariations"
    )
    group_id: Optional[str] = Field(default=None, alias="groupId")
    group_policy: Optional[str] = Field(default=None, alias="groupPolicy")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> str:
        if value is None:
            return "Not started"
        return str(value)

    @property
    def is_running(self) -> bool:
        """Whether the experiment accepts users."""
        return self.status.lower() == RUNNING_STATUS.lower()

    @property
    def in_random_group(self) -> bool:
        """Whether the experiment shares a mutually exclusive bucketing space."""
        return self.group_id is not None and self.group_policy == GROUP_POLICY_RANDOM


class Group(SluiceBaseModel):
    """Mutually exclusive experiment group."""

    id: str
    policy: str = GROUP_POLICY_RANDOM
    experiments: list[Experiment] = Field(default_factory=list)
    traffic_allocation: list[TrafficAllocation] = Field(
        default_factory=list, alias="trafficAllocation"
    )


class Audience(SluiceBaseModel):
    """Named audience; conditions are the raw nested-list tree or its JSON."""

    id: str
    name: str = ""
    conditions: JSONValue = None


class FeatureFlag(SluiceBaseModel):
    """Feature flag with its experiments and optional rollout."""

    id: str = ""
    key: str
    experiment_ids: list[str] = Field(default_factory=list, alias="experimentIds")
    rollout_id: Optional[str] = Field(default=None, alias="rolloutId")
    variables: list[dict[str, JSONValue]] = Field(default_factory=list)

    @field_validator("rollout_id", mode="before")
    @classmethod
    def _empty_rollout(cls, value: object) -> Optional[str]:
        if value in (None, ""):
            return None
        return str(cast("str", value))


class Rollout(SluiceBaseModel):
    """Ordered targeting rules; the last rule is "Everyone Else"."""

    id: str
    experiments: list[Experiment] = Field(default_factory=list)


class Datafile(SluiceBaseModel):
    """Top-level datafile document."""

    version: str = "4"
    project_id: Optional[str] = Field(default=None, alias="projectId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    revision: Optional[str] = None
    experiments: list[Experiment] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    audiences: list[Audience] = Field(default_factory=list)
    feature_flags: list[FeatureFlag] = Field(
        default_factory=list, alias="featureFlags"
    )
    rollouts: list[Rollout] = Field(default_factory=list)
    attributes: list[dict[str, JSONValue]] = Field(default_factory=list)
    events: list[dict[str, JSONValue]] = Field(default_factory=list)

# Copyright (c) Syntropy Systems
"""Deterministic hash-based bucketing into traffic allocations.

The hash is MurmurHash3 (x86, 32-bit) with seed 1 over
``bucketing_id + entity_id``. The unsigned hash is scaled to a bucket value
in ``[0, 10000)``; the first allocation whose ``end_of_range`` exceeds that
value wins. These constants are shared with every other SDK that reads the
same datafile, so changing them re-buckets every user.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional

import mmh3

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sluice.models.datafile import Experiment, TrafficAllocation, Variation
    from sluice.project_config import ProjectConfig

HASH_SEED = 1
MAX_TRAFFIC_VALUE = 10000
UNSIGNED_MAX_32_BIT_VALUE = 0xFFFFFFFF
MAX_HASH_VALUE = 2**32


def generate_unsigned_hash_code_32_bit(bucketing_key: str) -> int:
    """Unsigned 32-bit MurmurHash3 of a bucketing key."""
    return mmh3.hash(bucketing_key, HASH_SEED) & UNSIGNED_MAX_32_BIT_VALUE


def generate_bucket_value(bucketing_key: str) -> int:
    """Map a bucketing key to an integer in [0, MAX_TRAFFIC_VALUE)."""
    ratio = generate_unsigned_hash_code_32_bit(bucketing_key) / MAX_HASH_VALUE
    return math.floor(ratio * MAX_TRAFFIC_VALUE)


def find_entity(
    bucket_value: int,
    traffic_allocation: Sequence[TrafficAllocation],
) -> Optional[str]:
    """Return the entity id whose range contains bucket_value, if any."""
    for allocation in traffic_allocation:
        if bucket_value < allocation.end_of_range:
            return allocation.entity_id or None
    return None


class Bucketer:
    """Assigns users to experiments of a group and variations of an experiment."""

    def __init__(
        self,
        config: ProjectConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def find_bucket(
        self,
        bucketing_id: str,
        user_id: str,
        parent_id: str,
        traffic_allocation: Sequence[TrafficAllocation],
    ) -> Optional[str]:
        """Hash bucketing_id against parent_id and walk the allocation."""
        bucket_value = generate_bucket_value(f"{bucketing_id}{parent_id}")
        self.logger.debug(
            "Assigned bucket %s to user '%s' with bucketing ID: '%s'.",
            bucket_value,
            user_id,
            bucketing_id,
        )
        return find_entity(bucket_value, traffic_allocation)

    def bucket(
        self,
        experiment: Experiment,
        user_id: str,
        bucketing_id: str,
    ) -> Optional[Variation]:
        """Bucket a user into a variation of an experiment.

        Experiments in a random-policy group are first bucketed against the
        group, so a user lands in at most one experiment of the group.
        """
        if experiment.in_random_group:
            if not self._bucket_into_group(experiment, user_id, bucketing_id):
                return None

        variation_id = self.find_bucket(
            bucketing_id, user_id, experiment.id, experiment.traffic_allocation
        )
        if variation_id is not None:
            variation = self.config.get_variation_from_id(experiment, variation_id)
            if variation is not None:
                self.logger.info(
                    "User '%s' is in variation '%s' of experiment '%s'.",
                    user_id,
                    variation.key,
                    experiment.key,
                )
                return variation

        self.logger.info("User '%s' is in no variation.", user_id)
        return None

    def _bucket_into_group(
        self,
        experiment: Experiment,
        user_id: str,
        bucketing_id: str,
    ) -> bool:
        group_id = experiment.group_id or ""
        group = self.config.get_group(group_id)
        if group is None:
            self.logger.error("Group '%s' is not in the datafile.", group_id)
            return False

        experiment_id = self.find_bucket(
            bucketing_id, user_id, group.id, group.traffic_allocation
        )
        if experiment_id is None:
            self.logger.info(
                "User '%s' is not in any experiment of group %s.", user_id, group.id
            )
            return False
        if experiment_id != experiment.id:
            self.logger.info(
                "User '%s' is not in experiment '%s' of group %s.",
                user_id,
                experiment.key,
                group.id,
            )
            return False

        self.logger.info(
            "User '%s' is in experiment %s of group %s.",
            user_id,
            experiment.key,
            group.id,
        )
        return True

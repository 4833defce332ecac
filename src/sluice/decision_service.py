# Copyright (c) Syntropy Systems
"""Variation decisions for experiments and feature flags.

``get_variation`` runs a fixed pipeline and stops at the first stage that
produces an answer:

1. experiment exists
2. experiment is running
3. runtime forced variation
4. datafile whitelist
5. user profile (sticky bucketing)
6. audience conditions
7. bucketing, saved back to the user profile

Feature decisions try the feature's experiments first, then its rollout.
No decision raises; invalid input and store failures are logged and end in
``None``.

Each decision reads the configuration snapshot once, through the bucketer
that owns it, so a concurrent ``set_config`` never mixes two snapshots
within one decision.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from sluice.audience import user_meets_audience_conditions
from sluice.bucketer import Bucketer
from sluice.forced_variations import ForcedVariationStore
from sluice.models.decision import Decision, DecisionSource, UserProfile

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sluice.models.datafile import Experiment, FeatureFlag, Variation
    from sluice.project_config import ProjectConfig
    from sluice.user_profile import UserProfileService

RESERVED_BUCKETING_ID_ATTRIBUTE = "$opt_bucketing_id"


class DecisionService:
    """Decides which variation a user gets for experiments and features."""

    def __init__(
        self,
        config: ProjectConfig,
        user_profile_service: UserProfileService | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.user_profile_service = user_profile_service
        self.logger = logger or logging.getLogger(__name__)
        self.bucketer = Bucketer(config, self.logger)
        self.forced_variations = ForcedVariationStore()

    @property
    def config(self) -> ProjectConfig:
        """The current configuration snapshot."""
        return self.bucketer.config

    def set_config(self, config: ProjectConfig) -> None:
        """Swap in a new configuration snapshot. Forced variations are kept."""
        self.bucketer = Bucketer(config, self.logger)

    def get_bucketing_id(
        self, user_id: str, attributes: Optional[Mapping[str, object]]
    ) -> str:
        """Return the reserved bucketing id attribute, falling back to user_id."""
        bucketing_id = (attributes or {}).get(RESERVED_BUCKETING_ID_ATTRIBUTE)
        if bucketing_id is None:
            return user_id
        if not isinstance(bucketing_id, str):
            self.logger.warning(
                "Bucketing ID attribute is not a string. Defaulted to user ID '%s'.",
                user_id,
            )
            return user_id
        return bucketing_id

    # Forced variations

    def set_forced_variation(
        self,
        experiment_key: str,
        user_id: str,
        variation_key: Optional[str],
    ) -> bool:
        """Force a user into a variation; None removes the override.

        Returns False when the experiment or variation key is unknown.
        """
        config = self.config
        experiment = config.get_experiment_from_key(experiment_key)
        if experiment is None:
            self.logger.error("Experiment key '%s' is not in datafile.", experiment_key)
            return False

        if variation_key is None:
            self.forced_variations.set(experiment.id, user_id, None)
            self.logger.debug(
                "Variation mapped to experiment '%s' has been removed for user '%s'.",
                experiment_key,
                user_id,
            )
            return True

        variation = config.get_variation_from_key(experiment, variation_key)
        if variation is None:
            self.logger.error(
                "Variation key '%s' is not in datafile for experiment '%s'.",
                variation_key,
                experiment_key,
            )
            return False

        self.forced_variations.set(experiment.id, user_id, variation.id)
        self.logger.debug(
            "Set variation '%s' for experiment '%s' and user '%s' in the forced variation map.",
            variation.key,
            experiment_key,
            user_id,
        )
        return True

    def get_forced_variation(self, experiment_key: str, user_id: str) -> Optional[Variation]:
        """Return the runtime forced variation for a user, if any."""
        config = self.config
        experiment = config.get_experiment_from_key(experiment_key)
        if experiment is None:
            self.logger.error("Experiment key '%s' is not in datafile.", experiment_key)
            return None
        return self._forced_variation_for(config, experiment, user_id)

    def _forced_variation_for(
        self, config: ProjectConfig, experiment: Experiment, user_id: str
    ) -> Optional[Variation]:
        variation_id = self.forced_variations.get(experiment.id, user_id)
        if variation_id is None:
            return None

        variation = config.get_variation_from_id(experiment, variation_id)
        if variation is None:
            self.logger.debug(
                "Forced variation ID '%s' of experiment '%s' is not in the datafile.",
                variation_id,
                experiment.key,
            )
            return None

        self.logger.debug(
            "Variation '%s' is mapped to experiment '%s' and user '%s' in the forced variation map.",
            variation.key,
            experiment.key,
            user_id,
        )
        return variation

    # Experiment decisions

    def get_whitelisted_variation_id(
        self,
        experiment: Experiment,
        user_id: str,
        config: Optional[ProjectConfig] = None,
    ) -> Optional[str]:
        """Return the datafile-whitelisted variation id for a user, if valid."""
        variation_key = experiment.forced_variations.get(user_id)
        if variation_key is None:
            return None

        variation = (config or self.config).get_variation_from_key(experiment, variation_key)
        if variation is None:
            self.logger.warning(
                "User '%s' is whitelisted into variation '%s', which is not in the datafile.",
                user_id,
                variation_key,
            )
            return None

        self.logger.info(
            "User '%s' is whitelisted into variation '%s' of experiment '%s'.",
            user_id,
            variation_key,
            experiment.key,
        )
        return variation.id

    def get_saved_variation_id(
        self,
        experiment: Experiment,
        user_profile: UserProfile,
        config: Optional[ProjectConfig] = None,
    ) -> Optional[str]:
        """Return the previously saved variation id, if it is still valid."""
        variation_id = user_profile.get_variation_id(experiment.id)
        if variation_id is None:
            return None

        if (config or self.config).get_variation_from_id(experiment, variation_id) is None:
            self.logger.info(
                "User '%s' was previously bucketed into variation ID '%s' for "
                "experiment '%s', but no matching variation was found. "
                "Re-bucketing user.",
                user_profile.user_id,
                variation_id,
                experiment.key,
            )
            return None

        self.logger.info(
            "Returning previously activated variation ID %s of experiment '%s' "
            "for user '%s' from user profile.",
            variation_id,
            experiment.key,
            user_profile.user_id,
        )
        return variation_id

    def get_variation(
        self,
        experiment_key: str,
        user_id: str,
        attributes: Optional[Mapping[str, object]] = None,
    ) -> Optional[str]:
        """Return the variation id a user gets for an experiment, or None."""
        return self._get_variation(self.bucketer, experiment_key, user_id, attributes)

    def _get_variation(
        self,
        bucketer: Bucketer,
        experiment_key: str,
        user_id: str,
        attributes: Optional[Mapping[str, object]],
    ) -> Optional[str]:
        config = bucketer.config
        experiment = config.get_experiment_from_key(experiment_key)
        if experiment is None:
            self.logger.error("Experiment key '%s' is not in datafile.", experiment_key)
            return None

        if not experiment.is_running:
            self.logger.info("Experiment '%s' is not running.", experiment_key)
            return None

        forced_variation = self._forced_variation_for(config, experiment, user_id)
        if forced_variation is not None:
            return forced_variation.id

        variation_id = self.get_whitelisted_variation_id(experiment, user_id, config)
        if variation_id is not None:
            return variation_id

        user_profile: Optional[UserProfile] = None
        if self.user_profile_service is not None:
            user_profile = self._lookup_user_profile(self.user_profile_service, user_id)
            if user_profile is not None:
                variation_id = self.get_saved_variation_id(experiment, user_profile, config)
                if variation_id is not None:
                    return variation_id

        if not user_meets_audience_conditions(config, experiment, attributes):
            self.logger.info(
                "User '%s' does not meet the conditions to be in experiment '%s'.",
                user_id,
                experiment_key,
            )
            return None

        bucketing_id = self.get_bucketing_id(user_id, attributes)
        variation = bucketer.bucket(experiment, user_id, bucketing_id)
        if variation is None:
            return None

        if self.user_profile_service is not None:
            if user_profile is None:
                user_profile = UserProfile(user_id=user_id)
            self._save_user_profile(
                self.user_profile_service, user_profile, experiment, variation
            )

        return variation.id

    def _lookup_user_profile(
        self, service: UserProfileService, user_id: str
    ) -> Optional[UserProfile]:
        """Fetch and parse a user's record. Failures count as a miss."""
        try:
            record = service.lookup(user_id)
        except Exception as e:  # noqa: BLE001
            self.logger.error(
                "Error while looking up user profile for user ID '%s': %s.", user_id, e
            )
            return None

        user_profile = UserProfile.from_record(user_id, record)
        if record is not None and user_profile is None:
            self.logger.warning(
                "User profile for user ID '%s' is malformed. Ignoring it.", user_id
            )
        return user_profile

    def _save_user_profile(
        self,
        service: UserProfileService,
        user_profile: UserProfile,
        experiment: Experiment,
        variation: Variation,
    ) -> None:
        user_profile.save_variation(experiment.id, variation.id)
        try:
            service.save(user_profile.to_record())
        except Exception as e:  # noqa: BLE001
            self.logger.error(
                "Error while saving user profile for user ID '%s': %s.",
                user_profile.user_id,
                e,
            )
            return

        self.logger.info(
            "Saved variation ID %s of experiment ID %s for user '%s'.",
            variation.id,
            experiment.id,
            user_profile.user_id,
        )

    # Feature decisions

    def get_variation_for_feature_experiment(
        self,
        feature_flag: FeatureFlag,
        user_id: str,
        attributes: Optional[Mapping[str, object]] = None,
    ) -> Optional[Decision]:
        """Try each experiment attached to a feature, in order.

        Group exclusivity is enforced by bucketing, so experiments of a
        mutually exclusive group are simply tried in turn.
        """
        return self._feature_experiment_decision(
            self.bucketer, feature_flag, user_id, attributes
        )

    def _feature_experiment_decision(
        self,
        bucketer: Bucketer,
        feature_flag: FeatureFlag,
        user_id: str,
        attributes: Optional[Mapping[str, object]],
    ) -> Optional[Decision]:
        if not feature_flag.experiment_ids:
            self.logger.debug(
                "The feature flag '%s' is not used in any experiments.", feature_flag.key
            )
            return None

        config = bucketer.config
        for experiment_id in feature_flag.experiment_ids:
            experiment = config.get_experiment_from_id(experiment_id)
            if experiment is None:
                self.logger.debug(
                    "Feature flag experiment with ID '%s' is not in the datafile.",
                    experiment_id,
                )
                continue

            variation_id = self._get_variation(bucketer, experiment.key, user_id, attributes)
            if variation_id is None:
                continue

            variation = config.get_variation_from_id(experiment, variation_id)
            self.logger.info(
                "The user '%s' is bucketed into experiment '%s' of feature '%s'.",
                user_id,
                experiment.key,
                feature_flag.key,
            )
            return Decision(experiment, variation, DecisionSource.EXPERIMENT)

        self.logger.info(
            "The user '%s' is not bucketed into any of the experiments on the feature '%s'.",
            user_id,
            feature_flag.key,
        )
        return None

    def get_variation_for_feature_rollout(
        self,
        feature_flag: FeatureFlag,
        user_id: str,
        attributes: Optional[Mapping[str, object]] = None,
    ) -> Optional[Decision]:
        """Walk a feature's rollout rules.

        A user who matches a rule's audience but falls outside its traffic
        skips the remaining rules and goes straight to "Everyone Else".
        """
        return self._rollout_decision(self.bucketer, feature_flag, user_id, attributes)

    def _rollout_decision(
        self,
        bucketer: Bucketer,
        feature_flag: FeatureFlag,
        user_id: str,
        attributes: Optional[Mapping[str, object]],
    ) -> Optional[Decision]:
        rollout_id = feature_flag.rollout_id
        if not rollout_id:
            self.logger.debug("Feature flag '%s' is not used in a rollout.", feature_flag.key)
            return None

        config = bucketer.config
        rollout = config.get_rollout(rollout_id)
        if rollout is None:
            self.logger.error("Rollout with ID '%s' is not in the datafile.", rollout_id)
            return None

        rules = rollout.experiments
        if not rules:
            return None

        bucketing_id = self.get_bucketing_id(user_id, attributes)

        for index, rule in enumerate(rules[:-1], start=1):
            if not user_meets_audience_conditions(config, rule, attributes):
                self.logger.debug(
                    "User '%s' does not meet the conditions to be in rollout rule for audience '%s'.",
                    user_id,
                    self._audience_label(config, rule),
                )
                continue

            self.logger.debug("User '%s' meets conditions for targeting rule %s.", user_id, index)
            variation = bucketer.bucket(rule, user_id, bucketing_id)
            if variation is not None:
                return Decision(rule, variation, DecisionSource.ROLLOUT)

            self.logger.debug(
                "User '%s' is not in the traffic group for targeting rule %s. "
                "Checking 'Everyone Else' rule now.",
                user_id,
                index,
            )
            break

        everyone_else = rules[-1]
        if not user_meets_audience_conditions(config, everyone_else, attributes):
            self.logger.debug(
                "User '%s' does not meet the conditions to be in rollout rule for audience '%s'.",
                user_id,
                self._audience_label(config, everyone_else),
            )
            return None

        variation = bucketer.bucket(everyone_else, user_id, bucketing_id)
        if variation is None:
            return None

        self.logger.debug(
            "User '%s' meets conditions for targeting rule 'Everyone Else'.", user_id
        )
        return Decision(everyone_else, variation, DecisionSource.ROLLOUT)

    def get_variation_for_feature(
        self,
        feature_flag: FeatureFlag,
        user_id: str,
        attributes: Optional[Mapping[str, object]] = None,
    ) -> Optional[Decision]:
        """Feature experiment decision if any, else the rollout decision."""
        bucketer = self.bucketer
        decision = self._feature_experiment_decision(bucketer, feature_flag, user_id, attributes)
        if decision is not None:
            return decision

        decision = self._rollout_decision(bucketer, feature_flag, user_id, attributes)
        if decision is not None:
            self.logger.info(
                "User '%s' is bucketed into a rollout for feature flag '%s'.",
                user_id,
                feature_flag.key,
            )
            return decision

        self.logger.info(
            "User '%s' is not bucketed into a rollout for feature flag '%s'.",
            user_id,
            feature_flag.key,
        )
        return None

    @staticmethod
    def _audience_label(config: ProjectConfig, rule: Experiment) -> str:
        if not rule.audience_ids:
            return ""
        audience = config.get_audience(rule.audience_ids[0])
        if audience is None or not audience.name:
            return rule.audience_ids[0]
        return audience.name

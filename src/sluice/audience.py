# Copyright (c) Syntropy Systems
"""Audience targeting for experiments and rollout rules."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from sluice.conditions import Tristate, evaluate

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sluice.models.datafile import Experiment
    from sluice.project_config import ProjectConfig

logger = logging.getLogger(__name__)


def user_meets_audience_conditions(
    config: ProjectConfig,
    experiment: Experiment,
    attributes: Optional[Mapping[str, object]],
) -> bool:
    """Check whether a user qualifies for an experiment.

    An experiment without audiences admits everyone. Otherwise the user
    must evaluate to TRUE for at least one of its audiences; UNKNOWN does
    not qualify.
    """
    if not experiment.audience_ids:
        return True

    for audience_id in experiment.audience_ids:
        if config.get_audience(audience_id) is None:
            logger.warning(
                "Audience '%s' of experiment '%s' is not in the datafile.",
                audience_id,
                experiment.key,
            )
            continue
        result = evaluate(config.get_audience_conditions(audience_id), attributes)
        logger.debug(
            "Audience '%s' evaluated to %s for experiment '%s'.",
            audience_id,
            result.value.upper(),
            experiment.key,
        )
        if result is Tristate.TRUE:
            return True
    return False

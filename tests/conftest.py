# Copyright (c) Syntropy Systems
"""Pytest fixtures for sluice tests."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from sluice.decision_service import DecisionService
from sluice.project_config import ProjectConfig

FIREFOX_CONDITIONS = json.dumps(
    [
        "and",
        ["or", ["or", {"name": "browser_type", "type": "custom_attribute", "value": "firefox"}]],
    ]
)
CHROME_CONDITIONS = json.dumps(
    [
        "and",
        ["or", ["or", {"name": "browser_type", "type": "custom_attribute", "value": "chrome"}]],
    ]
)
ADULT_CONDITIONS = json.dumps(
    ["and", {"name": "age", "type": "custom_attribute", "match": "ge", "value": 18}]
)


def _experiment(
    exp_id: str,
    key: str,
    variations: list[tuple[str, str, int]],
    *,
    status: str = "Running",
    audience_ids: list[str] | None = None,
    forced: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build an experiment; variations are (id, key, end_of_range)."""
    return {
        "id": exp_id,
        "key": key,
        "status": status,
        "layerId": f"layer_{exp_id}",
        "audienceIds": audience_ids or [],
        "variations": [{"id": vid, "key": vkey} for vid, vkey, _ in variations],
        "trafficAllocation": [
            {"entityId": vid, "endOfRange": end} for vid, _, end in variations
        ],
        "forcedVariations": forced or {},
    }


DATAFILE: dict[str, Any] = {
    "version": "4",
    "projectId": "111001",
    "accountId": "12001",
    "revision": "42",
    "experiments": [
        _experiment(
            "111127",
            "test_experiment",
            [("111128", "control", 5000), ("111129", "variation", 10000)],
            forced={
                "forced_user1": "control",
                "forced_user2": "variation",
                "forced_user_with_invalid_variation": "invalid_variation",
            },
        ),
        _experiment(
            "122227",
            "test_experiment_with_audience",
            [
                ("122228", "control_with_audience", 5000),
                ("122229", "variation_with_audience", 10000),
            ],
            audience_ids=["11154"],
            forced={"forced_audience_user": "variation_with_audience"},
        ),
        _experiment(
            "100027",
            "test_experiment_not_started",
            [("100028", "control_not_started", 5000), ("100029", "variation_not_started", 10000)],
            status="Not started",
        ),
        _experiment(
            "122230",
            "test_experiment_multivariate",
            [("122231", "Fred", 2500), ("122232", "Feorge", 5000), ("122233", "Gred", 10000)],
        ),
        _experiment(
            "133337",
            "test_experiment_full",
            [("133338", "full_control", 10000)],
        ),
        _experiment(
            "144447",
            "test_experiment_unallocated",
            [("144448", "never_served", 0)],
        ),
    ],
    "groups": [
        {
            "id": "19228",
            "policy": "random",
            "trafficAllocation": [
                {"entityId": "133331", "endOfRange": 4000},
                {"entityId": "133332", "endOfRange": 8000},
            ],
            "experiments": [
                _experiment(
                    "133331",
                    "group1_exp1",
                    [("130001", "g1_e1_v1", 5000), ("130002", "g1_e1_v2", 10000)],
                ),
                _experiment(
                    "133332",
                    "group1_exp2",
                    [("130003", "g1_e2_v1", 5000), ("130004", "g1_e2_v2", 10000)],
                    forced={"forced_group_user1": "g1_e2_v2"},
                ),
            ],
        }
    ],
    "audiences": [
        {"id": "11154", "name": "Firefox users", "conditions": FIREFOX_CONDITIONS},
        {"id": "11155", "name": "Chrome users", "conditions": CHROME_CONDITIONS},
        {"id": "11156", "name": "Adults", "conditions": ADULT_CONDITIONS},
    ],
    "featureFlags": [
        {"id": "155549", "key": "boolean_feature", "experimentIds": ["133331", "133332"], "rolloutId": ""},
        {"id": "155550", "key": "multi_variate_feature", "experimentIds": ["122230"], "rolloutId": ""},
        {"id": "155554", "key": "boolean_single_variable_feature", "experimentIds": [], "rolloutId": "166660"},
        {"id": "155557", "key": "string_single_variable_feature", "experimentIds": ["133337"], "rolloutId": "166661"},
        {"id": "155559", "key": "empty_feature", "experimentIds": [], "rolloutId": ""},
    ],
    "rollouts": [
        {
            "id": "166660",
            "experiments": [
                _experiment("177770", "177770", [("177771", "177771", 1500)], audience_ids=["11154"]),
                _experiment("177772", "177772", [("177773", "177773", 10000)], audience_ids=["11156"]),
                _experiment("177774", "177774", [("177775", "177775", 10000)]),
            ],
        },
        {
            "id": "166661",
            "experiments": [
                _experiment("177776", "177776", [("177777", "177777", 10000)]),
            ],
        },
    ],
}


@pytest.fixture
def datafile() -> dict[str, Any]:
    """A fresh copy of the test datafile, safe to modify."""
    return copy.deepcopy(DATAFILE)


@pytest.fixture
def config(datafile: dict[str, Any]) -> ProjectConfig:
    """Configuration built from the test datafile."""
    return ProjectConfig.from_datafile(datafile)


@pytest.fixture
def decision_service(config: ProjectConfig) -> DecisionService:
    """Decision service without a user profile store."""
    return DecisionService(config)


@pytest.fixture
def datafile_path(tmp_path: Path, datafile: dict[str, Any]) -> Path:
    """The test datafile written to disk as JSON."""
    path = tmp_path / "datafile.json"
    path.write_text(json.dumps(datafile))
    return path


@pytest.fixture
def debug_logs(caplog: pytest.LogCaptureFixture) -> Generator[pytest.LogCaptureFixture, None, None]:
    """Capture every sluice log record, DEBUG and up."""
    caplog.set_level(logging.DEBUG, logger="sluice")
    yield caplog


# Copyright (c) Syntropy Systems
"""Tests for user profile records and stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from sluice.models.decision import UserProfile
from sluice.user_profile import (
    InMemoryUserProfileService,
    JsonFileUserProfileService,
    NoOpUserProfileService,
)

RECORD = {
    "user_id": "test_user",
    "experiment_bucket_map": {"111127": {"variation_id": "111128"}},
}


class TestUserProfileModel:
    """Tests for the UserProfile record model."""

    def test_from_record(self) -> None:
        profile = UserProfile.from_record("test_user", RECORD)

        assert profile is not None
        assert profile.user_id == "test_user"
        assert profile.get_variation_id("111127") == "111128"
        assert profile.get_variation_id("999") is None

    def test_from_record_fills_user_id(self) -> None:
        profile = UserProfile.from_record("test_user", {"experiment_bucket_map": {}})

        assert profile is not None
        assert profile.user_id == "test_user"

    @pytest.mark.parametrize(
        "record",
        [
            None,
            "not a dict",
            ["list"],
            {"user_id": "test_user", "experiment_bucket_map": "nope"},
        ],
    )
    def test_from_record_malformed(self, record: object) -> None:
        assert UserProfile.from_record("test_user", record) is None

    def test_invalid_entries_are_dropped(self) -> None:
        """Bad entries go; valid assignments for other experiments stay."""
        profile = UserProfile.from_record(
            "test_user",
            {
                "user_id": "test_user",
                "experiment_bucket_map": {
                    "111127": {"variation_id": "111128"},
                    "122227": {},
                    "133337": "garbage",
                    "144447": {"variation_id": 7},
                },
            },
        )

        assert profile is not None
        assert profile.to_record() == RECORD

    def test_save_variation_keeps_other_experiments(self) -> None:
        profile = UserProfile.from_record("test_user", RECORD)
        assert profile is not None

        profile.save_variation("122227", "122228")
        profile.save_variation("111127", "111129")

        assert profile.to_record() == {
            "user_id": "test_user",
            "experiment_bucket_map": {
                "111127": {"variation_id": "111129"},
                "122227": {"variation_id": "122228"},
            },
        }

    def test_record_roundtrip_through_json(self) -> None:
        profile = UserProfile(user_id="test_user")
        profile.save_variation("111127", "111128")

        restored = UserProfile.from_record("test_user", json.loads(json.dumps(profile.to_record())))

        assert restored == profile


class TestNoOpStore:
    def test_remembers_nothing(self) -> None:
        store = NoOpUserProfileService()
        store.save(RECORD)
        assert store.lookup("test_user") is None


class TestInMemoryStore:
    """Tests for InMemoryUserProfileService."""

    def test_save_and_lookup(self) -> None:
        store = InMemoryUserProfileService()
        assert store.lookup("test_user") is None

        store.save(RECORD)

        assert store.lookup("test_user") == RECORD

    def test_returns_copies(self) -> None:
        """Callers cannot mutate stored records in place."""
        store = InMemoryUserProfileService()
        store.save(RECORD)

        record = store.lookup("test_user")
        assert record is not None
        record["experiment_bucket_map"]["111127"]["variation_id"] = "changed"

        assert store.lookup("test_user") == RECORD


class TestJsonFileStore:
    """Tests for JsonFileUserProfileService."""

    def test_missing_file(self, tmp_path: Path) -> None:
        store = JsonFileUserProfileService(tmp_path / "profiles.json")
        assert store.lookup("test_user") is None

    def test_save_and_lookup(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "profiles.json"
        store = JsonFileUserProfileService(path)

        store.save(RECORD)
        store.save({"user_id": "other_user", "experiment_bucket_map": {}})

        assert store.lookup("test_user") == RECORD
        assert set(json.loads(path.read_text())) == {"test_user", "other_user"}

    def test_survives_new_instance(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.json"
        JsonFileUserProfileService(path).save(RECORD)

        assert JsonFileUserProfileService(path).lookup("test_user") == RECORD

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        store = JsonFileUserProfileService(tmp_path / "profiles.json")
        store.save(RECORD)

        assert [p.name for p in tmp_path.iterdir()] == ["profiles.json"]

    def test_not_an_object(self, tmp_path: Path) -> None:
        path = tmp_path / "profiles.json"
        path.write_text("[1, 2, 3]")
        store = JsonFileUserProfileService(path)

        with pytest.raises(ValueError, match="not a JSON object"):
            store.lookup("test_user")

# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for sluice."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, JsonValue
from typing_extensions import TypeAlias

JSONValue: TypeAlias = JsonValue


class SluiceBaseModel(BaseModel):
    """Base model for datafile entities.

    Entities are immutable for the lifetime of a configuration snapshot.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        frozen=True,
        coerce_numbers_to_str=True,
    )


class MutableModel(BaseModel):
    """Base model for records that are rewritten during a decision."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )

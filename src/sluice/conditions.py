# Copyright (c) Syntropy Systems
"""Three-valued evaluation of audience condition trees.

Trees use the nested-list datafile form::

    ["and", ["or", {"name": "browser", "type": "custom_attribute",
                    "value": "firefox"}], ["not", {...}]]

A list without a leading operator is treated as ``or``. Leaves compare one
user attribute against an expected value with a match type.
"""
from __future__ import annotations

import json
import logging
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Union, cast

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sluice.models.base import JSONValue

logger = logging.getLogger(__name__)

CUSTOM_ATTRIBUTE_TYPE = "custom_attribute"
DEFAULT_MATCH = "exact"
# Larger magnitudes lose integer precision as doubles and are not compared
MAX_NUMBER_VALUE = 2**53


class Tristate(Enum):
    """Result of a condition: true, false, or unknown."""

    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, value: bool) -> Tristate:
        return cls.TRUE if value else cls.FALSE

    def negate(self) -> Tristate:
        if self is Tristate.UNKNOWN:
            return self
        return Tristate.FALSE if self is Tristate.TRUE else Tristate.TRUE


@dataclass(frozen=True)
class Leaf:
    """Predicate over a single attribute. Invalid leaves evaluate to UNKNOWN."""

    name: Optional[str]
    match: str = DEFAULT_MATCH
    value: JSONValue = None
    valid: bool = True


@dataclass(frozen=True)
class And:
    children: tuple[ConditionNode, ...]


@dataclass(frozen=True)
class Or:
    children: tuple[ConditionNode, ...]


@dataclass(frozen=True)
class Not:
    child: Optional[ConditionNode]


ConditionNode = Union[Leaf, And, Or, Not]

_INVALID_LEAF = Leaf(name=None, valid=False)


def parse_conditions(raw: JSONValue) -> Optional[ConditionNode]:
    """Parse a raw condition tree (list, dict, or JSON string).

    Returns None for an empty tree, which matches every user. Malformed
    input never raises; it becomes a leaf that evaluates to UNKNOWN.
    """
    if raw is None or raw in ("", []):
        return None
    if isinstance(raw, str):
        try:
            raw = cast("JSONValue", json.loads(raw))
        except ValueError:
            logger.warning("Audience conditions are not valid JSON: %r", raw)
            return _INVALID_LEAF
        if raw is None or raw == []:
            return None
    return _parse_node(raw)


def _parse_node(obj: JSONValue) -> ConditionNode:
    if isinstance(obj, list):
        if obj and obj[0] in ("and", "or", "not"):
            operator, operands = cast("str", obj[0]), obj[1:]
        else:
            operator, operands = "or", obj
        children = tuple(_parse_node(item) for item in operands)
        if operator == "and":
            return And(children)
        if operator == "not":
            return Not(children[0] if children else None)
        return Or(children)

    if isinstance(obj, dict):
        name = obj.get("name")
        match = obj.get("match") or DEFAULT_MATCH
        condition_type = obj.get("type", CUSTOM_ATTRIBUTE_TYPE)
        if not isinstance(name, str) or not isinstance(match, str):
            return _INVALID_LEAF
        return Leaf(
            name=name,
            match=match,
            value=obj.get("value"),
            valid=condition_type == CUSTOM_ATTRIBUTE_TYPE,
        )

    return _INVALID_LEAF


def evaluate(
    node: Optional[ConditionNode],
    attributes: Optional[Mapping[str, object]],
) -> Tristate:
    """Evaluate a condition tree against user attributes."""
    if node is None:
        return Tristate.TRUE
    attributes = attributes or {}

    if isinstance(node, Leaf):
        return _evaluate_leaf(node, attributes)

    if isinstance(node, Not):
        if node.child is None:
            return Tristate.UNKNOWN
        return evaluate(node.child, attributes).negate()

    if isinstance(node, And):
        saw_unknown = False
        for child in node.children:
            result = evaluate(child, attributes)
            if result is Tristate.FALSE:
                return Tristate.FALSE
            if result is Tristate.UNKNOWN:
                saw_unknown = True
        return Tristate.UNKNOWN if saw_unknown else Tristate.TRUE

    saw_unknown = False
    for child in node.children:
        result = evaluate(child, attributes)
        if result is Tristate.TRUE:
            return Tristate.TRUE
        if result is Tristate.UNKNOWN:
            saw_unknown = True
    return Tristate.UNKNOWN if saw_unknown else Tristate.FALSE


def _is_number(value: object) -> bool:
    # bool is an int subclass but never a numeric attribute
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    # Compared without float conversion; NaN and infinities fail the bound
    return abs(value) <= MAX_NUMBER_VALUE


def _exact(expected: object, actual: object) -> Tristate:
    if isinstance(expected, str):
        return Tristate.of(expected == actual) if isinstance(actual, str) else Tristate.UNKNOWN
    if isinstance(expected, bool):
        return Tristate.of(expected == actual) if isinstance(actual, bool) else Tristate.UNKNOWN
    if _is_number(expected) and _is_number(actual):
        return Tristate.of(expected == actual)
    return Tristate.UNKNOWN


def _substring(expected: object, actual: object) -> Tristate:
    if isinstance(expected, str) and isinstance(actual, str):
        return Tristate.of(expected in actual)
    return Tristate.UNKNOWN


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[object, object], Tristate]:
    def matcher(expected: object, actual: object) -> Tristate:
        if _is_number(expected) and _is_number(actual):
            return Tristate.of(compare(cast("float", actual), cast("float", expected)))
        return Tristate.UNKNOWN

    return matcher


_MATCHERS: dict[str, Callable[[object, object], Tristate]] = {
    "exact": _exact,
    "substring": _substring,
    "gt": _numeric(lambda actual, expected: actual > expected),
    "ge": _numeric(lambda actual, expected: actual >= expected),
    "lt": _numeric(lambda actual, expected: actual < expected),
    "le": _numeric(lambda actual, expected: actual <= expected),
}


def _evaluate_leaf(leaf: Leaf, attributes: Mapping[str, object]) -> Tristate:
    if not leaf.valid or leaf.name is None:
        return Tristate.UNKNOWN

    if leaf.match == "exists":
        return Tristate.of(attributes.get(leaf.name) is not None)

    matcher = _MATCHERS.get(leaf.match)
    if matcher is None:
        logger.debug("Unknown match type '%s' for attribute '%s'.", leaf.match, leaf.name)
        return Tristate.UNKNOWN

    if leaf.name not in attributes:
        return Tristate.UNKNOWN
    return matcher(leaf.value, attributes[leaf.name])

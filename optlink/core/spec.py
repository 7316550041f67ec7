"""Enumerations shared by the model, the IR and the backend adapters."""

from __future__ import annotations

from enum import Enum


class VariableType(str, Enum):
    BINARY = "binary"
    INTEGER = "integer"
    CONTINUOUS = "continuous"


class ObjectiveSense(str, Enum):
    MIN = "min"
    MAX = "max"


class ConstraintSense(str, Enum):
    LE = "<="
    GE = ">="
    EQ = "=="


_SENSE_ALIASES = {
    "min": ObjectiveSense.MIN,
    "minimize": ObjectiveSense.MIN,
    "max": ObjectiveSense.MAX,
    "maximize": ObjectiveSense.MAX,
}

_RELATION_ALIASES = {
    "<=": ConstraintSense.LE,
    "le": ConstraintSense.LE,
    ">=": ConstraintSense.GE,
    "ge": ConstraintSense.GE,
    "==": ConstraintSense.EQ,
    "=": ConstraintSense.EQ,
    "eq": ConstraintSense.EQ,
}


def parse_objective_sense(value: ObjectiveSense | str) -> ObjectiveSense:
    if isinstance(value, ObjectiveSense):
        return value
    try:
        return _SENSE_ALIASES[str(value).strip().lower()]
    except KeyError:
        raise ValueError(f"unknown objective sense: {value!r}") from None


def parse_relation(value: ConstraintSense | str) -> ConstraintSense:
    if isinstance(value, ConstraintSense):
        return value
    try:
        return _RELATION_ALIASES[str(value).strip().lower()]
    except KeyError:
        raise ValueError(f"unknown constraint relation: {value!r}") from None


def parse_vartype(value: VariableType | str) -> VariableType:
    if isinstance(value, VariableType):
        return value
    try:
        return VariableType(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"unknown variable type: {value!r}") from None

"""Option schemas declared by backend adapters and their validation at solve entry."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from optlink.errors import InvalidOptionValueError, UnsupportedOptionError

logger = logging.getLogger(__name__)

OptionValue = bool | int | float | str


class OptionPolicy(str, Enum):
    """What a backend does with option keys its schema does not declare."""

    RAISE = "raise"
    IGNORE = "ignore"
    PASSTHROUGH = "passthrough"


class SolverOptions(BaseModel):
    """Keys every backend understands. Subclasses add backend-specific keys."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    time_limit_seconds: float | None = Field(default=None, ge=0)
    verbosity: int = Field(default=0, ge=0)


def merge_options(*layers: Mapping[str, object] | None) -> dict[str, object]:
    """Merge option layers; later layers win."""
    merged: dict[str, object] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def validate_options(
    backend: str,
    options_model: type[SolverOptions],
    policy: OptionPolicy,
    options: Mapping[str, object] | None,
) -> tuple[SolverOptions, dict[str, OptionValue]]:
    """Check `options` against a backend schema.

    Returns the parsed declared options and, for pass-through backends, the
    undeclared keys to forward verbatim to the solver.
    """
    options = dict(options or {})
    for key, value in options.items():
        if not isinstance(key, str):
            raise InvalidOptionValueError(f"option keys must be strings, got {key!r}")
        if not isinstance(value, (bool, int, float, str)) and value is not None:
            raise InvalidOptionValueError(f"option '{key}' must be a scalar, got {type(value).__name__}")

    declared = set(options_model.model_fields)
    unknown = {key: value for key, value in options.items() if key not in declared}
    extras: dict[str, OptionValue] = {}

    if unknown:
        if policy == OptionPolicy.RAISE:
            raise UnsupportedOptionError(backend, list(unknown))
        if policy == OptionPolicy.IGNORE:
            logger.warning("backend '%s' ignores unsupported option(s): %s", backend, ", ".join(sorted(unknown)))
        else:
            for key, value in unknown.items():
                if value is None:
                    raise InvalidOptionValueError(f"pass-through option '{key}' needs a value")
                extras[key] = value
            logger.debug("backend '%s' passes through option(s): %s", backend, ", ".join(sorted(extras)))

    try:
        parsed = options_model.model_validate({k: v for k, v in options.items() if k in declared})
    except ValidationError as exc:
        raise InvalidOptionValueError(f"invalid option value for backend '{backend}': {exc}") from exc
    return parsed, extras

"""Exception taxonomy for model building, backend attachment and result queries."""

from __future__ import annotations


class OptlinkError(Exception):
    """Base class for every error raised by optlink."""


class ForeignReferenceError(OptlinkError, ValueError):
    """An expression references a variable or constraint owned by another model."""


class UnsupportedModelElementError(OptlinkError, ValueError):
    """A backend cannot represent an element of the model."""

    def __init__(self, backend: str, missing: list[str]) -> None:
        self.backend = backend
        self.missing = list(missing)
        super().__init__(f"backend '{backend}' cannot represent the model: " + "; ".join(self.missing))


class UnsupportedOptionError(OptlinkError, KeyError):
    """An option key is not recognized by the backend."""

    def __init__(self, backend: str, keys: list[str]) -> None:
        self.backend = backend
        self.keys = sorted(keys)
        super().__init__(f"backend '{backend}' does not support option(s): {', '.join(self.keys)}")

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidOptionValueError(OptlinkError, ValueError):
    """A recognized option was given a value of the wrong type or range."""


class NotAttachedError(OptlinkError, RuntimeError):
    """A solve was requested without an attached backend."""


class NoSolutionAvailableError(OptlinkError, RuntimeError):
    """A value query was made while no primal (or dual) point is available."""


class SolveInProgressError(OptlinkError, RuntimeError):
    """The model is being solved; concurrent solves and mutations are rejected."""


class BackendUnavailableError(OptlinkError, LookupError):
    """The requested backend is unknown, not installed, or lacks a required feature."""


class DirectModeError(OptlinkError, RuntimeError):
    """The operation needs a model/backend split that direct models do not have."""


class SolverFailureError(OptlinkError, RuntimeError):
    """The backend raised while solving; the session moved to the ERROR state."""

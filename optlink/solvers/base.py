"""Backend adapter base classes and capability schemas."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from optlink.core.ir import IRModel
from optlink.core.solution import SolveResult
from optlink.core.spec import ConstraintSense, ObjectiveSense, VariableType
from optlink.errors import BackendUnavailableError
from optlink.solvers.options import OptionPolicy, OptionValue, SolverOptions, validate_options

logger = logging.getLogger(__name__)


class ObjectiveType(str, Enum):
    LINEAR = "linear"
    QUADRATIC = "quadratic"


class ConstraintType(str, Enum):
    LINEAR = "linear"
    QUADRATIC = "quadratic"


class CapabilitySet(BaseModel):
    variable_types: set[VariableType] = Field(default_factory=set)
    objective_types: set[ObjectiveType] = Field(default_factory=set)
    constraint_types: set[ConstraintType] = Field(default_factory=set)
    supports_miqp: bool = False
    supports_direct: bool = False
    reports_duals: bool = False


class ProblemRequirements(BaseModel):
    variable_types: set[VariableType] = Field(default_factory=set)
    objective_type: ObjectiveType
    constraint_types: set[ConstraintType] = Field(default_factory=set)
    has_integer_variables: bool = False


class AttachedSession(ABC):
    """Solver-native state built from one IR snapshot.

    A session exclusively owns its native handle. `close()` releases it and
    is safe to call more than once.
    """

    def __init__(self, adapter: "BackendAdapter", ir_model: IRModel) -> None:
        self.adapter = adapter
        self.ir_model = ir_model
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    @abstractmethod
    def native(self) -> Any:
        raise NotImplementedError

    @abstractmethod
    def solve(self, options: SolverOptions, extra: Mapping[str, OptionValue]) -> SolveResult:
        raise NotImplementedError

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.debug("released native state of backend '%s'", self.adapter.name)

    def _release(self) -> None:
        """Free solver-native resources. Adapters override when there is something to free."""

    def __enter__(self) -> "AttachedSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class DirectStore(ABC):
    """Solver-native model storage written to directly, without an IR snapshot."""

    def __init__(self, adapter: "BackendAdapter") -> None:
        self.adapter = adapter
        self._closed = False

    @property
    @abstractmethod
    def native(self) -> Any:
        raise NotImplementedError

    @abstractmethod
    def add_variable(self, lb: float, ub: float, vartype: VariableType) -> int:
        raise NotImplementedError

    @abstractmethod
    def set_variable_bounds(self, index: int, lb: float, ub: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_variable_type(self, index: int, vartype: VariableType) -> None:
        raise NotImplementedError

    @abstractmethod
    def variable_bounds(self, index: int) -> tuple[float, float]:
        raise NotImplementedError

    @abstractmethod
    def add_constraint(self, terms: Mapping[int, float], sense: ConstraintSense, rhs: float) -> int:
        raise NotImplementedError

    @abstractmethod
    def set_rhs(self, row: int, sense: ConstraintSense, rhs: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_objective(self, linear: Mapping[int, float], constant: float, sense: ObjectiveSense) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_objective_coefficient(self, index: int, coefficient: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def solve(
        self,
        options: SolverOptions,
        extra: Mapping[str, OptionValue],
        variable_names: list[str],
        constraint_names: list[str],
    ) -> SolveResult:
        raise NotImplementedError

    def close(self) -> None:
        self._closed = True


class BackendAdapter(ABC):
    """Translates IR models into a solver's native calls and its results back.

    Subclasses declare `options_model` (the recognized option keys and their
    types) and `option_policy` (what happens to keys outside that schema).
    """

    name: str
    version: str
    options_model: type[SolverOptions] = SolverOptions
    option_policy: OptionPolicy = OptionPolicy.RAISE

    @abstractmethod
    def capabilities(self) -> CapabilitySet:
        raise NotImplementedError

    def attach(self, ir_model: IRModel) -> AttachedSession:
        """Build native state for `ir_model`, failing fast on unsupported elements."""
        from optlink.solvers.matching import ensure_supported

        ensure_supported(ir_model, self)
        session = self._attach(ir_model)
        logger.info(
            "attached backend '%s' (%d variables, %d linear rows, %d quadratic rows)",
            self.name,
            len(ir_model.variables),
            ir_model.constraints.num_rows if ir_model.constraints is not None else 0,
            len(ir_model.quadratic_constraints),
        )
        return session

    @abstractmethod
    def _attach(self, ir_model: IRModel) -> AttachedSession:
        raise NotImplementedError

    def open_direct(self) -> DirectStore:
        raise BackendUnavailableError(f"backend '{self.name}' does not support direct mode")

    def validate_options(
        self, options: Mapping[str, object] | None
    ) -> tuple[SolverOptions, dict[str, OptionValue]]:
        return validate_options(self.name, self.options_model, self.option_policy, options)

    def option_keys(self) -> list[str]:
        return sorted(self.options_model.model_fields)

"""Termination/result statuses and the immutable per-solve result snapshot."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from optlink.errors import NoSolutionAvailableError


class TerminationStatus(str, Enum):
    """Why the solver stopped."""

    OPTIMIZE_NOT_CALLED = "OptimizeNotCalled"
    OPTIMAL = "Optimal"
    INFEASIBLE = "Infeasible"
    UNBOUNDED = "Unbounded"
    INFEASIBLE_OR_UNBOUNDED = "InfeasibleOrUnbounded"
    ITERATION_LIMIT = "IterationLimit"
    TIME_LIMIT = "TimeLimit"
    NODE_LIMIT = "NodeLimit"
    SOLUTION_LIMIT = "SolutionLimit"
    OBJECTIVE_LIMIT = "ObjectiveLimit"
    OTHER_LIMIT = "OtherLimit"
    INTERRUPTED = "Interrupted"
    NUMERICAL_ERROR = "NumericalError"
    INVALID_MODEL = "InvalidModel"
    OTHER_ERROR = "Error"

    def is_limit(self) -> bool:
        return self in _LIMIT_STATUSES

    def is_error(self) -> bool:
        return self in {TerminationStatus.NUMERICAL_ERROR, TerminationStatus.INVALID_MODEL, TerminationStatus.OTHER_ERROR}


_LIMIT_STATUSES = {
    TerminationStatus.ITERATION_LIMIT,
    TerminationStatus.TIME_LIMIT,
    TerminationStatus.NODE_LIMIT,
    TerminationStatus.SOLUTION_LIMIT,
    TerminationStatus.OBJECTIVE_LIMIT,
    TerminationStatus.OTHER_LIMIT,
    TerminationStatus.INTERRUPTED,
}


class ResultStatus(str, Enum):
    """What kind of primal or dual point is available."""

    NO_SOLUTION = "NoSolution"
    FEASIBLE_POINT = "FeasiblePoint"
    NEARLY_FEASIBLE_POINT = "NearlyFeasiblePoint"
    INFEASIBLE_POINT = "InfeasiblePoint"
    INFEASIBILITY_CERTIFICATE = "InfeasibilityCertificate"
    UNKNOWN_RESULT_STATUS = "UnknownResultStatus"

    def has_point(self) -> bool:
        return self != ResultStatus.NO_SOLUTION


def _key(item: Any) -> str:
    return item if isinstance(item, str) else getattr(item, "name")


class SolveResult(BaseModel):
    """Snapshot of one solve invocation.

    Values are keyed by variable name and duals by constraint name. Both
    mappings are empty when the matching status is `NO_SOLUTION`.
    """

    model_config = ConfigDict(frozen=True)

    termination_status: TerminationStatus
    primal_status: ResultStatus = ResultStatus.NO_SOLUTION
    dual_status: ResultStatus = ResultStatus.NO_SOLUTION
    raw_status: str = ""
    objective_value: float | None = None
    objective_bound: float | None = None
    relative_gap: float | None = None
    values: dict[str, float] = Field(default_factory=dict)
    duals: dict[str, float] = Field(default_factory=dict)
    solve_time_s: float = 0.0
    solver_name: str = ""
    solver_version: str = ""
    result_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    stale: bool = False

    @model_validator(mode="after")
    def _validate_points(self) -> "SolveResult":
        if not self.primal_status.has_point() and (self.values or self.objective_value is not None):
            raise ValueError("a result without a primal point cannot carry values or an objective value")
        if not self.dual_status.has_point() and self.duals:
            raise ValueError("a result without a dual point cannot carry dual values")
        return self

    def has_values(self) -> bool:
        return self.primal_status.has_point()

    def has_duals(self) -> bool:
        return self.dual_status.has_point()

    def is_solved_and_feasible(self, *, dual: bool = False) -> bool:
        ok = (
            self.termination_status == TerminationStatus.OPTIMAL
            and self.primal_status == ResultStatus.FEASIBLE_POINT
        )
        if dual:
            ok = ok and self.dual_status == ResultStatus.FEASIBLE_POINT
        return ok

    def value(self, variable: Any) -> float:
        if not self.has_values():
            raise NoSolutionAvailableError(
                f"no primal point available (termination={self.termination_status.value}, "
                f"primal={self.primal_status.value})"
            )
        name = _key(variable)
        try:
            return self.values[name]
        except KeyError:
            raise KeyError(f"variable '{name}' is not part of this result") from None

    def objective(self) -> float:
        if not self.has_values() or self.objective_value is None:
            raise NoSolutionAvailableError(
                f"no objective value available (primal={self.primal_status.value})"
            )
        return self.objective_value

    def dual(self, constraint: Any) -> float:
        if not self.has_duals():
            raise NoSolutionAvailableError(f"no dual point available (dual={self.dual_status.value})")
        name = _key(constraint)
        try:
            return self.duals[name]
        except KeyError:
            raise KeyError(f"constraint '{name}' has no dual value in this result") from None

    def mark_stale(self) -> "SolveResult":
        return self.model_copy(update={"stale": True})

"""HiGHS (highspy) backend adapter, including direct-mode storage."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from typing import Any

import numpy as np
from pydantic import Field

from optlink.core.ir import IRModel
from optlink.core.solution import ResultStatus, SolveResult, TerminationStatus
from optlink.core.spec import ConstraintSense, ObjectiveSense, VariableType
from optlink.errors import UnsupportedOptionError
from optlink.solvers.base import (
    AttachedSession,
    BackendAdapter,
    CapabilitySet,
    ConstraintType,
    DirectStore,
    ObjectiveType,
)
from optlink.solvers.options import OptionPolicy, OptionValue, SolverOptions

logger = logging.getLogger(__name__)

_TERMINATION_BY_NAME = {
    "kNotset": TerminationStatus.OTHER_ERROR,
    "kLoadError": TerminationStatus.INVALID_MODEL,
    "kModelError": TerminationStatus.INVALID_MODEL,
    "kPresolveError": TerminationStatus.OTHER_ERROR,
    "kSolveError": TerminationStatus.NUMERICAL_ERROR,
    "kPostsolveError": TerminationStatus.OTHER_ERROR,
    "kModelEmpty": TerminationStatus.OPTIMAL,
    "kOptimal": TerminationStatus.OPTIMAL,
    "kInfeasible": TerminationStatus.INFEASIBLE,
    "kUnboundedOrInfeasible": TerminationStatus.INFEASIBLE_OR_UNBOUNDED,
    "kUnbounded": TerminationStatus.UNBOUNDED,
    "kObjectiveBound": TerminationStatus.OBJECTIVE_LIMIT,
    "kObjectiveTarget": TerminationStatus.OBJECTIVE_LIMIT,
    "kTimeLimit": TerminationStatus.TIME_LIMIT,
    "kIterationLimit": TerminationStatus.ITERATION_LIMIT,
    "kUnknown": TerminationStatus.OTHER_ERROR,
    "kSolutionLimit": TerminationStatus.SOLUTION_LIMIT,
    "kInterrupt": TerminationStatus.INTERRUPTED,
    "kMemoryLimit": TerminationStatus.OTHER_LIMIT,
}

# HiGHS solution status codes: 0 none, 1 infeasible, 2 feasible.
_RESULT_BY_CODE = {
    0: ResultStatus.NO_SOLUTION,
    1: ResultStatus.INFEASIBLE_POINT,
    2: ResultStatus.FEASIBLE_POINT,
}


class HighsOptions(SolverOptions):
    iteration_limit: int | None = Field(default=None, ge=0)
    mip_gap: float | None = Field(default=None, ge=0)
    seed: int | None = None
    presolve: str | None = None


def _termination_from_status(highs: Any, model_status: Any) -> TerminationStatus:
    name = getattr(model_status, "name", None)
    if name in _TERMINATION_BY_NAME:
        return _TERMINATION_BY_NAME[name]

    status_text = highs.modelStatusToString(model_status).lower()
    if "optimal" in status_text:
        return TerminationStatus.OPTIMAL
    if "infeasible" in status_text and "unbounded" in status_text:
        return TerminationStatus.INFEASIBLE_OR_UNBOUNDED
    if "infeasible" in status_text:
        return TerminationStatus.INFEASIBLE
    if "unbounded" in status_text:
        return TerminationStatus.UNBOUNDED
    if "time limit" in status_text:
        return TerminationStatus.TIME_LIMIT
    if "iteration limit" in status_text:
        return TerminationStatus.ITERATION_LIMIT
    return TerminationStatus.OTHER_ERROR


def _apply_options(highspy: Any, highs: Any, options: HighsOptions, extra: Mapping[str, OptionValue]) -> None:
    highs.resetOptions()
    verbose = options.verbosity > 0
    settings: dict[str, OptionValue] = {"output_flag": verbose, "log_to_console": verbose}
    if options.time_limit_seconds is not None:
        settings["time_limit"] = float(options.time_limit_seconds)
    if options.iteration_limit is not None:
        settings["simplex_iteration_limit"] = int(options.iteration_limit)
        settings["ipm_iteration_limit"] = int(options.iteration_limit)
    if options.mip_gap is not None:
        settings["mip_rel_gap"] = float(options.mip_gap)
    if options.seed is not None:
        settings["random_seed"] = int(options.seed)
    if options.presolve is not None:
        settings["presolve"] = options.presolve

    for key, value in settings.items():
        highs.setOptionValue(key, value)

    for key, value in extra.items():
        status = highs.setOptionValue(key, value)
        if status == highspy.HighsStatus.kError:
            raise UnsupportedOptionError("highs", [key])


def _collect_result(
    highs: Any,
    adapter: "HighsBackend",
    variable_names: list[str],
    constraint_names: list[str],
    sense: ObjectiveSense,
    has_integer: bool,
    runtime_s: float,
) -> SolveResult:
    model_status = highs.getModelStatus()
    raw_status = highs.modelStatusToString(model_status)
    termination = _termination_from_status(highs, model_status)

    info = highs.getInfo()
    primal_status = _RESULT_BY_CODE.get(int(info.primal_solution_status), ResultStatus.UNKNOWN_RESULT_STATUS)
    if termination in {TerminationStatus.INFEASIBLE, TerminationStatus.INFEASIBLE_OR_UNBOUNDED}:
        # phase-1 iterates of an infeasible model are not reported as points
        primal_status = ResultStatus.NO_SOLUTION
    dual_status = ResultStatus.NO_SOLUTION
    if not has_integer:
        dual_status = _RESULT_BY_CODE.get(int(info.dual_solution_status), ResultStatus.UNKNOWN_RESULT_STATUS)

    sign = -1.0 if sense == ObjectiveSense.MAX else 1.0
    solution = highs.getSolution()

    values: dict[str, float] = {}
    objective_value: float | None = None
    if primal_status.has_point():
        col_values = list(solution.col_value)
        values = {name: float(col_values[i]) for i, name in enumerate(variable_names)}
        objective_value = sign * float(info.objective_function_value)

    duals: dict[str, float] = {}
    if dual_status.has_point():
        row_duals = list(solution.row_dual)
        duals = {name: sign * float(row_duals[i]) for i, name in enumerate(constraint_names)}

    objective_bound: float | None = None
    gap: float | None = None
    if has_integer and primal_status.has_point():
        bound = float(info.mip_dual_bound)
        objective_bound = sign * bound if math.isfinite(bound) else None
        gap_value = float(info.mip_gap)
        gap = gap_value if math.isfinite(gap_value) else None

    return SolveResult(
        termination_status=termination,
        primal_status=primal_status,
        dual_status=dual_status,
        raw_status=raw_status,
        objective_value=objective_value,
        objective_bound=objective_bound,
        relative_gap=gap,
        values=values,
        duals=duals,
        solve_time_s=runtime_s,
        solver_name=adapter.name,
        solver_version=adapter.version,
        result_count=1 if primal_status.has_point() else 0,
        metadata={
            "simplex_iterations": int(info.simplex_iteration_count),
            "barrier_iterations": int(info.ipm_iteration_count),
            "node_count": int(info.mip_node_count),
        },
        error_message=raw_status if termination.is_error() else None,
    )


def _row_bounds(highspy: Any, sense: ConstraintSense, rhs: float) -> tuple[float, float]:
    if sense == ConstraintSense.LE:
        return -highspy.kHighsInf, rhs
    if sense == ConstraintSense.GE:
        return rhs, highspy.kHighsInf
    return rhs, rhs


class HighsSession(AttachedSession):
    def __init__(self, adapter: "HighsBackend", ir_model: IRModel) -> None:
        super().__init__(adapter, ir_model)
        import highspy

        self._highspy = highspy
        self._highs = highspy.Highs()
        self._highs.setOptionValue("output_flag", False)
        model = _build_model(highspy, ir_model)
        pass_status = self._highs.passModel(model)
        if pass_status == highspy.HighsStatus.kError:
            raise RuntimeError(f"HiGHS failed to load model: {pass_status}")
        logger.debug("passed %d columns and %d rows to HiGHS", self._highs.getNumCol(), self._highs.getNumRow())

    @property
    def native(self) -> Any:
        return self._highs

    def solve(self, options: SolverOptions, extra: Mapping[str, OptionValue]) -> SolveResult:
        assert isinstance(options, HighsOptions)
        _apply_options(self._highspy, self._highs, options, extra)

        start = time.perf_counter()
        self._highs.run()
        runtime_s = time.perf_counter() - start

        return _collect_result(
            self._highs,
            self.adapter,  # type: ignore[arg-type]
            variable_names=self.ir_model.variable_names(),
            constraint_names=self.ir_model.constraint_names(),
            sense=self.ir_model.objective.sense,
            has_integer=self.ir_model.has_integer_variables(),
            runtime_s=runtime_s,
        )

    def _release(self) -> None:
        self._highs = None


class HighsDirectStore(DirectStore):
    """Model storage that lives inside a `highspy.Highs` instance from creation."""

    def __init__(self, adapter: "HighsBackend") -> None:
        super().__init__(adapter)
        import highspy

        self._highspy = highspy
        self._highs = highspy.Highs()
        self._highs.setOptionValue("output_flag", False)
        self._sense = ObjectiveSense.MIN
        self._integer_columns: set[int] = set()

    @property
    def native(self) -> Any:
        return self._highs

    def _sign(self) -> float:
        return -1.0 if self._sense == ObjectiveSense.MAX else 1.0

    def add_variable(self, lb: float, ub: float, vartype: VariableType) -> int:
        self._highs.addVar(lb, ub)
        index = self._highs.getNumCol() - 1
        if vartype != VariableType.CONTINUOUS:
            self.set_variable_type(index, vartype)
        return index

    def set_variable_bounds(self, index: int, lb: float, ub: float) -> None:
        self._highs.changeColBounds(index, lb, ub)

    def set_variable_type(self, index: int, vartype: VariableType) -> None:
        if vartype == VariableType.CONTINUOUS:
            self._integer_columns.discard(index)
            self._highs.changeColIntegrality(index, self._highspy.HighsVarType.kContinuous)
            return
        self._integer_columns.add(index)
        self._highs.changeColIntegrality(index, self._highspy.HighsVarType.kInteger)

    def variable_bounds(self, index: int) -> tuple[float, float]:
        lp = self._highs.getLp()
        return float(lp.col_lower_[index]), float(lp.col_upper_[index])

    def add_constraint(self, terms: Mapping[int, float], sense: ConstraintSense, rhs: float) -> int:
        lower, upper = _row_bounds(self._highspy, sense, rhs)
        indices = np.asarray(list(terms.keys()), dtype=np.int32)
        values = np.asarray(list(terms.values()), dtype=np.double)
        self._highs.addRow(lower, upper, len(indices), indices, values)
        return self._highs.getNumRow() - 1

    def set_rhs(self, row: int, sense: ConstraintSense, rhs: float) -> None:
        lower, upper = _row_bounds(self._highspy, sense, rhs)
        self._highs.changeRowBounds(row, lower, upper)

    def set_objective(self, linear: Mapping[int, float], constant: float, sense: ObjectiveSense) -> None:
        self._sense = sense
        sign = self._sign()
        for col in range(self._highs.getNumCol()):
            self._highs.changeColCost(col, sign * float(linear.get(col, 0.0)))
        self._highs.changeObjectiveOffset(sign * float(constant))

    def set_objective_coefficient(self, index: int, coefficient: float) -> None:
        self._highs.changeColCost(index, self._sign() * float(coefficient))

    def solve(
        self,
        options: SolverOptions,
        extra: Mapping[str, OptionValue],
        variable_names: list[str],
        constraint_names: list[str],
    ) -> SolveResult:
        assert isinstance(options, HighsOptions)
        _apply_options(self._highspy, self._highs, options, extra)

        start = time.perf_counter()
        self._highs.run()
        runtime_s = time.perf_counter() - start

        return _collect_result(
            self._highs,
            self.adapter,  # type: ignore[arg-type]
            variable_names=variable_names,
            constraint_names=constraint_names,
            sense=self._sense,
            has_integer=bool(self._integer_columns),
            runtime_s=runtime_s,
        )

    def close(self) -> None:
        super().close()
        self._highs = None


class HighsBackend(BackendAdapter):
    """HiGHS adapter.

    Option keys outside `HighsOptions` are forwarded verbatim to
    `Highs.setOptionValue`; a key HiGHS rejects raises `UnsupportedOptionError`.
    """

    name = "highs"
    options_model = HighsOptions
    option_policy = OptionPolicy.PASSTHROUGH

    def __init__(self, version: str) -> None:
        self.version = version

    def capabilities(self) -> CapabilitySet:
        return CapabilitySet(
            variable_types={VariableType.BINARY, VariableType.INTEGER, VariableType.CONTINUOUS},
            objective_types={ObjectiveType.LINEAR, ObjectiveType.QUADRATIC},
            constraint_types={ConstraintType.LINEAR},
            supports_miqp=False,
            supports_direct=True,
            reports_duals=True,
        )

    def _attach(self, ir_model: IRModel) -> HighsSession:
        return HighsSession(self, ir_model)

    def open_direct(self) -> HighsDirectStore:
        return HighsDirectStore(self)


def _build_model(highspy: Any, ir_model: IRModel) -> Any:
    n = len(ir_model.variables)
    m = ir_model.constraints.num_rows if ir_model.constraints is not None else 0

    lp = highspy.HighsLp()
    lp.num_col_ = n
    lp.num_row_ = m

    obj_sign = 1.0 if ir_model.objective.sense == ObjectiveSense.MIN else -1.0

    lp.col_cost_ = np.asarray([obj_sign * c for c in ir_model.objective.linear], dtype=np.double)
    lp.col_lower_ = np.asarray([v.lb for v in ir_model.variables], dtype=np.double)
    lp.col_upper_ = np.asarray([v.ub for v in ir_model.variables], dtype=np.double)
    lp.offset_ = obj_sign * float(ir_model.objective.constant)

    if m > 0 and ir_model.constraints is not None:
        row_lower = np.full(m, -highspy.kHighsInf, dtype=np.double)
        row_upper = np.full(m, highspy.kHighsInf, dtype=np.double)
        for row in range(m):
            row_lower[row], row_upper[row] = _row_bounds(
                highspy, ir_model.constraints.senses[row], ir_model.constraints.rhs[row]
            )
        lp.row_lower_ = row_lower
        lp.row_upper_ = row_upper
    else:
        lp.row_lower_ = np.asarray([], dtype=np.double)
        lp.row_upper_ = np.asarray([], dtype=np.double)

    col_entries: list[list[tuple[int, float]]] = [[] for _ in range(n)]
    if ir_model.constraints is not None:
        for row, col, value in zip(
            ir_model.constraints.row_indices,
            ir_model.constraints.col_indices,
            ir_model.constraints.values,
            strict=True,
        ):
            col_entries[col].append((row, float(value)))

    starts = [0]
    index: list[int] = []
    values: list[float] = []
    for col in range(n):
        for row, val in sorted(col_entries[col]):
            index.append(row)
            values.append(val)
        starts.append(len(index))

    lp.a_matrix_.num_col_ = n
    lp.a_matrix_.num_row_ = m
    lp.a_matrix_.start_ = np.asarray(starts, dtype=np.int32)
    lp.a_matrix_.index_ = np.asarray(index, dtype=np.int32)
    lp.a_matrix_.value_ = np.asarray(values, dtype=np.double)

    if hasattr(highspy, "MatrixFormat") and hasattr(highspy.MatrixFormat, "kColwise"):
        lp.a_matrix_.format_ = highspy.MatrixFormat.kColwise

    if ir_model.has_integer_variables():
        lp.integrality_ = [
            highspy.HighsVarType.kContinuous if var.vartype == VariableType.CONTINUOUS else highspy.HighsVarType.kInteger
            for var in ir_model.variables
        ]

    if not ir_model.objective.q_v:
        return lp

    qp = highspy.HighsModel()
    qp.lp_ = lp

    hessian = highspy.HighsHessian()
    hessian.dim_ = n
    if hasattr(highspy, "HessianFormat") and hasattr(highspy.HessianFormat, "kTriangular"):
        hessian.format_ = highspy.HessianFormat.kTriangular

    # Lower triangle, column-wise: HiGHS minimizes 0.5 * x'Qx, so diagonal terms double.
    col_hess: list[dict[int, float]] = [{} for _ in range(n)]
    for i, j, coeff in zip(ir_model.objective.q_i, ir_model.objective.q_j, ir_model.objective.q_v, strict=True):
        scaled = obj_sign * float(coeff)
        col, row = min(i, j), max(i, j)
        entry = 2.0 * scaled if i == j else scaled
        col_hess[col][row] = col_hess[col].get(row, 0.0) + entry

    h_start = [0]
    h_index: list[int] = []
    h_value: list[float] = []
    for col in range(n):
        for row, val in sorted(col_hess[col].items()):
            if val != 0:
                h_index.append(row)
                h_value.append(val)
        h_start.append(len(h_index))

    hessian.start_ = np.asarray(h_start, dtype=np.int32)
    hessian.index_ = np.asarray(h_index, dtype=np.int32)
    hessian.value_ = np.asarray(h_value, dtype=np.double)
    qp.hessian_ = hessian
    return qp


def get_backend() -> HighsBackend | None:
    try:
        import highspy
    except ImportError:
        return None
    version = getattr(highspy, "HIGHS_VERSION_MAJOR", None)
    if version is None:
        version_text = getattr(highspy, "__version__", "unknown")
    else:
        major = getattr(highspy, "HIGHS_VERSION_MAJOR", "")
        minor = getattr(highspy, "HIGHS_VERSION_MINOR", "")
        patch = getattr(highspy, "HIGHS_VERSION_PATCH", "")
        version_text = f"{major}.{minor}.{patch}"
    return HighsBackend(version=version_text)

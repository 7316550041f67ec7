"""OR-Tools linear solver (pywraplp) backend adapter."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from typing import Any

from pydantic import Field

from optlink.core.ir import IRModel
from optlink.core.solution import ResultStatus, SolveResult, TerminationStatus
from optlink.core.spec import ConstraintSense, ObjectiveSense, VariableType
from optlink.solvers.base import AttachedSession, BackendAdapter, CapabilitySet, ConstraintType, ObjectiveType
from optlink.solvers.options import OptionPolicy, OptionValue, SolverOptions

logger = logging.getLogger(__name__)

_LP_ENGINE = "GLOP"
_MIP_ENGINES = ("SCIP", "CBC_MIXED_INTEGER_PROGRAMMING")


class ORToolsOptions(SolverOptions):
    ortools_backend: str | None = None
    num_threads: int | None = Field(default=None, ge=1)
    mip_gap: float | None = Field(default=None, ge=0)


def _create_solver(pywraplp: Any, ir_model: IRModel, engine: str | None) -> tuple[Any, str]:
    candidates = (engine,) if engine else ((_LP_ENGINE,) if not ir_model.has_integer_variables() else _MIP_ENGINES)
    for name in candidates:
        solver = pywraplp.Solver.CreateSolver(name)
        if solver is not None:
            return solver, name
    raise RuntimeError(f"OR-Tools did not provide any of the engines: {', '.join(candidates)}")


class ORToolsSession(AttachedSession):
    def __init__(self, adapter: "ORToolsBackend", ir_model: IRModel) -> None:
        super().__init__(adapter, ir_model)
        from ortools.linear_solver import pywraplp

        self._pywraplp = pywraplp
        self._solver: Any = None
        self._engine = ""
        self._variables: list[Any] = []
        self._build(None)

    @property
    def native(self) -> Any:
        return self._solver

    @property
    def engine(self) -> str:
        return self._engine

    def _build(self, engine: str | None) -> None:
        ir_model = self.ir_model
        solver, self._engine = _create_solver(self._pywraplp, ir_model, engine)
        inf = solver.infinity()

        def bound(value: float) -> float:
            return value if math.isfinite(value) else math.copysign(inf, value)

        variables = []
        for var in ir_model.variables:
            if var.vartype == VariableType.BINARY:
                decision = solver.BoolVar(var.name)
            elif var.vartype == VariableType.INTEGER:
                decision = solver.IntVar(bound(var.lb), bound(var.ub), var.name)
            else:
                decision = solver.NumVar(bound(var.lb), bound(var.ub), var.name)
            variables.append(decision)

        if ir_model.constraints is not None:
            rows = ir_model.constraints.row_terms()
            for row in range(ir_model.constraints.num_rows):
                sense = ir_model.constraints.senses[row]
                rhs = ir_model.constraints.rhs[row]
                name = ir_model.constraints.names[row] if ir_model.constraints.names else f"c_{row}"

                if sense == ConstraintSense.LE:
                    ct = solver.RowConstraint(-inf, rhs, name)
                elif sense == ConstraintSense.GE:
                    ct = solver.RowConstraint(rhs, inf, name)
                elif sense == ConstraintSense.EQ:
                    ct = solver.RowConstraint(rhs, rhs, name)
                else:
                    raise ValueError(f"unsupported constraint sense: {sense}")

                for col, coef in rows[row]:
                    ct.SetCoefficient(variables[col], coef)

        objective = solver.Objective()
        for idx, coef in enumerate(ir_model.objective.linear):
            if coef:
                objective.SetCoefficient(variables[idx], coef)
        objective.SetOffset(float(ir_model.objective.constant))

        if ir_model.objective.sense == ObjectiveSense.MAX:
            objective.SetMaximization()
        else:
            objective.SetMinimization()

        self._solver = solver
        self._variables = variables
        logger.debug("built OR-Tools model on engine %s", self._engine)

    def solve(self, options: SolverOptions, extra: Mapping[str, OptionValue]) -> SolveResult:
        assert isinstance(options, ORToolsOptions)
        if options.ortools_backend and options.ortools_backend != self._engine:
            self._release()
            self._build(options.ortools_backend)

        solver = self._solver
        pywraplp = self._pywraplp

        if options.verbosity > 0:
            solver.EnableOutput()
        else:
            solver.SuppressOutput()
        # settings persist on the native solver; 0 ms means no limit
        time_limit_ms = 0 if options.time_limit_seconds is None else int(float(options.time_limit_seconds) * 1000)
        solver.SetTimeLimit(time_limit_ms)
        if options.num_threads is None:
            solver.SetNumThreads(1)
        elif not solver.SetNumThreads(options.num_threads):
            logger.warning("OR-Tools engine %s ignored num_threads=%d", self._engine, options.num_threads)

        params = pywraplp.MPSolverParameters()
        if options.mip_gap is not None:
            params.SetDoubleParam(pywraplp.MPSolverParameters.RELATIVE_MIP_GAP, float(options.mip_gap))

        start = time.perf_counter()
        status_code = solver.Solve(params)
        runtime_s = time.perf_counter() - start

        limited = TerminationStatus.TIME_LIMIT if options.time_limit_seconds is not None else TerminationStatus.OTHER_LIMIT
        status_map = {
            pywraplp.Solver.OPTIMAL: TerminationStatus.OPTIMAL,
            pywraplp.Solver.FEASIBLE: limited,
            pywraplp.Solver.INFEASIBLE: TerminationStatus.INFEASIBLE,
            pywraplp.Solver.UNBOUNDED: TerminationStatus.UNBOUNDED,
            pywraplp.Solver.ABNORMAL: TerminationStatus.NUMERICAL_ERROR,
            pywraplp.Solver.MODEL_INVALID: TerminationStatus.INVALID_MODEL,
            pywraplp.Solver.NOT_SOLVED: limited if options.time_limit_seconds is not None else TerminationStatus.OTHER_ERROR,
        }
        termination = status_map.get(status_code, TerminationStatus.OTHER_ERROR)

        has_point = status_code in {pywraplp.Solver.OPTIMAL, pywraplp.Solver.FEASIBLE}
        primal_status = ResultStatus.FEASIBLE_POINT if has_point else ResultStatus.NO_SOLUTION

        values: dict[str, float] = {}
        objective_value: float | None = None
        objective_bound: float | None = None
        if has_point:
            values = {
                self.ir_model.variables[i].name: float(self._variables[i].solution_value())
                for i in range(len(self.ir_model.variables))
            }
            objective_value = float(solver.Objective().Value())
            if self.ir_model.has_integer_variables():
                objective_bound = float(solver.Objective().BestBound())

        return SolveResult(
            termination_status=termination,
            primal_status=primal_status,
            dual_status=ResultStatus.NO_SOLUTION,
            raw_status=f"{self._engine}:{status_code}",
            objective_value=objective_value,
            objective_bound=objective_bound,
            values=values,
            solve_time_s=runtime_s,
            solver_name=self.adapter.name,
            solver_version=self.adapter.version,
            result_count=1 if has_point else 0,
            metadata={
                "engine": self._engine,
                "iterations": int(solver.iterations()),
                "node_count": int(solver.nodes()) if self.ir_model.has_integer_variables() else 0,
            },
            error_message=None if not termination.is_error() else f"OR-Tools returned status {status_code}",
        )

    def _release(self) -> None:
        if self._solver is not None:
            self._solver.Clear()
        self._solver = None
        self._variables = []


class ORToolsBackend(BackendAdapter):
    """OR-Tools adapter. Unknown option keys raise `UnsupportedOptionError`."""

    name = "ortools"
    options_model = ORToolsOptions
    option_policy = OptionPolicy.RAISE

    def __init__(self, version: str) -> None:
        self.version = version

    def capabilities(self) -> CapabilitySet:
        return CapabilitySet(
            variable_types={VariableType.BINARY, VariableType.INTEGER, VariableType.CONTINUOUS},
            objective_types={ObjectiveType.LINEAR},
            constraint_types={ConstraintType.LINEAR},
        )

    def _attach(self, ir_model: IRModel) -> ORToolsSession:
        return ORToolsSession(self, ir_model)


def get_backend() -> ORToolsBackend | None:
    try:
        import ortools
    except ImportError:
        return None
    version = getattr(ortools, "__version__", "unknown")
    return ORToolsBackend(version=version)

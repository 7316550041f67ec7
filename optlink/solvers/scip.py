"""PySCIPOpt backend adapter."""

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
from optlink.errors import InvalidOptionValueError, UnsupportedOptionError
from optlink.solvers.base import AttachedSession, BackendAdapter, CapabilitySet, ConstraintType, ObjectiveType
from optlink.solvers.options import OptionPolicy, OptionValue, SolverOptions

logger = logging.getLogger(__name__)

_TERMINATION_BY_STATUS = {
    "optimal": TerminationStatus.OPTIMAL,
    "gaplimit": TerminationStatus.OPTIMAL,
    "infeasible": TerminationStatus.INFEASIBLE,
    "unbounded": TerminationStatus.UNBOUNDED,
    "inforunbd": TerminationStatus.INFEASIBLE_OR_UNBOUNDED,
    "timelimit": TerminationStatus.TIME_LIMIT,
    "nodelimit": TerminationStatus.NODE_LIMIT,
    "totalnodelimit": TerminationStatus.NODE_LIMIT,
    "stallnodelimit": TerminationStatus.NODE_LIMIT,
    "sollimit": TerminationStatus.SOLUTION_LIMIT,
    "bestsollimit": TerminationStatus.SOLUTION_LIMIT,
    "userinterrupt": TerminationStatus.INTERRUPTED,
    "memlimit": TerminationStatus.OTHER_LIMIT,
    "restartlimit": TerminationStatus.OTHER_LIMIT,
}


class SCIPOptions(SolverOptions):
    iteration_limit: int | None = Field(default=None, ge=0)
    mip_gap: float | None = Field(default=None, ge=0)
    seed: int | None = Field(default=None, ge=0)


class SCIPSession(AttachedSession):
    def __init__(self, adapter: "SCIPBackend", ir_model: IRModel) -> None:
        super().__init__(adapter, ir_model)
        from pyscipopt import Model, quicksum

        model = Model(ir_model.name)
        model.hideOutput()

        vars_by_index = []
        for var in ir_model.variables:
            if var.vartype == VariableType.BINARY:
                vtype = "B"
            elif var.vartype == VariableType.INTEGER:
                vtype = "I"
            else:
                vtype = "C"
            lb = var.lb if math.isfinite(var.lb) else None
            ub = var.ub if math.isfinite(var.ub) else None
            vars_by_index.append(model.addVar(name=var.name, vtype=vtype, lb=lb, ub=ub))

        if ir_model.constraints is not None:
            rows = ir_model.constraints.row_terms()
            for row in range(ir_model.constraints.num_rows):
                expr = quicksum(coef * vars_by_index[col] for col, coef in rows[row])
                rhs = ir_model.constraints.rhs[row]
                sense = ir_model.constraints.senses[row]
                name = ir_model.constraints.names[row] if ir_model.constraints.names else f"c_{row}"

                if sense == ConstraintSense.LE:
                    model.addCons(expr <= rhs, name=name)
                elif sense == ConstraintSense.GE:
                    model.addCons(expr >= rhs, name=name)
                elif sense == ConstraintSense.EQ:
                    model.addCons(expr == rhs, name=name)
                else:
                    raise ValueError(f"unsupported constraint sense: {sense}")

        objective_expr = quicksum(
            coef * vars_by_index[idx] for idx, coef in enumerate(ir_model.objective.linear) if coef
        )
        objective_expr = objective_expr + float(ir_model.objective.constant)
        if ir_model.objective.sense == ObjectiveSense.MAX:
            model.setObjective(objective_expr, "maximize")
        else:
            model.setObjective(objective_expr, "minimize")

        self._model: Any = model
        self._vars = vars_by_index
        self._solved = False

    @property
    def native(self) -> Any:
        return self._model

    def _apply_options(self, options: SCIPOptions, extra: Mapping[str, OptionValue]) -> None:
        model = self._model
        # parameters from the previous solve stay set on the native model
        model.resetParams()
        model.hideOutput(quiet=options.verbosity == 0)
        if options.time_limit_seconds is not None:
            model.setParam("limits/time", float(options.time_limit_seconds))
        if options.iteration_limit is not None:
            model.setParam("lp/iterlim", int(options.iteration_limit))
        if options.mip_gap is not None:
            model.setParam("limits/gap", float(options.mip_gap))
        if options.seed is not None:
            model.setParam("randomization/randomseedshift", int(options.seed))
        for key, value in extra.items():
            try:
                model.setParam(key, value)
            except (KeyError, LookupError) as exc:
                raise UnsupportedOptionError("scip", [key]) from exc
            except (TypeError, ValueError) as exc:
                raise InvalidOptionValueError(f"invalid value {value!r} for SCIP parameter '{key}': {exc}") from exc

    def solve(self, options: SolverOptions, extra: Mapping[str, OptionValue]) -> SolveResult:
        assert isinstance(options, SCIPOptions)
        model = self._model
        if self._solved:
            logger.debug("freeing the transformed SCIP problem before re-solving")
            model.freeTransform()
        self._apply_options(options, extra)

        start = time.perf_counter()
        model.optimize()
        runtime_s = time.perf_counter() - start
        self._solved = True

        raw_status = str(model.getStatus())
        termination = _TERMINATION_BY_STATUS.get(raw_status.lower(), TerminationStatus.OTHER_ERROR)

        values: dict[str, float] = {}
        objective_value: float | None = None
        objective_bound: float | None = None
        gap: float | None = None
        primal_status = ResultStatus.NO_SOLUTION

        solution = model.getBestSol() if model.getNSols() > 0 else None
        if solution is not None:
            primal_status = ResultStatus.FEASIBLE_POINT
            values = {
                self.ir_model.variables[i].name: float(model.getSolVal(solution, self._vars[i]))
                for i in range(len(self._vars))
            }
            objective_value = float(model.getObjVal())
            objective_bound = float(model.getDualbound())
            gap_value = float(model.getGap())
            gap = gap_value if math.isfinite(gap_value) else None

        return SolveResult(
            termination_status=termination,
            primal_status=primal_status,
            dual_status=ResultStatus.NO_SOLUTION,
            raw_status=raw_status,
            objective_value=objective_value,
            objective_bound=objective_bound,
            relative_gap=gap,
            values=values,
            solve_time_s=runtime_s,
            solver_name=self.adapter.name,
            solver_version=self.adapter.version,
            result_count=int(model.getNSols()),
            metadata={
                "node_count": int(model.getNNodes()),
                "lp_iterations": int(model.getNLPIterations()),
            },
            error_message=None if not termination.is_error() else f"SCIP returned status {raw_status}",
        )

    def _release(self) -> None:
        self._model = None
        self._vars = []


class SCIPBackend(BackendAdapter):
    """SCIP adapter.

    Option keys outside `SCIPOptions` are SCIP parameter paths such as
    ``"presolving/maxrounds"`` and go to `Model.setParam`; an unknown path
    raises `UnsupportedOptionError`.
    """

    name = "scip"
    options_model = SCIPOptions
    option_policy = OptionPolicy.PASSTHROUGH

    def __init__(self, version: str) -> None:
        self.version = version

    def capabilities(self) -> CapabilitySet:
        return CapabilitySet(
            variable_types={VariableType.BINARY, VariableType.INTEGER, VariableType.CONTINUOUS},
            objective_types={ObjectiveType.LINEAR},
            constraint_types={ConstraintType.LINEAR},
        )

    def _attach(self, ir_model: IRModel) -> SCIPSession:
        return SCIPSession(self, ir_model)


def get_backend() -> SCIPBackend | None:
    try:
        import pyscipopt
    except ImportError:
        return None
    version = getattr(pyscipopt, "__version__", "unknown")
    return SCIPBackend(version=version)

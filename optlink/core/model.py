"""Solver-agnostic optimization model."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from optlink.core.expr import (
    ConstraintExpr,
    ConstraintHandle,
    Expression,
    LinearExpr,
    QuadExpr,
    VariableHandle,
    as_expression,
)
from optlink.core.ir import IRConstraintMatrix, IRModel, IRObjective, IRQuadraticRow, IRVariable
from optlink.core.solution import ResultStatus, SolveResult, TerminationStatus
from optlink.core.spec import (
    ConstraintSense,
    ObjectiveSense,
    VariableType,
    parse_objective_sense,
    parse_relation,
    parse_vartype,
)
from optlink.errors import DirectModeError, ForeignReferenceError, UnsupportedModelElementError
from optlink.session import AttachmentMode, SessionState, SolveSession
from optlink.solvers.base import ConstraintType, ObjectiveType, ProblemRequirements
from optlink.solvers.discovery import BackendLike


@dataclass
class _VariableRecord:
    name: str
    vartype: VariableType
    lb: float
    ub: float


@dataclass
class _ConstraintRecord:
    name: str
    sense: ConstraintSense
    rhs: float
    body: Expression | None


def _bound(value: float | None, default: float) -> float:
    if value is None:
        return default
    value = float(value)
    if math.isnan(value):
        raise ValueError("variable bounds cannot be NaN")
    return value


def _is_quadratic(expr: Expression) -> bool:
    return isinstance(expr, QuadExpr) and any(coef != 0.0 for coef in expr.quad_terms.values())


def _linear_part(expr: Expression) -> LinearExpr:
    return expr.linear if isinstance(expr, QuadExpr) else expr


class Model:
    """An optimization model that can be built without any solver installed.

    ``Model()`` starts in deferred mode and attaches a backend on the first
    `solve`. ``Model(backend="highs")`` attaches right away (automatic mode)
    and rejects elements the backend cannot represent as they are added.
    Pass ``mode="manual"`` to control attachment with `attach_backend` and
    `detach_backend`, or use `direct_model` to write straight into a
    solver's native storage.
    """

    def __init__(
        self,
        name: str = "model",
        backend: BackendLike | None = None,
        *,
        mode: AttachmentMode | str | None = None,
        options: dict[str, object] | None = None,
    ) -> None:
        self.name = name
        self.revision = 0

        self._variables: list[VariableHandle] = []
        self._var_records: list[_VariableRecord] = []
        self._var_by_name: dict[str, VariableHandle] = {}
        self._integer_count = 0

        self._constraints: list[ConstraintHandle] = []
        self._con_records: list[_ConstraintRecord] = []
        self._con_by_name: dict[str, ConstraintHandle] = {}

        self._objective: Expression = LinearExpr()
        self._sense = ObjectiveSense.MIN

        if mode is None:
            mode = AttachmentMode.AUTOMATIC if backend is not None else AttachmentMode.DEFERRED
        self._mode = AttachmentMode(mode)
        self._session = SolveSession(self, self._mode, backend, options)

    def __repr__(self) -> str:
        return (
            f"Model({self.name!r}, mode={self.mode.value}, "
            f"variables={self.num_variables}, constraints={self.num_constraints})"
        )

    # -- introspection -----------------------------------------------------

    @property
    def mode(self) -> AttachmentMode:
        return self._mode

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_direct(self) -> bool:
        return self._mode == AttachmentMode.DIRECT

    @property
    def num_variables(self) -> int:
        return len(self._variables)

    @property
    def num_constraints(self) -> int:
        return len(self._constraints)

    @property
    def objective_sense(self) -> ObjectiveSense:
        return self._sense

    def variables(self) -> list[VariableHandle]:
        return list(self._variables)

    def constraints(self) -> list[ConstraintHandle]:
        return list(self._constraints)

    def variable_by_name(self, name: str) -> VariableHandle:
        try:
            return self._var_by_name[name]
        except KeyError:
            raise KeyError(f"model '{self.name}' has no variable named '{name}'") from None

    def constraint_by_name(self, name: str) -> ConstraintHandle:
        try:
            return self._con_by_name[name]
        except KeyError:
            raise KeyError(f"model '{self.name}' has no constraint named '{name}'") from None

    def variable_bounds(self, variable: VariableHandle) -> tuple[float, float]:
        self._check_variable(variable)
        if self.is_direct:
            return self._session.direct_store.variable_bounds(variable.index)
        record = self._var_records[variable.index]
        return record.lb, record.ub

    def variable_type(self, variable: VariableHandle) -> VariableType:
        self._check_variable(variable)
        return self._var_records[variable.index].vartype

    def objective_function(self) -> Expression:
        return self._objective.copy()

    def constraint_rhs(self, constraint: ConstraintHandle) -> float:
        self._check_constraint(constraint)
        return self._con_records[constraint.index].rhs

    # -- ownership ---------------------------------------------------------

    def _check_variable(self, variable: object) -> None:
        if not isinstance(variable, VariableHandle):
            raise TypeError(f"expected a variable handle, got {type(variable).__name__}")
        if variable.model is not self:
            raise ForeignReferenceError(
                f"variable '{variable.name}' belongs to model '{variable.model.name}', not '{self.name}'"
            )

    def _check_constraint(self, constraint: object) -> None:
        if not isinstance(constraint, ConstraintHandle):
            raise TypeError(f"expected a constraint handle, got {type(constraint).__name__}")
        if constraint.model is not self:
            raise ForeignReferenceError(
                f"constraint '{constraint.name}' belongs to model '{constraint.model.name}', not '{self.name}'"
            )

    def _check_expression(self, expr: Expression) -> None:
        for variable in expr.variables():
            self._check_variable(variable)

    # -- capability guard --------------------------------------------------

    def _objective_type(self) -> ObjectiveType:
        return ObjectiveType.QUADRATIC if _is_quadratic(self._objective) else ObjectiveType.LINEAR

    def _guard(
        self,
        *,
        vartype: VariableType | None = None,
        objective_type: ObjectiveType | None = None,
        constraint_type: ConstraintType | None = None,
    ) -> None:
        has_integer = self._integer_count > 0 or vartype in {VariableType.BINARY, VariableType.INTEGER}
        requirements = ProblemRequirements(
            variable_types={vartype} if vartype is not None else set(),
            objective_type=objective_type or self._objective_type(),
            constraint_types={constraint_type} if constraint_type is not None else set(),
            has_integer_variables=has_integer,
        )
        self._session.check_mutation(requirements)

    def _reject_quadratic_in_direct(self, what: str) -> None:
        adapter = self._session.adapter
        raise UnsupportedModelElementError(
            adapter.name if adapter is not None else "direct",
            [f"{what}: direct models accept linear terms only"],
        )

    def _touch(self) -> None:
        self.revision += 1

    # -- building ----------------------------------------------------------

    def _unique_name(self, requested: str | None, prefix: str, index: int, taken: dict[str, Any]) -> str:
        if requested is not None:
            if requested in taken:
                raise ValueError(f"model '{self.name}' already has an element named '{requested}'")
            return requested
        name = f"{prefix}{index}"
        suffix = 1
        while name in taken:
            name = f"{prefix}{index}_{suffix}"
            suffix += 1
        return name

    def add_variable(
        self,
        lower: float | None = None,
        upper: float | None = None,
        *,
        name: str | None = None,
        vartype: VariableType | str = VariableType.CONTINUOUS,
    ) -> VariableHandle:
        """Add a decision variable. ``None`` bounds mean unbounded on that side.

        Binary variables get bounds ``[0, 1]`` unless tighter ones are given.
        """
        vartype = parse_vartype(vartype)
        lb = _bound(lower, -math.inf)
        ub = _bound(upper, math.inf)
        if vartype == VariableType.BINARY:
            lb = max(lb, 0.0)
            ub = min(ub, 1.0)
        if lb > ub:
            raise ValueError(f"lower bound {lb} exceeds upper bound {ub}")

        self._guard(vartype=vartype)
        index = len(self._variables)
        name = self._unique_name(name, "x", index, self._var_by_name)

        if self.is_direct:
            native_index = self._session.direct_store.add_variable(lb, ub, vartype)
            assert native_index == index
        handle = VariableHandle(self, index, name)
        self._variables.append(handle)
        self._var_records.append(_VariableRecord(name=name, vartype=vartype, lb=lb, ub=ub))
        self._var_by_name[name] = handle
        if vartype != VariableType.CONTINUOUS:
            self._integer_count += 1
        self._touch()
        return handle

    def add_variables(
        self,
        count: int,
        lower: float | None = None,
        upper: float | None = None,
        *,
        prefix: str = "x",
        vartype: VariableType | str = VariableType.CONTINUOUS,
    ) -> list[VariableHandle]:
        """Add ``count`` variables named ``prefix<index>``, suffixed on collision."""
        start = len(self._variables)
        taken: dict[str, Any] = dict(self._var_by_name)
        names = []
        for i in range(count):
            name = self._unique_name(None, prefix, start + i, taken)
            taken[name] = None
            names.append(name)
        return [self.add_variable(lower, upper, name=name, vartype=vartype) for name in names]

    def add_constraint(
        self,
        expression: ConstraintExpr | Expression | VariableHandle | float,
        relation: ConstraintSense | str | None = None,
        rhs: Expression | VariableHandle | float | None = None,
        *,
        name: str | None = None,
    ) -> ConstraintHandle:
        """Add ``expression relation rhs``, or a prebuilt ``x + y >= 1`` comparison.

        Constants on either side are folded into the right-hand side.
        """
        if isinstance(expression, bool):
            raise TypeError(
                "add_constraint got a bool; variable handles compare by identity, "
                "so write `1 * x == 1` or `add_constraint(x, \"==\", 1)`"
            )
        if isinstance(expression, ConstraintExpr):
            if relation is not None or rhs is not None:
                raise TypeError("pass either a comparison or expression/relation/rhs, not both")
            constraint = expression
        else:
            if relation is None:
                raise TypeError("add_constraint needs a relation when given a bare expression")
            constraint = ConstraintExpr.build(expression, parse_relation(relation), 0.0 if rhs is None else rhs)

        body = constraint.body
        if not math.isfinite(constraint.rhs):
            raise ValueError(f"constraint right-hand side must be finite, got {constraint.rhs}")
        self._check_expression(body)
        quadratic = _is_quadratic(body)
        self._guard(constraint_type=ConstraintType.QUADRATIC if quadratic else ConstraintType.LINEAR)
        index = len(self._constraints)
        name = self._unique_name(name, "c", index, self._con_by_name)

        if self.is_direct:
            if quadratic:
                self._reject_quadratic_in_direct("constraint")
            terms: dict[int, float] = {}
            for var, coef in _linear_part(body).terms.items():
                if coef != 0.0:
                    terms[var.index] = terms.get(var.index, 0.0) + coef
            row = self._session.direct_store.add_constraint(terms, constraint.sense, constraint.rhs)
            assert row == index
            stored: Expression | None = None
        else:
            stored = body

        handle = ConstraintHandle(self, index, name)
        self._constraints.append(handle)
        self._con_records.append(_ConstraintRecord(name=name, sense=constraint.sense, rhs=constraint.rhs, body=stored))
        self._con_by_name[name] = handle
        self._touch()
        return handle

    def set_objective(self, expression: Expression | VariableHandle | float, sense: ObjectiveSense | str = "min") -> None:
        objective = as_expression(expression).copy()
        sense = parse_objective_sense(sense)
        self._check_expression(objective)
        quadratic = _is_quadratic(objective)
        self._guard(objective_type=ObjectiveType.QUADRATIC if quadratic else ObjectiveType.LINEAR)

        if self.is_direct:
            if quadratic:
                self._reject_quadratic_in_direct("objective")
            linear: dict[int, float] = {}
            part = _linear_part(objective)
            for var, coef in part.terms.items():
                linear[var.index] = linear.get(var.index, 0.0) + coef
            self._session.direct_store.set_objective(linear, part.constant, sense)
        self._objective = objective
        self._sense = sense
        self._touch()

    def set_objective_sense(self, sense: ObjectiveSense | str) -> None:
        if self.is_direct:
            raise DirectModeError("direct models change the sense through set_objective()")
        self._session.check_mutation()
        self._sense = parse_objective_sense(sense)
        self._touch()

    def set_objective_coefficient(self, variable: VariableHandle, coefficient: float) -> None:
        """Replace the linear objective coefficient of `variable`."""
        self._check_variable(variable)
        self._session.check_mutation()
        objective = self._objective.copy()
        part = _linear_part(objective)
        if coefficient:
            part.terms[variable] = float(coefficient)
        else:
            part.terms.pop(variable, None)
        if self.is_direct:
            self._session.direct_store.set_objective_coefficient(variable.index, float(coefficient))
        self._objective = objective
        self._touch()

    def set_bounds(self, variable: VariableHandle, lower: float | None, upper: float | None) -> None:
        self._check_variable(variable)
        lb = _bound(lower, -math.inf)
        ub = _bound(upper, math.inf)
        if lb > ub:
            raise ValueError(f"lower bound {lb} exceeds upper bound {ub}")
        self._session.check_mutation()
        if self.is_direct:
            self._session.direct_store.set_variable_bounds(variable.index, lb, ub)
        record = self._var_records[variable.index]
        record.lb, record.ub = lb, ub
        self._touch()

    def fix(self, variable: VariableHandle, value: float) -> None:
        self.set_bounds(variable, value, value)

    def set_vartype(self, variable: VariableHandle, vartype: VariableType | str) -> None:
        self._check_variable(variable)
        vartype = parse_vartype(vartype)
        record = self._var_records[variable.index]
        if record.vartype == vartype:
            return
        self._guard(vartype=vartype)

        if self.is_direct:
            self._session.direct_store.set_variable_type(variable.index, vartype)
        if record.vartype != VariableType.CONTINUOUS:
            self._integer_count -= 1
        if vartype != VariableType.CONTINUOUS:
            self._integer_count += 1
        record.vartype = vartype
        self._touch()
        if vartype == VariableType.BINARY:
            lb, ub = self.variable_bounds(variable)
            self.set_bounds(variable, max(lb, 0.0), min(ub, 1.0))

    def set_rhs(self, constraint: ConstraintHandle, rhs: float) -> None:
        self._check_constraint(constraint)
        rhs = float(rhs)
        if not math.isfinite(rhs):
            raise ValueError(f"constraint right-hand side must be finite, got {rhs}")
        self._session.check_mutation()
        record = self._con_records[constraint.index]
        if self.is_direct:
            self._session.direct_store.set_rhs(constraint.index, record.sense, rhs)
        record.rhs = rhs
        self._touch()

    # -- snapshot ----------------------------------------------------------

    def to_ir(self) -> IRModel:
        """Snapshot the model into the backend-neutral intermediate representation."""
        if self.is_direct:
            raise DirectModeError("direct models have no backend-neutral snapshot")

        variables = [
            IRVariable(index=i, name=record.name, vartype=record.vartype, lb=record.lb, ub=record.ub)
            for i, record in enumerate(self._var_records)
        ]

        linear = [0.0] * len(variables)
        objective_linear = _linear_part(self._objective)
        for var, coef in objective_linear.terms.items():
            linear[var.index] += coef
        q_i: list[int] = []
        q_j: list[int] = []
        q_v: list[float] = []
        if isinstance(self._objective, QuadExpr):
            for (a, b), coef in self._objective.quad_terms.items():
                if coef != 0.0:
                    q_i.append(a.index)
                    q_j.append(b.index)
                    q_v.append(coef)
        objective = IRObjective(
            sense=self._sense,
            linear=linear,
            q_i=q_i,
            q_j=q_j,
            q_v=q_v,
            constant=objective_linear.constant,
        )

        names: list[str] = []
        senses: list[ConstraintSense] = []
        rhs: list[float] = []
        row_indices: list[int] = []
        col_indices: list[int] = []
        values: list[float] = []
        quadratic_rows: list[IRQuadraticRow] = []

        for record in self._con_records:
            body = record.body
            assert body is not None
            if _is_quadratic(body):
                assert isinstance(body, QuadExpr)
                quadratic_rows.append(
                    IRQuadraticRow(
                        name=record.name,
                        sense=record.sense,
                        rhs=record.rhs,
                        linear=[(var.index, coef) for var, coef in body.linear.terms.items() if coef != 0.0],
                        quadratic=[(a.index, b.index, coef) for (a, b), coef in body.quad_terms.items() if coef != 0.0],
                    )
                )
                continue

            row = len(names)
            names.append(record.name)
            senses.append(record.sense)
            rhs.append(record.rhs)
            for var, coef in _linear_part(body).terms.items():
                if coef != 0.0:
                    row_indices.append(row)
                    col_indices.append(var.index)
                    values.append(coef)

        constraints = None
        if names:
            constraints = IRConstraintMatrix(
                num_rows=len(names),
                names=names,
                senses=senses,
                rhs=rhs,
                row_indices=row_indices,
                col_indices=col_indices,
                values=values,
            )

        return IRModel(
            name=self.name,
            variables=variables,
            objective=objective,
            constraints=constraints,
            quadratic_constraints=quadratic_rows,
        )

    # -- backend lifecycle -------------------------------------------------

    def attach_backend(self, backend: BackendLike | None = None) -> None:
        """Copy the model into `backend`; re-attaching rebuilds native state from scratch."""
        self._session.check_mutation()
        self._session.attach(backend)

    def detach_backend(self) -> None:
        self._session.check_mutation()
        self._session.detach()

    def set_backend(self, backend: BackendLike | None) -> None:
        self._session.check_mutation()
        self._session.set_backend(backend)

    def solve(self, backend: BackendLike | None = None, options: dict[str, object] | None = None) -> SolveResult:
        """Solve and return the result snapshot.

        `options` apply to this call only and override model-level options,
        options bound with `with_options`, and configured backend defaults.
        """
        return self._session.solve(backend, options)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "Model":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def native_backend(self) -> Any:
        return self._session.native_backend()

    def solver_name(self) -> str:
        return self._session.solver_name()

    # -- options -----------------------------------------------------------

    def set_option(self, key: str, value: object) -> None:
        self._session.options[key] = value

    def get_option(self, key: str) -> object:
        return self._session.options[key]

    def clear_options(self) -> None:
        self._session.options.clear()

    def set_silent(self) -> None:
        self._session.options["verbosity"] = 0

    def unset_silent(self) -> None:
        self._session.options["verbosity"] = 1

    def set_time_limit(self, seconds: float | None) -> None:
        if seconds is None:
            self._session.options.pop("time_limit_seconds", None)
        else:
            self._session.options["time_limit_seconds"] = seconds

    # -- results -----------------------------------------------------------

    @property
    def last_result(self) -> SolveResult | None:
        return self._session.last_result

    def termination_status(self) -> TerminationStatus:
        return self._session.termination_status()

    def primal_status(self, result: int = 1) -> ResultStatus:
        if result != 1:
            return ResultStatus.NO_SOLUTION
        return self._session.primal_status()

    def dual_status(self, result: int = 1) -> ResultStatus:
        if result != 1:
            return ResultStatus.NO_SOLUTION
        return self._session.dual_status()

    def raw_status(self) -> str:
        return self._session.current_result().raw_status

    def result_count(self) -> int:
        if self._session.state == SessionState.ERROR or self._session.last_result is None:
            return 0
        return self._session.last_result.result_count

    def solve_time(self) -> float:
        return self._session.current_result().solve_time_s

    def has_values(self) -> bool:
        return self._session.primal_status().has_point()

    def has_duals(self) -> bool:
        return self._session.dual_status().has_point()

    def is_solved_and_feasible(self, *, dual: bool = False) -> bool:
        if self._session.state == SessionState.ERROR or self._session.last_result is None:
            return False
        return self._session.last_result.is_solved_and_feasible(dual=dual)

    def objective_value(self) -> float:
        return self._session.current_result().objective()

    def objective_bound(self) -> float | None:
        return self._session.current_result().objective_bound

    def relative_gap(self) -> float | None:
        return self._session.current_result().relative_gap

    def value(self, item: VariableHandle | Expression) -> float:
        """Primal value of a variable, or of an expression evaluated at the primal point."""
        result = self._session.current_result()
        if isinstance(item, VariableHandle):
            self._check_variable(item)
            return result.value(item)
        expr = as_expression(item)
        self._check_expression(expr)
        linear = _linear_part(expr)
        total = linear.constant + sum(coef * result.value(var) for var, coef in linear.terms.items())
        if isinstance(expr, QuadExpr):
            total += sum(coef * result.value(a) * result.value(b) for (a, b), coef in expr.quad_terms.items())
        return total

    def dual(self, constraint: ConstraintHandle) -> float:
        self._check_constraint(constraint)
        return self._session.current_result().dual(constraint)


def direct_model(backend: BackendLike, name: str = "model", *, options: dict[str, object] | None = None) -> Model:
    """Create a model whose variables and constraints live in `backend`'s native storage."""
    return Model(name, backend, mode=AttachmentMode.DIRECT, options=options)

"""Normalized internal representation (IR) handed to backend adapters."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from optlink.core.spec import ConstraintSense, ObjectiveSense, VariableType


class IRVariable(BaseModel):
    index: int
    name: str
    vartype: VariableType
    lb: float
    ub: float


class IRObjective(BaseModel):
    sense: ObjectiveSense
    linear: list[float]
    q_i: list[int] = Field(default_factory=list)
    q_j: list[int] = Field(default_factory=list)
    q_v: list[float] = Field(default_factory=list)
    constant: float = 0.0

    @model_validator(mode="after")
    def _validate_shapes(self) -> "IRObjective":
        if len(self.q_i) != len(self.q_j) or len(self.q_i) != len(self.q_v):
            raise ValueError("quadratic term arrays q_i, q_j, q_v must have equal length")
        return self


class IRConstraintMatrix(BaseModel):
    num_rows: int
    names: list[str] = Field(default_factory=list)
    senses: list[ConstraintSense]
    rhs: list[float]
    row_indices: list[int] = Field(default_factory=list)
    col_indices: list[int] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_shapes(self) -> "IRConstraintMatrix":
        if len(self.senses) != self.num_rows or len(self.rhs) != self.num_rows:
            raise ValueError("constraint senses and rhs must match num_rows")
        if self.names and len(self.names) != self.num_rows:
            raise ValueError("constraint names must match num_rows")
        if len(self.row_indices) != len(self.col_indices) or len(self.row_indices) != len(self.values):
            raise ValueError("constraint COO arrays row_indices, col_indices, values must match")
        return self

    def row_terms(self) -> list[list[tuple[int, float]]]:
        rows: list[list[tuple[int, float]]] = [[] for _ in range(self.num_rows)]
        for row, col, value in zip(self.row_indices, self.col_indices, self.values, strict=True):
            rows[row].append((col, value))
        return rows


class IRQuadraticRow(BaseModel):
    """A constraint row with quadratic terms, kept apart from the linear matrix."""

    name: str
    sense: ConstraintSense
    rhs: float
    linear: list[tuple[int, float]] = Field(default_factory=list)
    quadratic: list[tuple[int, int, float]] = Field(default_factory=list)


class IRModel(BaseModel):
    name: str = "model"
    variables: list[IRVariable]
    objective: IRObjective
    constraints: IRConstraintMatrix | None = None
    quadratic_constraints: list[IRQuadraticRow] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_shapes(self) -> "IRModel":
        n = len(self.variables)
        if len(self.objective.linear) != n:
            raise ValueError("objective linear vector length must match variable count")
        return self

    def variable_names(self) -> list[str]:
        return [v.name for v in self.variables]

    def variable_types(self) -> set[VariableType]:
        return {v.vartype for v in self.variables}

    def has_constraints(self) -> bool:
        return self.constraints is not None and self.constraints.num_rows > 0

    def has_quadratic_objective(self) -> bool:
        return bool(self.objective.q_v)

    def has_integer_variables(self) -> bool:
        return any(v.vartype != VariableType.CONTINUOUS for v in self.variables)

    def constraint_names(self) -> list[str]:
        names = list(self.constraints.names) if self.constraints is not None else []
        return names + [row.name for row in self.quadratic_constraints]

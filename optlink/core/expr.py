"""Variable/constraint handles and the linear and quadratic expressions built from them."""

from __future__ import annotations

import numbers
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Union

from optlink.core.spec import ConstraintSense

if TYPE_CHECKING:
    from optlink.core.model import Model


class VariableHandle:
    """Reference to one decision variable of a model.

    Handles compare and hash by identity so they can key dicts; an equality
    constraint on a bare handle is written ``1 * x == 1``.
    """

    __slots__ = ("model", "index", "name")

    def __init__(self, model: "Model", index: int, name: str) -> None:
        self.model = model
        self.index = index
        self.name = name

    def __repr__(self) -> str:
        return f"VariableHandle({self.name!r})"

    @property
    def lower_bound(self) -> float:
        return self.model.variable_bounds(self)[0]

    @property
    def upper_bound(self) -> float:
        return self.model.variable_bounds(self)[1]

    def value(self) -> float:
        return self.model.value(self)

    def as_expr(self) -> "LinearExpr":
        return LinearExpr({self: 1.0})

    def __add__(self, other: object) -> "Expression":
        return self.as_expr() + other

    def __radd__(self, other: object) -> "Expression":
        return self.as_expr() + other

    def __sub__(self, other: object) -> "Expression":
        return self.as_expr() - other

    def __rsub__(self, other: object) -> "Expression":
        return (-self.as_expr()) + other

    def __mul__(self, other: object) -> "Expression":
        return self.as_expr() * other

    def __rmul__(self, other: object) -> "Expression":
        return self.as_expr() * other

    def __truediv__(self, other: object) -> "Expression":
        return self.as_expr() / other

    def __neg__(self) -> "LinearExpr":
        return -self.as_expr()

    def __le__(self, other: object) -> "ConstraintExpr":
        return self.as_expr() <= other

    def __ge__(self, other: object) -> "ConstraintExpr":
        return self.as_expr() >= other


class ConstraintHandle:
    """Reference to one constraint of a model."""

    __slots__ = ("model", "index", "name")

    def __init__(self, model: "Model", index: int, name: str) -> None:
        self.model = model
        self.index = index
        self.name = name

    def __repr__(self) -> str:
        return f"ConstraintHandle({self.name!r})"

    def dual(self) -> float:
        return self.model.dual(self)


def _is_scalar(value: object) -> bool:
    return isinstance(value, numbers.Real)


class LinearExpr:
    """Sum of coefficient * variable terms plus a constant."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, terms: dict[VariableHandle, float] | None = None, constant: float = 0.0) -> None:
        self.terms: dict[VariableHandle, float] = dict(terms or {})
        self.constant = float(constant)

    def __repr__(self) -> str:
        parts = [f"{coef:g}*{var.name}" for var, coef in self.terms.items()]
        if self.constant or not parts:
            parts.append(f"{self.constant:g}")
        return " + ".join(parts)

    def copy(self) -> "LinearExpr":
        return LinearExpr(self.terms, self.constant)

    def variables(self) -> Iterator[VariableHandle]:
        yield from self.terms

    def _iadd_term(self, var: VariableHandle, coef: float) -> None:
        self.terms[var] = self.terms.get(var, 0.0) + coef

    def _iadd(self, other: object, sign: float) -> bool:
        if _is_scalar(other):
            self.constant += sign * float(other)  # type: ignore[arg-type]
        elif isinstance(other, VariableHandle):
            self._iadd_term(other, sign)
        elif isinstance(other, LinearExpr):
            for var, coef in other.terms.items():
                self._iadd_term(var, sign * coef)
            self.constant += sign * other.constant
        else:
            return False
        return True

    def __add__(self, other: object) -> "Expression":
        if isinstance(other, QuadExpr):
            return other + self
        result = self.copy()
        if not result._iadd(other, 1.0):
            return NotImplemented
        return result

    def __radd__(self, other: object) -> "Expression":
        return self.__add__(other)

    def __sub__(self, other: object) -> "Expression":
        if isinstance(other, QuadExpr):
            return (-other) + self
        result = self.copy()
        if not result._iadd(other, -1.0):
            return NotImplemented
        return result

    def __rsub__(self, other: object) -> "Expression":
        return (-self) + other

    def __mul__(self, other: object) -> "Expression":
        if _is_scalar(other):
            factor = float(other)  # type: ignore[arg-type]
            return LinearExpr({var: coef * factor for var, coef in self.terms.items()}, self.constant * factor)
        if isinstance(other, VariableHandle):
            other = other.as_expr()
        if isinstance(other, LinearExpr):
            return _product(self, other)
        return NotImplemented

    def __rmul__(self, other: object) -> "Expression":
        return self.__mul__(other)

    def __truediv__(self, other: object) -> "Expression":
        if not _is_scalar(other):
            return NotImplemented
        return self * (1.0 / float(other))  # type: ignore[arg-type]

    def __neg__(self) -> "LinearExpr":
        return self * -1.0  # type: ignore[return-value]

    def __le__(self, other: object) -> "ConstraintExpr":
        return ConstraintExpr.build(self, ConstraintSense.LE, other)

    def __ge__(self, other: object) -> "ConstraintExpr":
        return ConstraintExpr.build(self, ConstraintSense.GE, other)

    def __eq__(self, other: object) -> "ConstraintExpr":  # type: ignore[override]
        return ConstraintExpr.build(self, ConstraintSense.EQ, other)


class QuadExpr:
    """Quadratic terms over variable pairs plus a linear part."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(
        self,
        quad_terms: dict[tuple[VariableHandle, VariableHandle], float] | None = None,
        linear: LinearExpr | None = None,
    ) -> None:
        self.quad_terms: dict[tuple[VariableHandle, VariableHandle], float] = {}
        for (a, b), coef in (quad_terms or {}).items():
            self._iadd_quad(a, b, coef)
        self.linear = linear.copy() if linear is not None else LinearExpr()

    def __repr__(self) -> str:
        parts = [f"{coef:g}*{a.name}*{b.name}" for (a, b), coef in self.quad_terms.items()]
        return " + ".join(parts + [repr(self.linear)])

    @property
    def constant(self) -> float:
        return self.linear.constant

    def copy(self) -> "QuadExpr":
        return QuadExpr(self.quad_terms, self.linear)

    def variables(self) -> Iterator[VariableHandle]:
        for a, b in self.quad_terms:
            yield a
            yield b
        yield from self.linear.variables()

    def _iadd_quad(self, a: VariableHandle, b: VariableHandle, coef: float) -> None:
        key = (a, b) if a.index <= b.index else (b, a)
        self.quad_terms[key] = self.quad_terms.get(key, 0.0) + coef

    def _iadd(self, other: object, sign: float) -> bool:
        if isinstance(other, QuadExpr):
            for (a, b), coef in other.quad_terms.items():
                self._iadd_quad(a, b, sign * coef)
            return self.linear._iadd(other.linear, sign)
        return self.linear._iadd(other, sign)

    def __add__(self, other: object) -> "QuadExpr":
        result = self.copy()
        if not result._iadd(other, 1.0):
            return NotImplemented
        return result

    def __radd__(self, other: object) -> "QuadExpr":
        return self.__add__(other)

    def __sub__(self, other: object) -> "QuadExpr":
        result = self.copy()
        if not result._iadd(other, -1.0):
            return NotImplemented
        return result

    def __rsub__(self, other: object) -> "QuadExpr":
        return (-self) + other

    def __mul__(self, other: object) -> "QuadExpr":
        if not _is_scalar(other):
            raise TypeError("products of degree higher than two are not supported")
        factor = float(other)  # type: ignore[arg-type]
        quad = {key: coef * factor for key, coef in self.quad_terms.items()}
        return QuadExpr(quad, self.linear * factor)  # type: ignore[arg-type]

    def __rmul__(self, other: object) -> "QuadExpr":
        return self.__mul__(other)

    def __truediv__(self, other: object) -> "QuadExpr":
        if not _is_scalar(other):
            return NotImplemented
        return self * (1.0 / float(other))  # type: ignore[arg-type]

    def __neg__(self) -> "QuadExpr":
        return self * -1.0

    def __le__(self, other: object) -> "ConstraintExpr":
        return ConstraintExpr.build(self, ConstraintSense.LE, other)

    def __ge__(self, other: object) -> "ConstraintExpr":
        return ConstraintExpr.build(self, ConstraintSense.GE, other)

    def __eq__(self, other: object) -> "ConstraintExpr":  # type: ignore[override]
        return ConstraintExpr.build(self, ConstraintSense.EQ, other)


Expression = Union[LinearExpr, QuadExpr]


def _product(left: LinearExpr, right: LinearExpr) -> QuadExpr:
    result = QuadExpr()
    for a, ca in left.terms.items():
        for b, cb in right.terms.items():
            result._iadd_quad(a, b, ca * cb)
    for var, coef in left.terms.items():
        result.linear._iadd_term(var, coef * right.constant)
    for var, coef in right.terms.items():
        result.linear._iadd_term(var, coef * left.constant)
    result.linear.constant = left.constant * right.constant
    return result


def as_expression(value: object) -> Expression:
    """Coerce a scalar, variable or expression into an expression."""
    if isinstance(value, (LinearExpr, QuadExpr)):
        return value
    if isinstance(value, VariableHandle):
        return value.as_expr()
    if _is_scalar(value):
        return LinearExpr(constant=float(value))  # type: ignore[arg-type]
    raise TypeError(f"cannot build an expression from {type(value).__name__}")


def quicksum(items: Iterable[object]) -> Expression:
    """Sum expressions in place instead of building one temporary per term."""
    total: Expression = LinearExpr()
    for item in items:
        if isinstance(item, QuadExpr) and isinstance(total, LinearExpr):
            total = QuadExpr(linear=total)
        if not total._iadd(item, 1.0):
            raise TypeError(f"cannot add {type(item).__name__} to an expression")
    return total


class ConstraintExpr:
    """Result of comparing two expressions: ``body sense rhs`` with a constant-free body."""

    def __init__(self, body: Expression, sense: ConstraintSense, rhs: float) -> None:
        self.body = body
        self.sense = sense
        self.rhs = rhs

    def __repr__(self) -> str:
        return f"{self.body!r} {self.sense.value} {self.rhs:g}"

    def __bool__(self) -> bool:
        raise TypeError("constraint expressions have no truth value; pass them to add_constraint()")

    @classmethod
    def build(cls, lhs: object, sense: ConstraintSense, rhs: object) -> "ConstraintExpr":
        body = as_expression(lhs) - as_expression(rhs)
        constant = body.constant
        if isinstance(body, QuadExpr):
            body.linear.constant = 0.0
        else:
            body.constant = 0.0
        return cls(body, sense, -constant)

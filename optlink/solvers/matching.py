"""Capability matching, scoring, and auto backend selection."""

from __future__ import annotations

from dataclasses import dataclass

from optlink.core.ir import IRModel
from optlink.core.spec import VariableType
from optlink.errors import BackendUnavailableError, UnsupportedModelElementError
from optlink.solvers.base import (
    BackendAdapter,
    CapabilitySet,
    ConstraintType,
    ObjectiveType,
    ProblemRequirements,
)

_BACKEND_BASE_PREFERENCE = {
    "highs": 40,
    "ortools": 35,
    "scip": 30,
}


@dataclass(frozen=True)
class MatchReport:
    backend_name: str
    matched: bool
    score: int
    missing: list[str]


def requirements_from_ir(ir_model: IRModel) -> ProblemRequirements:
    objective_type = ObjectiveType.QUADRATIC if ir_model.has_quadratic_objective() else ObjectiveType.LINEAR

    constraint_types: set[ConstraintType] = set()
    if ir_model.has_constraints():
        constraint_types.add(ConstraintType.LINEAR)
    if ir_model.quadratic_constraints:
        constraint_types.add(ConstraintType.QUADRATIC)

    variable_types = ir_model.variable_types()
    has_integer = bool(variable_types.intersection({VariableType.BINARY, VariableType.INTEGER}))

    return ProblemRequirements(
        variable_types=variable_types,
        objective_type=objective_type,
        constraint_types=constraint_types,
        has_integer_variables=has_integer,
    )


def required_capabilities_summary(requirements: ProblemRequirements) -> str:
    variable_types = ",".join(sorted(v.value for v in requirements.variable_types)) or "none"
    constraint_types = ",".join(sorted(c.value for c in requirements.constraint_types)) or "none"
    return (
        f"objective={requirements.objective_type.value}, "
        f"variables={variable_types}, "
        f"constraints={constraint_types}, "
        f"requires_miqp={requirements.objective_type == ObjectiveType.QUADRATIC and requirements.has_integer_variables}"
    )


def missing_capabilities(requirements: ProblemRequirements, capabilities: CapabilitySet) -> list[str]:
    missing: list[str] = []

    missing_variable_types = sorted(v.value for v in (requirements.variable_types - capabilities.variable_types))
    if missing_variable_types:
        missing.append("variable_types: missing " + ",".join(missing_variable_types))

    if requirements.objective_type not in capabilities.objective_types:
        missing.append(f"objective_type: requires {requirements.objective_type.value}")

    missing_constraint_types = sorted(
        c.value for c in (requirements.constraint_types - capabilities.constraint_types)
    )
    if missing_constraint_types:
        missing.append("constraint_types: missing " + ",".join(missing_constraint_types))

    if (
        requirements.objective_type == ObjectiveType.QUADRATIC
        and requirements.has_integer_variables
        and not capabilities.supports_miqp
    ):
        missing.append("supports_miqp: required for integer quadratic models")

    return missing


def match(requirements: ProblemRequirements, capabilities: CapabilitySet) -> bool:
    return len(missing_capabilities(requirements, capabilities)) == 0


def ensure_supported(ir_model: IRModel, adapter: BackendAdapter) -> None:
    """Raise `UnsupportedModelElementError` if `adapter` cannot represent `ir_model`."""
    missing = missing_capabilities(requirements_from_ir(ir_model), adapter.capabilities())
    if missing:
        raise UnsupportedModelElementError(adapter.name, missing)


def backend_score(
    requirements: ProblemRequirements,
    backend_name: str,
    capabilities: CapabilitySet,
    preferred_rank: int | None = None,
) -> int:
    """Rank key: a full match first, then an explicit preference, then duals for LPs."""
    missing = missing_capabilities(requirements, capabilities)
    score = 1000 if not missing else -100 * len(missing)
    if preferred_rank is not None:
        score += 500 - 10 * preferred_rank
    if capabilities.reports_duals and not requirements.has_integer_variables:
        score += 50
    return score + _BACKEND_BASE_PREFERENCE.get(backend_name, 0)


def match_report(
    requirements: ProblemRequirements,
    backend_name: str,
    capabilities: CapabilitySet,
    preferred_rank: int | None = None,
) -> MatchReport:
    missing = missing_capabilities(requirements, capabilities)
    return MatchReport(
        backend_name=backend_name,
        matched=not missing,
        score=backend_score(requirements, backend_name, capabilities, preferred_rank=preferred_rank),
        missing=missing,
    )


def ranked_backends(
    ir_model: IRModel,
    backends: dict[str, BackendAdapter],
    preferred: list[str] | None = None,
) -> list[tuple[BackendAdapter, MatchReport]]:
    requirements = requirements_from_ir(ir_model)
    preferred_rank = {name: idx for idx, name in enumerate(preferred or [])}

    ranked: list[tuple[BackendAdapter, MatchReport]] = []
    for name in sorted(backends):
        adapter = backends[name]
        report = match_report(
            requirements,
            backend_name=name,
            capabilities=adapter.capabilities(),
            preferred_rank=preferred_rank.get(name),
        )
        ranked.append((adapter, report))

    ranked.sort(key=lambda item: item[1].score, reverse=True)
    return ranked


def auto_select_backend(
    ir_model: IRModel,
    backends: dict[str, BackendAdapter],
    preferred: list[str] | None = None,
) -> BackendAdapter:
    requirements = requirements_from_ir(ir_model)

    for name in preferred or []:
        adapter = backends.get(name)
        if adapter is not None and match(requirements, adapter.capabilities()):
            return adapter

    ranked = ranked_backends(ir_model, backends, preferred=preferred)
    for adapter, report in ranked:
        if report.matched:
            return adapter

    required = required_capabilities_summary(requirements)
    closest = ranked[:3]
    if not closest:
        raise BackendUnavailableError(f"No solver backends available. Required capabilities: {required}")

    lines = [f"No compatible backend found. Required capabilities: {required}", "Closest candidates:"]
    for adapter, report in closest:
        missing = "; ".join(report.missing) if report.missing else "none"
        lines.append(f"- {adapter.name}: score={report.score}; missing: {missing}")

    raise UnsupportedModelElementError("auto", lines)

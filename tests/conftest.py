from __future__ import annotations

import math
import threading
from collections.abc import Mapping
from typing import Any

import pytest

from optlink.core.ir import IRModel
from optlink.core.solution import ResultStatus, SolveResult, TerminationStatus
from optlink.core.spec import VariableType
from optlink.solvers import discovery
from optlink.solvers.base import AttachedSession, BackendAdapter, CapabilitySet, ConstraintType, ObjectiveType
from optlink.solvers.options import OptionPolicy, OptionValue, SolverOptions

LINEAR_ONLY = CapabilitySet(
    variable_types={VariableType.BINARY, VariableType.INTEGER, VariableType.CONTINUOUS},
    objective_types={ObjectiveType.LINEAR},
    constraint_types={ConstraintType.LINEAR},
)

QUADRATIC_OBJECTIVE = CapabilitySet(
    variable_types={VariableType.BINARY, VariableType.INTEGER, VariableType.CONTINUOUS},
    objective_types={ObjectiveType.LINEAR, ObjectiveType.QUADRATIC},
    constraint_types={ConstraintType.LINEAR},
    reports_duals=True,
)


class FakeSession(AttachedSession):
    """Evaluates the model at each variable's lower bound (or 0 when unbounded)."""

    def __init__(self, adapter: "FakeBackend", ir_model: IRModel) -> None:
        super().__init__(adapter, ir_model)
        self.handle: dict[str, Any] | None = {"variables": len(ir_model.variables)}
        self.solve_calls: list[tuple[SolverOptions, dict[str, OptionValue]]] = []

    @property
    def native(self) -> Any:
        return self.handle

    def solve(self, options: SolverOptions, extra: Mapping[str, OptionValue]) -> SolveResult:
        adapter = self.adapter
        assert isinstance(adapter, FakeBackend)
        self.solve_calls.append((options, dict(extra)))
        if adapter.started is not None:
            adapter.started.set()
            adapter.release.wait(timeout=5)
        if adapter.fail_on_solve:
            raise RuntimeError("native solver crashed")

        values = {var.name: var.lb if math.isfinite(var.lb) else 0.0 for var in self.ir_model.variables}
        point = [values[var.name] for var in self.ir_model.variables]
        objective = self.ir_model.objective.constant + sum(
            coef * x for coef, x in zip(self.ir_model.objective.linear, point)
        )
        return SolveResult(
            termination_status=TerminationStatus.OPTIMAL,
            primal_status=ResultStatus.FEASIBLE_POINT,
            dual_status=ResultStatus.FEASIBLE_POINT,
            raw_status="fake-optimal",
            objective_value=objective,
            values=values,
            duals={name: 0.0 for name in self.ir_model.constraint_names()},
            solver_name=adapter.name,
            solver_version=adapter.version,
            result_count=1,
        )

    def _release(self) -> None:
        self.handle = None
        assert isinstance(self.adapter, FakeBackend)
        self.adapter.released += 1


class FakeBackend(BackendAdapter):
    version = "test"

    def __init__(
        self,
        name: str = "fake",
        capability_set: CapabilitySet | None = None,
        option_policy: OptionPolicy = OptionPolicy.RAISE,
    ) -> None:
        self.name = name
        self.option_policy = option_policy
        self._capability_set = capability_set or LINEAR_ONLY
        self.sessions: list[FakeSession] = []
        self.released = 0
        self.fail_on_solve = False
        self.started: threading.Event | None = None
        self.release = threading.Event()

    def capabilities(self) -> CapabilitySet:
        return self._capability_set

    def _attach(self, ir_model: IRModel) -> FakeSession:
        session = FakeSession(self, ir_model)
        self.sessions.append(session)
        return session


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    monkeypatch.setenv("OPTLINK_HOME", str(tmp_path / "optlink-home"))
    monkeypatch.delenv("OPTLINK_DEFAULT_BACKEND", raising=False)
    return tmp_path / "optlink-home"


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registered_backends(monkeypatch):
    """Replace backend discovery with the fakes passed to the returned function."""

    def register(*backends: FakeBackend) -> None:
        factories = [lambda backend=backend: backend for backend in backends]
        monkeypatch.setattr(discovery, "_BACKEND_FACTORIES", factories)
        monkeypatch.setattr(discovery, "_BUILTINS_REGISTERED", True)
        monkeypatch.setattr(discovery, "_discover_entry_point_backends", lambda: {})

    return register

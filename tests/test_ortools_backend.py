import pytest

pytest.importorskip("ortools.linear_solver.pywraplp")

from optlink import Model, ResultStatus, TerminationStatus, UnsupportedOptionError  # noqa: E402

pytestmark = pytest.mark.integration


def test_lp_optimum() -> None:
    model = Model(backend="ortools")
    x = model.add_variable(0, 1, name="x")
    y = model.add_variable(0, 1, name="y")
    model.add_constraint(x + y <= 1)
    model.set_objective(x + 2 * y, "max")
    model.solve()

    assert model.termination_status() == TerminationStatus.OPTIMAL
    assert model.value(y) == pytest.approx(1.0)
    assert model.objective_value() == pytest.approx(2.0)
    assert model.dual_status() == ResultStatus.NO_SOLUTION


def test_infeasible_lp() -> None:
    model = Model(backend="ortools")
    x = model.add_variable(0, 1, name="x")
    y = model.add_variable(0, 1, name="y")
    model.add_constraint(x + y >= 3)
    model.solve()

    assert model.termination_status() in {
        TerminationStatus.INFEASIBLE,
        TerminationStatus.INFEASIBLE_OR_UNBOUNDED,
    }
    assert model.primal_status() == ResultStatus.NO_SOLUTION


def test_knapsack_mip() -> None:
    model = Model(backend="ortools")
    items = [model.add_variable(vartype="binary", name=f"item{i}") for i in range(3)]
    model.add_constraint(2 * items[0] + 3 * items[1] + items[2] <= 5)
    model.set_objective(5 * items[0] + 4 * items[1] + 3 * items[2], "max")
    model.solve(options={"time_limit_seconds": 10})

    assert model.termination_status() == TerminationStatus.OPTIMAL
    assert model.objective_value() == pytest.approx(9.0)


def test_unknown_options_are_rejected() -> None:
    model = Model(backend="ortools")
    model.add_variable(0, 1, name="x")
    with pytest.raises(UnsupportedOptionError):
        model.solve(options={"presolve": "off"})


class _RecordingSolver:
    def __init__(self, solver) -> None:
        self._solver = solver
        self.time_limits: list[int] = []
        self.thread_counts: list[int] = []

    def SetTimeLimit(self, milliseconds: int) -> None:
        self.time_limits.append(milliseconds)
        self._solver.SetTimeLimit(milliseconds)

    def SetNumThreads(self, count: int) -> bool:
        self.thread_counts.append(count)
        return self._solver.SetNumThreads(count)

    def __getattr__(self, name: str):
        return getattr(self._solver, name)


def test_per_call_options_do_not_carry_into_the_next_solve() -> None:
    model = Model(backend="ortools")
    items = [model.add_variable(vartype="binary", name=f"item{i}") for i in range(3)]
    model.add_constraint(2 * items[0] + 3 * items[1] + items[2] <= 5)
    model.set_objective(5 * items[0] + 4 * items[1] + 3 * items[2], "max")
    model.solve()

    attached = model._session._attached
    recorder = _RecordingSolver(attached._solver)
    attached._solver = recorder

    model.solve(options={"time_limit_seconds": 5, "num_threads": 2})
    model.solve()

    assert recorder.time_limits == [5000, 0]
    assert recorder.thread_counts == [2, 1]
    assert model.termination_status() == TerminationStatus.OPTIMAL

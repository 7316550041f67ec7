import pytest
from pydantic import ValidationError

from optlink import NoSolutionAvailableError, ResultStatus, SolveResult, TerminationStatus


def _optimal() -> SolveResult:
    return SolveResult(
        termination_status=TerminationStatus.OPTIMAL,
        primal_status=ResultStatus.FEASIBLE_POINT,
        dual_status=ResultStatus.FEASIBLE_POINT,
        objective_value=2.0,
        values={"x": 0.0, "y": 1.0},
        duals={"cap": 2.0},
        solver_name="test",
        result_count=1,
    )


def test_result_without_point_cannot_carry_values() -> None:
    with pytest.raises(ValidationError):
        SolveResult(termination_status=TerminationStatus.INFEASIBLE, values={"x": 1.0})
    with pytest.raises(ValidationError):
        SolveResult(
            termination_status=TerminationStatus.OPTIMAL,
            primal_status=ResultStatus.FEASIBLE_POINT,
            duals={"c0": 1.0},
        )


def test_accessors_on_optimal_result() -> None:
    result = _optimal()
    assert result.is_solved_and_feasible()
    assert result.is_solved_and_feasible(dual=True)
    assert result.value("y") == 1.0
    assert result.objective() == 2.0
    assert result.dual("cap") == 2.0
    with pytest.raises(KeyError):
        result.value("z")


def test_accessors_without_solution() -> None:
    result = SolveResult(termination_status=TerminationStatus.INFEASIBLE, raw_status="Infeasible")
    assert not result.has_values()
    assert not result.is_solved_and_feasible()
    with pytest.raises(NoSolutionAvailableError):
        result.value("x")
    with pytest.raises(NoSolutionAvailableError):
        result.objective()
    with pytest.raises(NoSolutionAvailableError):
        result.dual("c0")


def test_mark_stale_returns_a_copy() -> None:
    result = _optimal()
    stale = result.mark_stale()
    assert stale.stale
    assert not result.stale
    assert stale.values == result.values


def test_termination_status_groups() -> None:
    assert TerminationStatus.TIME_LIMIT.is_limit()
    assert not TerminationStatus.OPTIMAL.is_limit()
    assert TerminationStatus.NUMERICAL_ERROR.is_error()
    assert TerminationStatus.OTHER_ERROR.is_error()
    assert not TerminationStatus.INFEASIBLE.is_error()

import pytest

from optlink.core.ir import IRConstraintMatrix, IRModel, IRObjective, IRVariable
from optlink.core.spec import ConstraintSense, ObjectiveSense, VariableType
from optlink.errors import BackendUnavailableError, UnsupportedModelElementError
from optlink.solvers.base import ConstraintType, ObjectiveType
from optlink.solvers.matching import (
    auto_select_backend,
    ensure_supported,
    missing_capabilities,
    backend_score,
    ranked_backends,
    requirements_from_ir,
)

from conftest import LINEAR_ONLY, QUADRATIC_OBJECTIVE, FakeBackend


def _ir_model(*, quadratic: bool = False, integer: bool = False) -> IRModel:
    vartype = VariableType.INTEGER if integer else VariableType.CONTINUOUS
    return IRModel(
        variables=[
            IRVariable(index=0, name="x0", vartype=vartype, lb=0, ub=4),
            IRVariable(index=1, name="x1", vartype=VariableType.CONTINUOUS, lb=0, ub=4),
        ],
        objective=IRObjective(
            sense=ObjectiveSense.MIN,
            linear=[1.0, 1.0],
            q_i=[0] if quadratic else [],
            q_j=[1] if quadratic else [],
            q_v=[1.0] if quadratic else [],
        ),
        constraints=IRConstraintMatrix(
            num_rows=1,
            names=["c0"],
            senses=[ConstraintSense.GE],
            rhs=[1.0],
            row_indices=[0, 0],
            col_indices=[0, 1],
            values=[1.0, 1.0],
        ),
    )


def test_requirements_from_ir() -> None:
    requirements = requirements_from_ir(_ir_model(quadratic=True, integer=True))
    assert requirements.objective_type == ObjectiveType.QUADRATIC
    assert requirements.constraint_types == {ConstraintType.LINEAR}
    assert requirements.variable_types == {VariableType.INTEGER, VariableType.CONTINUOUS}
    assert requirements.has_integer_variables


def test_missing_capabilities_lists_each_gap() -> None:
    requirements = requirements_from_ir(_ir_model(quadratic=True, integer=True))
    missing = missing_capabilities(requirements, LINEAR_ONLY)
    assert missing == [
        "objective_type: requires quadratic",
        "supports_miqp: required for integer quadratic models",
    ]

    missing = missing_capabilities(requirements, QUADRATIC_OBJECTIVE)
    assert missing == ["supports_miqp: required for integer quadratic models"]


def test_ensure_supported_raises_with_backend_name() -> None:
    with pytest.raises(UnsupportedModelElementError) as excinfo:
        ensure_supported(_ir_model(quadratic=True), FakeBackend("lp"))
    assert excinfo.value.backend == "lp"
    ensure_supported(_ir_model(), FakeBackend("lp"))


def test_auto_select_backend_prefers_compatible_backend() -> None:
    backends = {
        "lp": FakeBackend("lp"),
        "qp": FakeBackend("qp", capability_set=QUADRATIC_OBJECTIVE),
    }
    assert auto_select_backend(_ir_model(quadratic=True), backends).name == "qp"
    assert auto_select_backend(_ir_model(), backends, preferred=["lp"]).name == "lp"

    ranked = ranked_backends(_ir_model(quadratic=True), backends)
    assert [report.backend_name for _, report in ranked] == ["qp", "lp"]
    assert ranked[0][1].matched and not ranked[1][1].matched


def test_auto_select_backend_reports_closest_candidates() -> None:
    with pytest.raises(UnsupportedModelElementError) as excinfo:
        auto_select_backend(_ir_model(quadratic=True), {"lp": FakeBackend("lp")})
    assert "Closest candidates" in str(excinfo.value)

    with pytest.raises(BackendUnavailableError):
        auto_select_backend(_ir_model(), {})


def test_backend_score_orders_match_then_preference_then_duals() -> None:
    linear = requirements_from_ir(_ir_model())
    quadratic = requirements_from_ir(_ir_model(quadratic=True))

    assert backend_score(quadratic, "lp", LINEAR_ONLY) < 0
    assert backend_score(linear, "lp", LINEAR_ONLY) < backend_score(linear, "qp", QUADRATIC_OBJECTIVE)
    assert backend_score(linear, "qp", QUADRATIC_OBJECTIVE) < backend_score(
        linear, "lp", LINEAR_ONLY, preferred_rank=0
    )

    integer = requirements_from_ir(_ir_model(integer=True))
    assert backend_score(integer, "lp", LINEAR_ONLY) == backend_score(integer, "qp", QUADRATIC_OBJECTIVE)

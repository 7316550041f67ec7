import logging
import threading

import pytest

from optlink import (
    Model,
    NoSolutionAvailableError,
    NotAttachedError,
    SolveInProgressError,
    SolverFailureError,
    TerminationStatus,
    UnsupportedModelElementError,
)
from optlink.config import set_default_backend
from optlink.core.solution import ResultStatus
from optlink.session import AttachmentMode, SessionState

from conftest import QUADRATIC_OBJECTIVE, FakeBackend


def _small_model(model: Model) -> None:
    x = model.add_variable(1, 4, name="x")
    y = model.add_variable(2, 5, name="y")
    model.add_constraint(x + y >= 1, name="cover")
    model.set_objective(x + y)


def test_automatic_mode_attaches_at_creation(fake_backend: FakeBackend) -> None:
    model = Model(backend=fake_backend)
    assert model.mode == AttachmentMode.AUTOMATIC
    assert model.state == SessionState.ATTACHED
    assert len(fake_backend.sessions) == 1
    assert model.solver_name() == "fake"


def test_automatic_mode_rejects_unsupported_elements_eagerly(fake_backend: FakeBackend) -> None:
    model = Model(backend=fake_backend)
    x = model.add_variable(name="x")
    model.set_objective(x)
    revision = model.revision

    with pytest.raises(UnsupportedModelElementError) as excinfo:
        model.set_objective(x * x)
    assert excinfo.value.backend == "fake"
    assert model.revision == revision
    assert not model.to_ir().has_quadratic_objective()

    with pytest.raises(UnsupportedModelElementError):
        model.add_constraint(x * x <= 1)
    assert model.num_constraints == 0


def test_automatic_mode_mirrors_changes_before_solve(fake_backend: FakeBackend) -> None:
    model = Model(backend=fake_backend)
    _small_model(model)

    result = model.solve()
    assert result.termination_status == TerminationStatus.OPTIMAL
    assert model.value(model.variable_by_name("x")) == 1.0
    assert model.objective_value() == 3.0

    model.solve()
    sessions_after_unchanged = len(fake_backend.sessions)

    z = model.add_variable(7, 9, name="z")
    model.set_objective_coefficient(z, 1)
    model.solve()

    assert len(fake_backend.sessions) == sessions_after_unchanged + 1
    assert fake_backend.sessions[-2].closed
    assert model.objective_value() == 10.0


def test_deferred_mode_needs_a_backend() -> None:
    model = Model()
    _small_model(model)

    with pytest.raises(NotAttachedError):
        model.solve()
    assert model.state == SessionState.UNATTACHED
    assert model.last_result is None


def test_deferred_mode_attaches_on_first_solve(fake_backend: FakeBackend) -> None:
    model = Model()
    x = model.add_variable(0, 1, name="x")
    model.set_objective(x * x)  # accepted: nothing attached to reject it yet

    with pytest.raises(UnsupportedModelElementError):
        model.solve(backend=fake_backend)
    assert model.state == SessionState.UNATTACHED

    model.set_objective(x)
    model.solve(backend=fake_backend)
    assert model.state == SessionState.SOLVED
    assert len(fake_backend.sessions) == 1

    model.solve()
    assert len(fake_backend.sessions) == 1


def test_deferred_mode_uses_configured_default_backend(registered_backends, fake_backend: FakeBackend) -> None:
    registered_backends(fake_backend)
    set_default_backend("fake")

    model = Model()
    _small_model(model)
    result = model.solve()

    assert result.solver_name == "fake"
    assert model.solver_name() == "fake"


def test_auto_backend_picks_a_capable_backend(registered_backends) -> None:
    linear = FakeBackend("linear")
    quadratic = FakeBackend("quadratic", capability_set=QUADRATIC_OBJECTIVE)
    registered_backends(linear, quadratic)

    model = Model()
    x = model.add_variable(0, 1, name="x")
    model.set_objective(x * x + x)

    result = model.solve(backend="auto")
    assert result.solver_name == "quadratic"


def test_manual_mode_requires_attach() -> None:
    model = Model(mode="manual")
    _small_model(model)

    with pytest.raises(NotAttachedError):
        model.solve()
    assert model.last_result is None


def test_manual_mode_solves_the_attached_snapshot(fake_backend: FakeBackend, caplog) -> None:
    model = Model(mode="manual")
    _small_model(model)
    model.attach_backend(fake_backend)

    model.add_constraint(model.variable_by_name("x") <= 3, name="late")
    with caplog.at_level(logging.WARNING, logger="optlink.session"):
        model.solve()

    assert "solving the attached snapshot" in caplog.text
    assert len(fake_backend.sessions) == 1
    assert fake_backend.sessions[0].ir_model.constraint_names() == ["cover"]

    model.attach_backend()
    model.solve()
    assert len(fake_backend.sessions) == 2
    assert fake_backend.sessions[0].closed
    assert fake_backend.sessions[1].ir_model.constraint_names() == ["cover", "late"]


def test_manual_mode_does_not_check_elements_after_attach(fake_backend: FakeBackend) -> None:
    model = Model(mode="manual")
    x = model.add_variable(0, 1, name="x")
    model.attach_backend(fake_backend)

    model.set_objective(x * x)
    with pytest.raises(UnsupportedModelElementError):
        model.attach_backend()


def test_manual_mode_rejects_backend_argument_to_solve(fake_backend: FakeBackend) -> None:
    model = Model(mode="manual")
    with pytest.raises(ValueError):
        model.solve(backend=fake_backend)


def test_detach_releases_native_state_and_reattach_is_equivalent(fake_backend: FakeBackend) -> None:
    model = Model(mode="manual")
    _small_model(model)
    model.attach_backend(fake_backend)
    first = model.solve()

    model.detach_backend()
    assert model.state == SessionState.UNATTACHED
    assert fake_backend.sessions[0].closed
    assert fake_backend.released == 1
    with pytest.raises(NotAttachedError):
        model.native_backend()

    model.attach_backend(fake_backend)
    second = model.solve()
    assert second.values == first.values
    assert second.objective_value == first.objective_value
    assert second.termination_status == first.termination_status


def test_set_backend_switches_attachment(fake_backend: FakeBackend) -> None:
    other = FakeBackend("other")
    model = Model(backend=fake_backend)
    _small_model(model)
    model.solve()

    model.set_backend(other)
    assert fake_backend.sessions[-1].closed
    assert len(other.sessions) == 1
    assert model.solve().solver_name == "other"


def test_backend_failure_moves_to_error_state(fake_backend: FakeBackend) -> None:
    model = Model(backend=fake_backend)
    _small_model(model)
    x = model.variable_by_name("x")
    model.solve()

    fake_backend.fail_on_solve = True
    with pytest.raises(SolverFailureError) as excinfo:
        model.solve()

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert model.state == SessionState.ERROR
    assert model.termination_status() == TerminationStatus.OTHER_ERROR
    assert model.primal_status() == ResultStatus.NO_SOLUTION
    assert fake_backend.sessions[-1].closed
    assert model.last_result is not None and model.last_result.stale
    with pytest.raises(NoSolutionAvailableError):
        model.value(x)

    fake_backend.fail_on_solve = False
    model.solve()
    assert model.state == SessionState.SOLVED
    assert model.value(x) == 1.0
    assert not model.last_result.stale


def test_concurrent_solve_and_mutation_are_rejected(fake_backend: FakeBackend) -> None:
    model = Model(backend=fake_backend)
    _small_model(model)
    fake_backend.started = threading.Event()

    worker = threading.Thread(target=model.solve)
    worker.start()
    try:
        assert fake_backend.started.wait(timeout=5)
        with pytest.raises(SolveInProgressError):
            model.solve()
        with pytest.raises(SolveInProgressError):
            model.add_variable(name="late")
    finally:
        fake_backend.release.set()
        worker.join(timeout=5)

    assert model.state == SessionState.SOLVED
    assert model.num_variables == 2


class _SlowAttachBackend(FakeBackend):
    def __init__(self) -> None:
        super().__init__("slow")
        self.attaching: threading.Event | None = None

    def _attach(self, ir_model):
        if self.attaching is not None:
            self.attaching.set()
            self.release.wait(timeout=5)
        return super()._attach(ir_model)


def test_mutation_during_remirror_is_rejected_and_later_changes_reach_backend() -> None:
    backend = _SlowAttachBackend()
    model = Model(backend=backend)
    _small_model(model)
    backend.attaching = threading.Event()

    worker = threading.Thread(target=model.solve)
    worker.start()
    try:
        assert backend.attaching.wait(timeout=5)
        with pytest.raises(SolveInProgressError):
            model.add_variable(7, 9, name="late")
    finally:
        backend.release.set()
        worker.join(timeout=5)

    assert model.num_variables == 2
    assert not model.last_result.stale

    backend.attaching = None
    late = model.add_variable(7, 9, name="late")
    model.solve()
    assert model.value(late) == 7.0
    assert backend.sessions[-1].ir_model.variable_names() == ["x", "y", "late"]

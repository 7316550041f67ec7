import pytest

from optlink import BackendUnavailableError, with_options
from optlink.solvers.discovery import BackendSpec, discover_backends, get_backend, resolve_backend

from conftest import FakeBackend


def test_with_options_binds_defaults() -> None:
    spec = with_options("highs", presolve="off", time_limit_seconds=5)
    assert isinstance(spec, BackendSpec)
    assert spec.name == "highs"
    assert spec.options == {"presolve": "off", "time_limit_seconds": 5}


def test_resolve_backend_accepts_adapters_and_specs() -> None:
    backend = FakeBackend()
    assert resolve_backend(backend) == (backend, {})
    assert resolve_backend(with_options(backend, verbosity=1)) == (backend, {"verbosity": 1})
    with pytest.raises(TypeError):
        resolve_backend(42)  # type: ignore[arg-type]


def test_registered_backends_are_discovered(registered_backends) -> None:
    backend = FakeBackend("custom")
    registered_backends(backend)

    assert discover_backends() == {"custom": backend}
    assert get_backend("custom") is backend


def test_unknown_backend_lists_available_ones(registered_backends) -> None:
    registered_backends(FakeBackend("custom"))
    with pytest.raises(BackendUnavailableError) as excinfo:
        get_backend("gurobi")
    assert "custom" in str(excinfo.value)

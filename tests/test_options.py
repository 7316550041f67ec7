import logging

import pytest

from optlink import InvalidOptionValueError, Model, UnsupportedOptionError, with_options
from optlink.config import set_backend_defaults
from optlink.solvers.options import OptionPolicy, SolverOptions, merge_options, validate_options

from conftest import FakeBackend


def test_merge_options_later_layers_win() -> None:
    merged = merge_options({"a": 1, "b": 1}, None, {"b": 2}, {"c": 3})
    assert merged == {"a": 1, "b": 2, "c": 3}


def test_raise_policy_rejects_unknown_keys() -> None:
    with pytest.raises(UnsupportedOptionError) as excinfo:
        validate_options("strict", SolverOptions, OptionPolicy.RAISE, {"time_limit_seconds": 1, "bogus": 1})
    assert excinfo.value.keys == ["bogus"]
    assert isinstance(excinfo.value, KeyError)
    assert "bogus" in str(excinfo.value)


def test_ignore_policy_drops_unknown_keys_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="optlink.solvers.options"):
        parsed, extras = validate_options("lenient", SolverOptions, OptionPolicy.IGNORE, {"bogus": 1, "verbosity": 2})
    assert parsed.verbosity == 2
    assert extras == {}
    assert "bogus" in caplog.text


def test_passthrough_policy_returns_unknown_keys() -> None:
    parsed, extras = validate_options(
        "native", SolverOptions, OptionPolicy.PASSTHROUGH, {"presolve": "off", "time_limit_seconds": 2}
    )
    assert parsed.time_limit_seconds == 2.0
    assert extras == {"presolve": "off"}


@pytest.mark.parametrize(
    "options",
    [
        {"time_limit_seconds": -1},
        {"verbosity": "loud"},
        {"time_limit_seconds": [1, 2]},
    ],
)
def test_invalid_values_are_rejected(options: dict[str, object]) -> None:
    with pytest.raises(InvalidOptionValueError):
        validate_options("any", SolverOptions, OptionPolicy.RAISE, options)


def test_options_are_validated_before_the_backend_runs() -> None:
    backend = FakeBackend()
    model = Model(backend=backend)
    model.add_variable(0, 1, name="x")

    with pytest.raises(UnsupportedOptionError):
        model.solve(options={"bogus": True})
    assert backend.sessions[-1].solve_calls == []
    assert model.last_result is None


def test_option_layers_in_precedence_order() -> None:
    backend = FakeBackend(option_policy=OptionPolicy.PASSTHROUGH)
    set_backend_defaults("fake", {"threads": 1, "time_limit_seconds": 100, "verbosity": 3})

    model = Model(backend=with_options(backend, threads=2, time_limit_seconds=50))
    model.add_variable(0, 1, name="x")
    model.set_time_limit(10)
    model.set_silent()
    model.solve(options={"threads": 4})

    parsed, extras = backend.sessions[-1].solve_calls[-1]
    assert parsed.time_limit_seconds == 10.0
    assert parsed.verbosity == 0
    assert extras == {"threads": 4}

    model.set_time_limit(None)
    model.solve()
    parsed, extras = backend.sessions[-1].solve_calls[-1]
    assert parsed.time_limit_seconds == 50.0
    assert extras == {"threads": 2}

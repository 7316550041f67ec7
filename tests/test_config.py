from pathlib import Path

import pytest

from optlink.config import get_backend_defaults, get_default_backend, set_backend_defaults, set_default_backend


def test_default_backend_round_trip(isolated_config: Path) -> None:
    assert get_default_backend() is None

    set_default_backend(" highs ")
    assert get_default_backend() == "highs"
    assert (isolated_config / "config.json").exists()

    set_default_backend(None)
    assert get_default_backend() is None

    with pytest.raises(ValueError):
        set_default_backend("  ")


def test_environment_overrides_config_file(monkeypatch) -> None:
    set_default_backend("highs")
    monkeypatch.setenv("OPTLINK_DEFAULT_BACKEND", "scip")
    assert get_default_backend() == "scip"


def test_backend_defaults_are_kept_per_backend() -> None:
    set_backend_defaults("highs", {"presolve": "off"})
    set_backend_defaults("scip", {"limits/nodes": 10})

    assert get_backend_defaults("highs") == {"presolve": "off"}
    assert get_backend_defaults("scip") == {"limits/nodes": 10}
    assert get_backend_defaults("ortools") == {}

    set_backend_defaults("highs", None)
    assert get_backend_defaults("highs") == {}


def test_unreadable_config_is_treated_as_empty(isolated_config: Path) -> None:
    isolated_config.mkdir(parents=True)
    (isolated_config / "config.json").write_text("{not json", encoding="utf-8")
    assert get_default_backend() is None
    assert get_backend_defaults("highs") == {}

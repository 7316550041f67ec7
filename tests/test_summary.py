from rich.console import Console

from optlink import Model, solution_summary

from conftest import FakeBackend


def _render(table) -> str:
    console = Console(record=True, width=120)
    console.print(table)
    return console.export_text()


def test_summary_before_solve() -> None:
    text = _render(solution_summary(Model("pending")))
    assert "pending" in text
    assert "OptimizeNotCalled" in text


def test_summary_lists_statuses_and_values() -> None:
    model = Model("demo", FakeBackend())
    x = model.add_variable(1, 2, name="x")
    model.set_objective(3 * x)
    model.solve()

    text = _render(solution_summary(model, verbose=True))
    assert "Optimal" in text
    assert "FeasiblePoint" in text
    assert "value[x]" in text
    assert "fake" in text

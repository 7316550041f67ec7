"""Console summary of a model's last solve."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from optlink.core.solution import SolveResult

if TYPE_CHECKING:
    from optlink.core.model import Model


def _fmt(value: float | None) -> str:
    return "" if value is None else f"{value:.6g}"


def solution_summary(source: "Model | SolveResult", *, verbose: bool = False) -> Table:
    """Build a table of statuses and headline numbers for the last solve.

    With ``verbose=True`` the primal values (and duals, when reported) are
    appended as rows.
    """
    if isinstance(source, SolveResult):
        result: SolveResult | None = source
        title = f"Solution summary ({source.solver_name or 'unknown backend'})"
    else:
        result = source.last_result
        title = f"Solution summary: {source.name}"

    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    if result is None:
        table.add_row("Termination status", "OptimizeNotCalled")
        return table

    if not isinstance(source, SolveResult):
        termination = source.termination_status().value
        primal = source.primal_status().value
        dual = source.dual_status().value
    else:
        termination = result.termination_status.value
        primal = result.primal_status.value
        dual = result.dual_status.value

    table.add_row("Solver", f"{result.solver_name} {result.solver_version}".strip())
    table.add_row("Termination status", termination)
    table.add_row("Primal status", primal)
    table.add_row("Dual status", dual)
    table.add_row("Raw status", result.raw_status)
    table.add_row("Result count", str(result.result_count))
    table.add_row("Objective value", _fmt(result.objective_value))
    table.add_row("Objective bound", _fmt(result.objective_bound))
    table.add_row("Relative gap", _fmt(result.relative_gap))
    table.add_row("Solve time (s)", f"{result.solve_time_s:.6g}")
    if result.stale:
        table.add_row("Stale", "[yellow]yes[/yellow]")
    if result.error_message:
        table.add_row("Error", f"[red]{result.error_message}[/red]")

    if verbose:
        for name, value in result.values.items():
            table.add_row(f"value[{name}]", _fmt(value))
        for name, value in result.duals.items():
            table.add_row(f"dual[{name}]", _fmt(value))
    return table


def print_solution_summary(
    source: "Model | SolveResult", *, verbose: bool = False, console: Console | None = None
) -> None:
    (console or Console()).print(solution_summary(source, verbose=verbose))

from optlink.core.expr import ConstraintExpr, ConstraintHandle, LinearExpr, QuadExpr, VariableHandle, quicksum
from optlink.core.ir import IRModel
from optlink.core.model import Model, direct_model
from optlink.core.solution import ResultStatus, SolveResult, TerminationStatus
from optlink.core.spec import ConstraintSense, ObjectiveSense, VariableType
from optlink.core.summary import print_solution_summary, solution_summary

__all__ = [
    "ConstraintExpr",
    "ConstraintHandle",
    "ConstraintSense",
    "IRModel",
    "LinearExpr",
    "Model",
    "ObjectiveSense",
    "QuadExpr",
    "ResultStatus",
    "SolveResult",
    "TerminationStatus",
    "VariableHandle",
    "VariableType",
    "direct_model",
    "print_solution_summary",
    "quicksum",
    "solution_summary",
]

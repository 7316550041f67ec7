"""optlink: solver-agnostic optimization models with pluggable backends."""

from optlink.config import get_default_backend, set_default_backend
from optlink.core import (
    ConstraintHandle,
    LinearExpr,
    Model,
    ObjectiveSense,
    QuadExpr,
    ResultStatus,
    SolveResult,
    TerminationStatus,
    VariableHandle,
    VariableType,
    direct_model,
    print_solution_summary,
    quicksum,
    solution_summary,
)
from optlink.errors import (
    BackendUnavailableError,
    DirectModeError,
    ForeignReferenceError,
    InvalidOptionValueError,
    NoSolutionAvailableError,
    NotAttachedError,
    OptlinkError,
    SolveInProgressError,
    SolverFailureError,
    UnsupportedModelElementError,
    UnsupportedOptionError,
)
from optlink.session import AttachmentMode, SessionState
from optlink.solvers import BackendAdapter, CapabilitySet, discover_backends, get_backend, with_options
from optlink.version import __version__

__all__ = [
    "__version__",
    "AttachmentMode",
    "BackendAdapter",
    "BackendUnavailableError",
    "CapabilitySet",
    "ConstraintHandle",
    "DirectModeError",
    "ForeignReferenceError",
    "InvalidOptionValueError",
    "LinearExpr",
    "Model",
    "NoSolutionAvailableError",
    "NotAttachedError",
    "ObjectiveSense",
    "OptlinkError",
    "QuadExpr",
    "ResultStatus",
    "SessionState",
    "SolveInProgressError",
    "SolveResult",
    "SolverFailureError",
    "TerminationStatus",
    "UnsupportedModelElementError",
    "UnsupportedOptionError",
    "VariableHandle",
    "VariableType",
    "direct_model",
    "discover_backends",
    "get_backend",
    "get_default_backend",
    "print_solution_summary",
    "quicksum",
    "set_default_backend",
    "solution_summary",
    "with_options",
]

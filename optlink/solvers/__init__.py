from optlink.solvers.base import AttachedSession, BackendAdapter, CapabilitySet, DirectStore
from optlink.solvers.discovery import (
    BackendSpec,
    discover_backends,
    get_backend,
    register_backend,
    resolve_backend,
    with_options,
)
from optlink.solvers.matching import (
    auto_select_backend,
    match,
    match_report,
    missing_capabilities,
    ranked_backends,
    requirements_from_ir,
)
from optlink.solvers.options import OptionPolicy, SolverOptions

__all__ = [
    "AttachedSession",
    "BackendAdapter",
    "BackendSpec",
    "CapabilitySet",
    "DirectStore",
    "OptionPolicy",
    "SolverOptions",
    "auto_select_backend",
    "discover_backends",
    "get_backend",
    "match",
    "match_report",
    "missing_capabilities",
    "ranked_backends",
    "register_backend",
    "requirements_from_ir",
    "resolve_backend",
    "with_options",
]

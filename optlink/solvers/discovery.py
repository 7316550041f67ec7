"""Backend discovery for built-in and third-party solver adapters."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from importlib.metadata import entry_points

from optlink.errors import BackendUnavailableError
from optlink.solvers.base import BackendAdapter

logger = logging.getLogger(__name__)

BackendFactory = Callable[[], BackendAdapter | None]

ENTRY_POINT_GROUP = "optlink.backends"

_BACKEND_FACTORIES: list[BackendFactory] = []
_BUILTINS_REGISTERED = False


@dataclass(frozen=True)
class BackendSpec:
    """A backend choice bundled with default options for it."""

    backend: str | BackendAdapter
    options: dict[str, object] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.backend if isinstance(self.backend, str) else self.backend.name


BackendLike = str | BackendAdapter | BackendSpec


def with_options(backend: str | BackendAdapter, **options: object) -> BackendSpec:
    """Bind default options to a backend, e.g. ``with_options("highs", presolve="off")``."""
    return BackendSpec(backend=backend, options=dict(options))


def register_backend(factory: BackendFactory) -> None:
    _BACKEND_FACTORIES.append(factory)


def _register_builtin_backends() -> None:
    global _BUILTINS_REGISTERED
    if _BUILTINS_REGISTERED:
        return

    from optlink.solvers.highs import get_backend as highs_backend
    from optlink.solvers.ortools_mip import get_backend as ortools_backend
    from optlink.solvers.scip import get_backend as scip_backend

    register_backend(highs_backend)
    register_backend(ortools_backend)
    register_backend(scip_backend)
    _BUILTINS_REGISTERED = True


def discover_backends() -> dict[str, BackendAdapter]:
    _register_builtin_backends()
    backends: dict[str, BackendAdapter] = {}

    for factory in _BACKEND_FACTORIES:
        try:
            adapter = factory()
        except ImportError:
            adapter = None
        if adapter is None:
            continue
        backends[adapter.name] = adapter

    backends.update(_discover_entry_point_backends())
    return backends


def _discover_entry_point_backends() -> dict[str, BackendAdapter]:
    """Load adapters that other distributions publish under `optlink.backends`."""
    discovered: dict[str, BackendAdapter] = {}
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            factory = ep.load()
            adapter = factory()
        except ImportError as exc:
            logger.debug("skipping backend entry point '%s': %s", ep.name, exc)
            continue
        if adapter is None:
            continue
        if not isinstance(adapter, BackendAdapter):
            logger.warning("entry point '%s' did not return a BackendAdapter; ignored", ep.name)
            continue
        discovered[adapter.name] = adapter
    return discovered


def get_backend(name: str) -> BackendAdapter:
    backends = discover_backends()
    try:
        return backends[name]
    except KeyError:
        available = ", ".join(sorted(backends)) or "none"
        raise BackendUnavailableError(
            f"backend '{name}' is unknown or not installed (available: {available})"
        ) from None


def resolve_backend(backend: BackendLike) -> tuple[BackendAdapter, dict[str, object]]:
    """Turn a backend name, adapter or `BackendSpec` into an adapter plus bound options."""
    options: dict[str, object] = {}
    if isinstance(backend, BackendSpec):
        options = dict(backend.options)
        backend = backend.backend
    if isinstance(backend, str):
        return get_backend(backend), options
    if isinstance(backend, BackendAdapter):
        return backend, options
    raise TypeError(f"expected a backend name, adapter or BackendSpec, got {type(backend).__name__}")

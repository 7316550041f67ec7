"""Solve session controller: backend attachment modes, solve state machine, result queries."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any

from optlink import config
from optlink.core.solution import ResultStatus, SolveResult, TerminationStatus
from optlink.errors import (
    DirectModeError,
    NoSolutionAvailableError,
    NotAttachedError,
    OptlinkError,
    SolveInProgressError,
    SolverFailureError,
    UnsupportedModelElementError,
)
from optlink.solvers.base import AttachedSession, BackendAdapter, DirectStore, ProblemRequirements
from optlink.solvers.discovery import BackendLike, BackendSpec, discover_backends, resolve_backend
from optlink.solvers.matching import auto_select_backend, missing_capabilities
from optlink.solvers.options import merge_options

if TYPE_CHECKING:
    from optlink.core.model import Model

logger = logging.getLogger(__name__)

AUTO_BACKEND = "auto"


class AttachmentMode(str, Enum):
    """How and when a model gets its backend.

    AUTOMATIC attaches at model creation and mirrors every change before
    each solve. DEFERRED attaches when `solve` is first called. MANUAL
    requires an explicit `attach_backend` call and never re-mirrors on its
    own. DIRECT writes the model straight into solver-native storage.
    """

    AUTOMATIC = "automatic"
    DEFERRED = "deferred"
    MANUAL = "manual"
    DIRECT = "direct"


class SessionState(str, Enum):
    UNATTACHED = "unattached"
    ATTACHED = "attached"
    SOLVED = "solved"
    ERROR = "error"


class SolveSession:
    """Owns the backend attachment of one model.

    The mode is data: every transition below branches on `self.mode`
    instead of dispatching to a subclass per mode.
    """

    def __init__(
        self,
        model: "Model",
        mode: AttachmentMode,
        backend: BackendLike | None = None,
        options: dict[str, object] | None = None,
    ) -> None:
        self.model = model
        self.mode = mode
        self.state = SessionState.UNATTACHED
        self.options: dict[str, object] = dict(options or {})
        self.last_result: SolveResult | None = None

        self._adapter: BackendAdapter | None = None
        self._bound_options: dict[str, object] = {}
        self._attached: AttachedSession | None = None
        self._direct: DirectStore | None = None
        self._synced_revision: int | None = None
        self._lock = threading.Lock()
        self._solving = False

        if mode == AttachmentMode.AUTOMATIC:
            if backend is None:
                raise ValueError("automatic mode needs a backend at model creation")
            self.attach(backend)
        elif mode == AttachmentMode.DIRECT:
            if backend is None:
                raise ValueError("direct mode needs a backend at model creation")
            self._open_direct(backend)
        elif backend is not None:
            self._select(backend)

    # -- introspection -----------------------------------------------------

    @property
    def adapter(self) -> BackendAdapter | None:
        return self._adapter

    @property
    def direct_store(self) -> DirectStore:
        if self._direct is None:
            raise DirectModeError("model is not a direct model")
        return self._direct

    @property
    def solving(self) -> bool:
        return self._solving

    @property
    def is_attached(self) -> bool:
        return self._attached is not None or self._direct is not None

    @property
    def is_stale(self) -> bool:
        """True when the model changed after the attached snapshot was taken."""
        if self._attached is None:
            return False
        return self._synced_revision != self.model.revision

    def native_backend(self) -> Any:
        if self._direct is not None:
            return self._direct.native
        if self._attached is None:
            raise NotAttachedError("no backend is attached to the model")
        return self._attached.native

    def solver_name(self) -> str:
        if self._adapter is None:
            raise NotAttachedError("no backend has been selected for the model")
        return self._adapter.name

    # -- attachment --------------------------------------------------------

    def _select(self, backend: BackendLike) -> BackendAdapter:
        if isinstance(backend, str) and backend == AUTO_BACKEND:
            adapter = auto_select_backend(self.model.to_ir(), discover_backends())
            bound: dict[str, object] = {}
        elif isinstance(backend, BackendSpec) and backend.backend == AUTO_BACKEND:
            adapter = auto_select_backend(self.model.to_ir(), discover_backends())
            bound = dict(backend.options)
        else:
            adapter, bound = resolve_backend(backend)
        self._adapter = adapter
        self._bound_options = bound
        return adapter

    def _open_direct(self, backend: BackendLike) -> None:
        adapter, bound = resolve_backend(backend)
        self._direct = adapter.open_direct()
        self._adapter = adapter
        self._bound_options = bound
        self.state = SessionState.ATTACHED
        logger.info("opened direct model on backend '%s'", adapter.name)

    def attach(self, backend: BackendLike | None = None) -> None:
        """Snapshot the model into native state, replacing any previous attachment."""
        if self.mode == AttachmentMode.DIRECT:
            raise DirectModeError("direct models are bound to their backend for life")

        if backend is not None:
            adapter = self._select(backend)
        elif self._adapter is not None:
            adapter = self._adapter
        else:
            raise NotAttachedError("attach needs a backend; none was given or selected before")

        revision = self.model.revision
        ir_model = self.model.to_ir()
        try:
            session = adapter.attach(ir_model)
        except OptlinkError:
            raise
        except Exception as exc:
            self._fail(exc)
            raise SolverFailureError(f"backend '{adapter.name}' failed to load the model: {exc}") from exc

        self._close_attached()
        self._attached = session
        self._synced_revision = revision
        self.state = SessionState.ATTACHED

    def detach(self) -> None:
        if self.mode == AttachmentMode.DIRECT:
            raise DirectModeError("direct models cannot be detached from their backend")
        self._close_attached()
        self.state = SessionState.UNATTACHED
        logger.info("detached backend from model '%s'", self.model.name)

    def set_backend(self, backend: BackendLike | None) -> None:
        """Swap the selected backend. Automatic mode re-attaches right away."""
        if self.mode == AttachmentMode.DIRECT:
            raise DirectModeError("direct models cannot switch backends")
        self.detach()
        if backend is None:
            self._adapter = None
            self._bound_options = {}
            return
        if self.mode == AttachmentMode.AUTOMATIC:
            self.attach(backend)
        else:
            self._select(backend)

    def _close_attached(self) -> None:
        if self._attached is not None:
            self._attached.close()
            self._attached = None
        self._synced_revision = None

    def _fail(self, exc: BaseException) -> None:
        logger.error("backend failure on model '%s': %s", self.model.name, exc)
        self._close_attached()
        self.state = SessionState.ERROR
        if self.last_result is not None:
            self.last_result = self.last_result.mark_stale()

    # -- mutation guard ----------------------------------------------------

    def check_mutation(self, requirements: ProblemRequirements | None = None) -> None:
        """Called by the model before every mutation."""
        if self._solving or self._lock.locked():
            raise SolveInProgressError(f"model '{self.model.name}' is being solved")
        if requirements is None or self.mode != AttachmentMode.AUTOMATIC or self._adapter is None:
            return
        missing = missing_capabilities(requirements, self._adapter.capabilities())
        if missing:
            raise UnsupportedModelElementError(self._adapter.name, missing)

    # -- solve -------------------------------------------------------------

    def _prepare(self, backend: BackendLike | None) -> None:
        if self.mode == AttachmentMode.MANUAL:
            if backend is not None:
                raise ValueError("manual mode attaches backends only through attach_backend()")
            if self._attached is None:
                raise NotAttachedError("manual mode: call attach_backend() before solve()")
            if self.is_stale:
                logger.warning(
                    "model '%s' changed after attach_backend(); solving the attached snapshot",
                    self.model.name,
                )
            return

        if backend is not None:
            previous = self._adapter
            adapter = self._select(backend)
            if previous is None or adapter.name != previous.name:
                self._close_attached()
            elif adapter is not previous and self._attached is not None:
                self._adapter = previous
        elif self._adapter is None and self.mode == AttachmentMode.DEFERRED:
            default = config.get_default_backend()
            if default is None:
                raise NotAttachedError("solve() needs a backend: pass one or configure a default backend")
            self._select(default)

        if self._attached is None:
            self.attach()
        elif self.is_stale:
            logger.debug("re-mirroring model '%s' into backend '%s'", self.model.name, self.solver_name())
            self.attach()

    def _merged_options(self, options: dict[str, object] | None) -> dict[str, object]:
        assert self._adapter is not None
        return merge_options(
            config.get_backend_defaults(self._adapter.name),
            self._bound_options,
            self.options,
            options,
        )

    def solve(self, backend: BackendLike | None = None, options: dict[str, object] | None = None) -> SolveResult:
        if not self._lock.acquire(blocking=False):
            raise SolveInProgressError(f"model '{self.model.name}' is already being solved")
        try:
            self._solving = True
            if self.mode == AttachmentMode.DIRECT:
                if backend is not None:
                    raise DirectModeError("direct models cannot switch backends")
                result = self._solve_direct(options)
            else:
                self._prepare(backend)
                result = self._solve_attached(options)
            self.last_result = result
            self.state = SessionState.SOLVED
            logger.info(
                "model '%s' solved by '%s': termination=%s primal=%s dual=%s",
                self.model.name,
                result.solver_name,
                result.termination_status.value,
                result.primal_status.value,
                result.dual_status.value,
            )
            return result
        finally:
            self._solving = False
            self._lock.release()

    def _solve_attached(self, options: dict[str, object] | None) -> SolveResult:
        assert self._adapter is not None and self._attached is not None
        parsed, extra = self._adapter.validate_options(self._merged_options(options))
        logger.debug("solving model '%s' with backend '%s'", self.model.name, self._adapter.name)
        try:
            return self._attached.solve(parsed, extra)
        except OptlinkError:
            raise
        except Exception as exc:
            self._fail(exc)
            raise SolverFailureError(f"backend '{self._adapter.name}' failed while solving: {exc}") from exc

    def _solve_direct(self, options: dict[str, object] | None) -> SolveResult:
        assert self._adapter is not None and self._direct is not None
        parsed, extra = self._adapter.validate_options(self._merged_options(options))
        try:
            return self._direct.solve(
                parsed,
                extra,
                variable_names=[v.name for v in self.model.variables()],
                constraint_names=[c.name for c in self.model.constraints()],
            )
        except OptlinkError:
            raise
        except Exception as exc:
            logger.error("direct backend failure on model '%s': %s", self.model.name, exc)
            self.state = SessionState.ERROR
            if self.last_result is not None:
                self.last_result = self.last_result.mark_stale()
            raise SolverFailureError(f"backend '{self._adapter.name}' failed while solving: {exc}") from exc

    def close(self) -> None:
        """Release all native state held by the session."""
        self._close_attached()
        if self._direct is not None:
            self._direct.close()
            self._direct = None
        self.state = SessionState.UNATTACHED

    # -- post-solve queries ------------------------------------------------

    def termination_status(self) -> TerminationStatus:
        if self.state == SessionState.ERROR:
            return TerminationStatus.OTHER_ERROR
        if self.last_result is None:
            return TerminationStatus.OPTIMIZE_NOT_CALLED
        return self.last_result.termination_status

    def primal_status(self) -> ResultStatus:
        if self.state == SessionState.ERROR or self.last_result is None:
            return ResultStatus.NO_SOLUTION
        return self.last_result.primal_status

    def dual_status(self) -> ResultStatus:
        if self.state == SessionState.ERROR or self.last_result is None:
            return ResultStatus.NO_SOLUTION
        return self.last_result.dual_status

    def current_result(self) -> SolveResult:
        """The result the query protocol reads; refuses stale and missing results."""
        if self.state == SessionState.ERROR:
            raise NoSolutionAvailableError("the last solve failed; its results are unavailable")
        if self.last_result is None:
            raise NoSolutionAvailableError("solve() has not been called")
        return self.last_result

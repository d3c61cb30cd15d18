"""Handler for IAMKey CRD."""

from __future__ import annotations

import threading
from typing import Any

import kopf

from ..builders.provider import ClientCache
from ..constants import API_GROUP_VERSION, KIND_IAM_KEY, RESYNC_INTERVAL_SECONDS
from ..reconciler import Reconciler, ReconcileResult
from ..store import KubernetesResourceStore
from ..utils.errors import sanitize_exception
from ..utils.secrets import ConnectionSecretPublisher
from .base import BaseHandler, backoff_delay


class IAMKeyHandler(BaseHandler):
    """Handler for IAMKey resources.

    Every kopf trigger (create, spec update, resume, timer and delete) runs
    the same full reconcile cycle. Cycles for one resource never overlap.
    """

    def __init__(self, reconciler: Reconciler | None = None):
        """Initialize IAMKey handler."""
        super().__init__(KIND_IAM_KEY)
        self._reconciler = reconciler
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def reconciler(self) -> Reconciler:
        if self._reconciler is None:
            self._reconciler = Reconciler(
                store=KubernetesResourceStore(),
                clients=ClientCache(),
                publisher=ConnectionSecretPublisher(),
            )
        return self._reconciler

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(name, threading.Lock())

    def _forget(self, name: str) -> None:
        with self._locks_guard:
            self._locks.pop(name, None)

    def reconcile(self, name: str) -> ReconcileResult:
        """Run one serialized reconcile cycle for ``name``."""
        with self._lock_for(name):
            return self.reconciler.reconcile(name)

    def handle(self, body: dict[str, Any], retry: int = 0) -> None:
        """Reconcile and translate the result for kopf.

        Raises:
            kopf.TemporaryError: The cycle hit a transient error and must be
                retried with backoff
        """
        meta = body.get("metadata", {})
        name = meta.get("name", "")

        def run() -> ReconcileResult:
            result = self.reconcile(name)
            if result.error is not None:
                delay = backoff_delay(retry)
                self.log_warning(
                    meta,
                    f"Retrying in {delay:.0f}s: {sanitize_exception(result.error)}",
                    event="retry",
                    reason="TransientError",
                    retry=retry,
                )
                raise kopf.TemporaryError(sanitize_exception(result.error), delay=delay)
            return result

        result = self.reconcile_with_metrics(body, run)
        if result.requeue_after is None:
            self._forget(name)


# Global handler instance
_handler = IAMKeyHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_IAM_KEY)
@kopf.on.update(API_GROUP_VERSION, KIND_IAM_KEY, field="spec")
@kopf.on.resume(API_GROUP_VERSION, KIND_IAM_KEY)
def handle_iamkey(body: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Handle IAMKey resource reconciliation."""
    _handler.handle(body, retry)


@kopf.timer(
    API_GROUP_VERSION,
    KIND_IAM_KEY,
    interval=RESYNC_INTERVAL_SECONDS,
    initial_delay=RESYNC_INTERVAL_SECONDS,
)
def resync_iamkey(body: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Periodically re-observe the external key to heal drift."""
    _handler.handle(body, retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_IAM_KEY, optional=True)
def handle_iamkey_delete(body: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Handle IAMKey resource deletion.

    The reconcile cycle owns the finalizer, so kopf only observes deletion.
    """
    _handler.handle(body, retry)

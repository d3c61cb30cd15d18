"""Reconciliation engine for IAMKey resources.

Each call to :meth:`Reconciler.reconcile` runs one complete cycle for one
resource: observe the external key, create, recreate or revoke it as needed,
then persist the status. Errors from the provider API never escape a cycle;
they are mapped to conditions and a requeue decision.

Invocations for the same resource name must be serialized by the caller. The
engine keeps no state between invocations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from . import metrics
from .builders.provider import ClientCache
from .constants import (
    ANNOTATION_EXTERNAL_NAME,
    CONTROLLER_NAME,
    FINALIZER,
    KIND_IAM_KEY,
    REASON_CREATE_FAILED,
    REASON_IMMUTABLE_FIELD_CHANGED,
    REASON_INVALID_CONFIGURATION,
    RECONCILE_TIMEOUT_SECONDS,
    RESYNC_INTERVAL_SECONDS,
    STATUS_WRITE_RETRIES,
)
from .logging import log_resource_event
from .models import IAMKey, KeyObservation, KeyRecord, lifecycle_phase
from .resolver import resolve_external_name
from .services.iam.base import KeyAdapter
from .store import ResourceStore
from .tracing import add_span_attribute, trace_span
from .utils.conditions import (
    ConditionSet,
    set_available,
    set_deleting,
    set_reconcile_error,
    set_reconcile_success,
    set_unavailable,
)
from .utils.context import new_correlation_id, with_correlation_id, with_deadline
from .utils.errors import (
    ConfigurationError,
    ConflictError,
    ExternalError,
    NotFoundError,
    PermanentError,
    TransientError,
    sanitize_exception,
)
from .utils.events import (
    emit_drift_detected,
    emit_key_adopted,
    emit_key_already_deleted,
    emit_key_created,
    emit_key_recreated,
    emit_key_revoked,
    emit_reconcile_failed,
    emit_validate_failed,
)
from .utils.secrets import ConnectionSecretPublisher

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconcile cycle.

    ``error`` is set for transient failures the caller should retry with
    backoff. ``requeue_after`` is the delay before the next periodic cycle.
    """

    requeue_after: float | None = None
    error: Exception | None = None


def scope_differs(desired: list[str], observed: list[str]) -> bool:
    """Whether two bucket lists grant a different scope. Order is irrelevant."""
    return sorted(set(desired)) != sorted(set(observed))


class Reconciler:
    """Drives the external IAM key of each IAMKey toward its declared spec."""

    def __init__(
        self,
        store: ResourceStore,
        clients: ClientCache,
        publisher: ConnectionSecretPublisher,
        resync_interval: float = RESYNC_INTERVAL_SECONDS,
        timeout: float = RECONCILE_TIMEOUT_SECONDS,
        write_retries: int = STATUS_WRITE_RETRIES,
    ) -> None:
        self.store = store
        self.clients = clients
        self.publisher = publisher
        self.resync_interval = resync_interval
        self.timeout = timeout
        self.write_retries = max(1, write_retries)

    def reconcile(self, name: str) -> ReconcileResult:
        """Run one reconcile cycle for the named resource."""
        with with_correlation_id(new_correlation_id()), with_deadline(self.timeout):
            with trace_span("reconcile_iam_key", kind=KIND_IAM_KEY, attributes={"iamkey.name": name}):
                result = self._reconcile(name)
                add_span_attribute("iamkey.requeue_after", result.requeue_after or 0)
        return result

    def _reconcile(self, name: str) -> ReconcileResult:
        try:
            key = self.store.get(name)
        except TransientError as e:
            logger.warning(f"Failed to fetch IAMKey {name}: {e}")
            return ReconcileResult(error=e)

        add_span_attribute("iamkey.phase", lifecycle_phase(key).value)
        if key is None:
            logger.debug(f"IAMKey {name} no longer exists")
            return ReconcileResult()

        if key.is_deleting:
            return self._delete(key)

        try:
            key = self._ensure_finalizer(key)
            self._validate(key)
            adapter = self.clients.get(key.provider_config_name)
            if key.observation.key_id:
                return self._observe(key, adapter)
            return self._create(key, adapter, adopt=True)
        except ConfigurationError as e:
            return self._fail_permanently(key, e.reason, str(e))
        except PermanentError as e:
            return self._fail_permanently(key, REASON_INVALID_CONFIGURATION, sanitize_exception(e))
        except TransientError as e:
            return self._fail_transiently(key, e)
        except ExternalError as e:
            return self._fail_transiently(key, TransientError(sanitize_exception(e)))

    def _validate(self, key: IAMKey) -> None:
        """Reject invalid specs and changes to fields fixed at creation."""
        params = key.parameters
        observed = key.observation

        if not params.zone:
            raise ConfigurationError("spec.forProvider.zone is required", REASON_INVALID_CONFIGURATION)
        if not params.buckets:
            raise ConfigurationError(
                "spec.forProvider.services.sos.buckets must list at least one bucket",
                REASON_INVALID_CONFIGURATION,
            )
        if not observed.key_id:
            return
        if observed.zone and params.zone != observed.zone:
            raise ConfigurationError(
                f"zone cannot be changed from {observed.zone} to {params.zone} after the key is created",
                REASON_IMMUTABLE_FIELD_CHANGED,
            )
        if params.key_name and observed.key_name and params.key_name != observed.key_name:
            raise ConfigurationError(
                f"keyName cannot be changed from {observed.key_name} to {params.key_name} after the key is created",
                REASON_IMMUTABLE_FIELD_CHANGED,
            )

    def _observe(self, key: IAMKey, adapter: KeyAdapter) -> ReconcileResult:
        observed = key.observation
        zone = observed.zone or key.parameters.zone
        try:
            record = adapter.fetch_by_id(zone, observed.key_id)
        except NotFoundError:
            self._log(key, logging.WARNING, "drift", "KeyNotFound",
                      f"IAM key {observed.key_id} was deleted outside the operator, recreating it")
            metrics.drift_detected_total.labels(kind=KIND_IAM_KEY, drift_type="deleted").inc()
            emit_drift_detected(key.body, f"IAM key {observed.key_id} no longer exists, recreating it")
            key.observation = KeyObservation()
            return self._create(key, adapter, adopt=False)

        key.observation = record.to_observation()

        if scope_differs(key.parameters.buckets, record.buckets):
            metrics.drift_detected_total.labels(kind=KIND_IAM_KEY, drift_type="bucket_scope").inc()
            return self._recreate(key, adapter, record)

        set_available(key.conditions, f"IAM key {record.key_id} is available")
        set_reconcile_success(key.conditions)
        self._persist_status(key)
        return ReconcileResult(requeue_after=self.resync_interval)

    def _create(self, key: IAMKey, adapter: KeyAdapter, adopt: bool) -> ReconcileResult:
        zone = key.parameters.zone
        buckets = list(key.parameters.buckets)
        external_name = resolve_external_name(key.parameters.key_name, key.external_name, key.name)

        self._report_same_name_keys(key, adapter, zone, external_name)

        published_id = self._published_key_id(key) if adopt else None
        if published_id:
            adopted = self._find_published_key(adapter, published_id, zone, external_name)
            if adopted is not None:
                self._log(key, logging.INFO, "create", "Adopted",
                          f"Adopting IAM key {adopted.key_id} found in the connection secret",
                          key_id=adopted.key_id)
                return self._record_created(key, adopted, external_name, emit=emit_key_adopted)

        try:
            record = adapter.create(zone, external_name, buckets)
        except PermanentError as e:
            metrics.key_operations_total.labels(operation="create", result="failed").inc()
            key.observation = KeyObservation()
            return self._fail_permanently(key, REASON_CREATE_FAILED, f"Failed to create IAM key: {sanitize_exception(e)}")
        except TransientError:
            metrics.key_operations_total.labels(operation="create", result="error").inc()
            raise
        metrics.key_operations_total.labels(operation="create", result="success").inc()

        try:
            self._publish(key, record)
        except ExternalError as e:
            # The secret is only returned once; a key nobody can use is revoked
            self._revoke_unpublished(key, adapter, record)
            raise TransientError(f"Failed to publish connection secret: {e}") from e

        return self._record_created(key, record, external_name, emit=emit_key_created)

    def _recreate(self, key: IAMKey, adapter: KeyAdapter, current: KeyRecord) -> ReconcileResult:
        """Replace a key whose bucket scope no longer matches spec.forProvider.

        Bucket scope cannot be edited in place, so the key is revoked and a
        new one is created. This rotates the credentials.
        """
        self._log(key, logging.INFO, "update", "ScopeChanged",
                  f"Bucket scope of IAM key {current.key_id} changed from {current.buckets} "
                  f"to {key.parameters.buckets}, rotating key")
        try:
            adapter.revoke(current.zone, current.key_id)
        except NotFoundError:
            pass
        metrics.key_operations_total.labels(operation="revoke", result="success").inc()

        key.observation = KeyObservation()
        result = self._create(key, adapter, adopt=False)
        if result.error is None and key.observation.key_id:
            emit_key_recreated(key.body, current.key_id, key.observation.key_id)
        return result

    def _delete(self, key: IAMKey) -> ReconcileResult:
        if not key.has_finalizer:
            return ReconcileResult()

        observed = key.observation
        set_deleting(key.conditions, "IAM key is being deleted")
        try:
            key_id = observed.key_id
            zone = observed.zone or key.parameters.zone
            published_id = None if key_id else self._published_key_id(key)
            if key_id or published_id:
                adapter = self.clients.get(key.provider_config_name)
                if not key_id:
                    # Created by a cycle whose status write was lost
                    external_name = resolve_external_name(key.parameters.key_name, key.external_name, key.name)
                    record = self._find_published_key(adapter, published_id, zone, external_name)
                    key_id = record.key_id if record is not None else ""
                if key_id:
                    self._revoke_for_deletion(key, adapter, zone, key_id)

            if key.connection_secret is not None:
                self.publisher.unpublish(key.connection_secret.name, key.connection_secret.namespace)

            self._update(key, self.store.update, _remove_finalizer)
        except TransientError as e:
            metrics.key_operations_total.labels(operation="revoke", result="error").inc()
            return self._fail_transiently(key, e)
        except (ConfigurationError, PermanentError) as e:
            reason = getattr(e, "reason", REASON_INVALID_CONFIGURATION)
            return self._fail_permanently(key, reason, f"Cannot revoke IAM key: {sanitize_exception(e)}")
        except ExternalError as e:
            return self._fail_transiently(key, TransientError(sanitize_exception(e)))

        self._log(key, logging.INFO, "deletion", "Deleted", "Finalizer removed")
        return ReconcileResult()

    def _revoke_for_deletion(self, key: IAMKey, adapter: KeyAdapter, zone: str, key_id: str) -> None:
        try:
            adapter.revoke(zone, key_id)
        except NotFoundError:
            metrics.key_operations_total.labels(operation="revoke", result="not_found").inc()
            self._log(key, logging.INFO, "deletion", "AlreadyDeleted", f"IAM key {key_id} was already deleted")
            emit_key_already_deleted(key.body, key_id)
            return
        metrics.key_operations_total.labels(operation="revoke", result="success").inc()
        emit_key_revoked(key.body, key_id)

    def _record_created(
        self,
        key: IAMKey,
        record: KeyRecord,
        external_name: str,
        emit: Callable[[dict, str], None],
    ) -> ReconcileResult:
        """Memoize the external name and persist the new observation."""
        if key.external_name != external_name:
            stored = self._update(key, self.store.update, _annotate(external_name))
            stored.conditions = key.conditions
            key = stored

        key.observation = record.to_observation()
        set_available(key.conditions, f"IAM key {record.key_id} is available")
        set_reconcile_success(key.conditions)
        self._persist_status(key)

        emit(key.body, record.key_id)
        self._log(key, logging.INFO, "create", "Created",
                  f"IAM key {record.key_id} ready in {record.zone}", key_id=record.key_id)
        return ReconcileResult(requeue_after=self.resync_interval)

    def _published_key_id(self, key: IAMKey) -> str | None:
        ref = key.connection_secret
        if ref is None:
            return None
        return self.publisher.read_access_key_id(ref.name, ref.namespace) or None

    def _find_published_key(
        self,
        adapter: KeyAdapter,
        key_id: str,
        zone: str,
        external_name: str,
    ) -> KeyRecord | None:
        """Find a key created by an earlier cycle whose status write was lost.

        The connection secret is written before the status, so a key id in it
        that still exists under the expected name belongs to this resource.
        """
        try:
            record = adapter.fetch_by_id(zone, key_id)
        except NotFoundError:
            return None
        if record.name != external_name:
            return None
        return record

    def _report_same_name_keys(self, key: IAMKey, adapter: KeyAdapter, zone: str, external_name: str) -> None:
        try:
            existing = adapter.list_by_name(zone, external_name)
        except ExternalError as e:
            self._log(key, logging.WARNING, "drift", "ListFailed",
                      f"Could not list keys named {external_name}: {sanitize_exception(e)}")
            return
        if existing:
            message = f"{len(existing)} key(s) named {external_name} already exist in {zone}"
            metrics.drift_detected_total.labels(kind=KIND_IAM_KEY, drift_type="same_name").inc()
            self._log(key, logging.WARNING, "drift", "SameNameKeys", message,
                      key_ids=[record.key_id for record in existing])
            emit_drift_detected(key.body, message)

    def _publish(self, key: IAMKey, record: KeyRecord) -> None:
        ref = key.connection_secret
        if ref is None or not record.secret:
            return
        self.publisher.publish(ref.name, ref.namespace, record.key_id, record.secret, owner_name=key.name)

    def _revoke_unpublished(self, key: IAMKey, adapter: KeyAdapter, record: KeyRecord) -> None:
        try:
            adapter.revoke(record.zone, record.key_id)
        except NotFoundError:
            pass
        except ExternalError as e:
            self._log(key, logging.ERROR, "create", "RevokeFailed",
                      f"Failed to revoke unpublished IAM key {record.key_id}: {sanitize_exception(e)}")

    def _ensure_finalizer(self, key: IAMKey) -> IAMKey:
        if key.has_finalizer:
            return key
        return self._update(key, self.store.update, _add_finalizer)

    def _persist_status(self, key: IAMKey) -> IAMKey:
        observation = key.observation
        conditions = key.conditions

        def apply(target: IAMKey) -> None:
            target.observation = observation
            target.conditions = conditions

        stored = self._update(key, self.store.update_status, apply)
        metrics.resource_status_total.labels(
            kind=KIND_IAM_KEY, status=conditions.ready.reason or "Unknown"
        ).inc()
        return stored

    def _update(
        self,
        key: IAMKey,
        write: Callable[[IAMKey], IAMKey],
        mutate: Callable[[IAMKey], None],
    ) -> IAMKey:
        """Apply ``mutate`` and write, re-reading on version conflicts.

        Raises:
            ConflictError: Still conflicting after the retry budget
            TransientError: The resource vanished or the store is unavailable
        """
        current = key
        for attempt in range(1, self.write_retries + 1):
            mutate(current)
            try:
                return write(current)
            except NotFoundError as e:
                raise TransientError(f"IAMKey {key.name} was removed while reconciling") from e
            except TransientError as e:
                if attempt == self.write_retries or not isinstance(e, ConflictError):
                    raise
                logger.info(f"Conflict writing IAMKey {key.name} (attempt {attempt}), re-reading")
                latest = self.store.get(key.name)
                if latest is None:
                    raise TransientError(f"IAMKey {key.name} was removed while reconciling") from e
                current = latest
        raise AssertionError("unreachable")

    def _fail_permanently(self, key: IAMKey, reason: str, message: str) -> ReconcileResult:
        set_unavailable(key.conditions, reason, message)
        set_reconcile_error(key.conditions, message)
        self._log(key, logging.ERROR, "reconcile", reason, message)
        metrics.error_total.labels(kind=KIND_IAM_KEY, error_type=reason).inc()
        emit_validate_failed(key.body, message)
        try:
            self._persist_status(key)
        except TransientError as e:
            return ReconcileResult(error=e)
        except ExternalError as e:
            logger.warning(f"Failed to record failure on IAMKey {key.name}: {e}")
            return ReconcileResult(error=TransientError(f"Failed to persist status: {sanitize_exception(e)}"))
        return ReconcileResult(requeue_after=self.resync_interval)

    def _fail_transiently(self, key: IAMKey, error: TransientError) -> ReconcileResult:
        message = sanitize_exception(error)
        self._log(key, logging.WARNING, "reconcile", "TransientError", message)
        metrics.error_total.labels(kind=KIND_IAM_KEY, error_type=type(error).__name__).inc()
        emit_reconcile_failed(key.body, f"Reconciliation failed: {message}")

        latest = self._get_quietly(key.name)
        if latest is not None:
            set_reconcile_error(latest.conditions, message)
            if key.is_deleting:
                set_deleting(latest.conditions, "IAM key is being deleted")
            try:
                self.store.update_status(latest)
            except ExternalError as e:
                logger.warning(f"Failed to record error on IAMKey {key.name}: {e}")
        return ReconcileResult(error=error)

    def _get_quietly(self, name: str) -> IAMKey | None:
        try:
            return self.store.get(name)
        except TransientError as e:
            logger.warning(f"Failed to re-read IAMKey {name}: {e}")
            return None

    def _log(self, key: IAMKey, level: int, event: str, reason: str, message: str, **kwargs) -> None:
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=KIND_IAM_KEY,
            resource_name=key.name,
            uid=key.uid,
            event=event,
            reason=reason,
            message=message,
            level=level,
            phase=key.phase.value,
            **kwargs,
        )


def _add_finalizer(key: IAMKey) -> None:
    if FINALIZER not in key.finalizers:
        key.finalizers.append(FINALIZER)


def _remove_finalizer(key: IAMKey) -> None:
    key.finalizers = [finalizer for finalizer in key.finalizers if finalizer != FINALIZER]


def _annotate(external_name: str) -> Callable[[IAMKey], None]:
    def apply(key: IAMKey) -> None:
        key.annotations[ANNOTATION_EXTERNAL_NAME] = external_name

    return apply

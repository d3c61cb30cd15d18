"""Handler for ProviderConfig CRD."""

from __future__ import annotations

from typing import Any

import kopf
from kubernetes import client

from .. import metrics
from ..builders.provider import invalidate_provider_config
from ..constants import (
    API_GROUP_VERSION,
    EXOSCALE_API_KEY_NAME,
    EXOSCALE_API_SECRET_NAME,
    KIND_PROVIDER_CONFIG,
    REASON_INVALID_CONFIGURATION,
)
from ..store import KubernetesResourceStore, ResourceStore
from ..tracing import trace_span
from ..utils.conditions import (
    ConditionSet,
    set_available,
    set_reconcile_error,
    set_reconcile_success,
    set_unavailable,
)
from ..utils.errors import ExternalError, sanitize_exception
from ..utils.events import emit_validate_failed
from ..utils.secrets import get_secret_value
from .base import BaseHandler


class ProviderConfigHandler(BaseHandler):
    """Handler for ProviderConfig resources.

    A ProviderConfig only points at the secret holding the Exoscale API
    credentials. Reconciling it checks that secret, drops any client built
    from an earlier revision and reports how many IAMKeys reference it.
    """

    def __init__(self, core_api: client.CoreV1Api | None = None, store: ResourceStore | None = None):
        """Initialize ProviderConfig handler."""
        super().__init__(KIND_PROVIDER_CONFIG)
        self._core_api = core_api
        self._store = store

    @property
    def core_api(self) -> client.CoreV1Api:
        if self._core_api is None:
            self._core_api = client.CoreV1Api()
        return self._core_api

    @property
    def store(self) -> ResourceStore:
        if self._store is None:
            self._store = KubernetesResourceStore()
        return self._store

    def count_users(self, meta: dict[str, Any]) -> int | None:
        """Count the IAMKeys referencing this ProviderConfig, or None if unknown."""
        name = meta.get("name", "")
        try:
            return sum(1 for key in self.store.list() if key.provider_config_name == name)
        except ExternalError as e:
            self.log_warning(meta, f"Could not list IAMKeys: {sanitize_exception(e)}", event="reconcile", reason="ListFailed")
            return None

    def validate_credentials(self, spec: dict[str, Any]) -> None:
        """Check the referenced secret holds both credential keys.

        Raises:
            ValueError: The reference or the secret is incomplete
        """
        secret_ref = spec.get("credentials", {}).get("apiSecretRef", {})
        secret_name = secret_ref.get("name")
        if not secret_name:
            raise ValueError("spec.credentials.apiSecretRef.name is required")
        secret_namespace = secret_ref.get("namespace", "default")
        for key in (EXOSCALE_API_KEY_NAME, EXOSCALE_API_SECRET_NAME):
            if not get_secret_value(self.core_api, secret_namespace, secret_name, key):
                raise ValueError(f"Key '{key}' in secret '{secret_name}' is empty")

    def reconcile(
        self,
        body: dict[str, Any],
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Reconcile ProviderConfig resource."""
        name = meta.get("name", "unknown")
        invalidate_provider_config(name)

        conditions = ConditionSet.from_list(status.get("conditions"))
        with trace_span("reconcile_providerconfig", kind=KIND_PROVIDER_CONFIG, attributes={"providerconfig.name": name}):
            try:
                self.validate_credentials(spec)
            except (ValueError, client.exceptions.ApiException) as e:
                message = f"Invalid credentials: {sanitize_exception(e)}"
                metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
                self.log_error(meta, message, error=e, reason=REASON_INVALID_CONFIGURATION)
                emit_validate_failed(body, message)
                set_unavailable(conditions, REASON_INVALID_CONFIGURATION, message)
                set_reconcile_error(conditions, message)
                self.update_resource_status(patch, meta, False, {"conditions": conditions.to_list()})
                return

        set_available(conditions, "Credentials secret is valid")
        set_reconcile_success(conditions)
        status_data: dict[str, Any] = {"conditions": conditions.to_list()}
        users = self.count_users(meta)
        if users is not None:
            status_data["users"] = users
        self.log_info(meta, "ProviderConfig is ready", event="reconcile", reason="Available", users=users)
        self.update_resource_status(patch, meta, True, status_data)

    def delete(self, meta: dict[str, Any]) -> None:
        """Handle ProviderConfig resource deletion."""
        self.log_info(meta, "ProviderConfig is being deleted", event="deletion", reason="Deletion")
        users = self.count_users(meta)
        if users:
            self.log_warning(
                meta,
                f"ProviderConfig is deleted while {users} IAMKey(s) still reference it",
                event="deletion",
                reason="InUse",
                users=users,
            )
        invalidate_provider_config(meta.get("name", ""))


# Global handler instance
_handler = ProviderConfigHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
@kopf.on.update(API_GROUP_VERSION, KIND_PROVIDER_CONFIG, field="spec")
@kopf.on.resume(API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
def handle_provider_config(
    body: dict[str, Any],
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle ProviderConfig resource reconciliation."""
    _handler.reconcile_with_metrics(body, lambda: _handler.reconcile(body, spec, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_PROVIDER_CONFIG, optional=True)
def handle_provider_config_delete(meta: dict[str, Any], **kwargs: Any) -> None:
    """Handle ProviderConfig resource deletion."""
    _handler.delete(meta)

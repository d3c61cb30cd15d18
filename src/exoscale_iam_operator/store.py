"""Cluster-persisted state of IAMKey resources."""

from __future__ import annotations

import logging
import time
from typing import Protocol

from kubernetes import client

from . import metrics
from .constants import API_GROUP, API_VERSION, KIND_IAM_KEY, PLURAL_IAM_KEYS
from .models import IAMKey
from .utils.errors import ConflictError, classify_status_code
from .utils.rate_limit import rate_limit_k8s

logger = logging.getLogger(__name__)


class ResourceStore(Protocol):
    """Get/list and conditional writes of IAMKey resources.

    Writes carry the resourceVersion that was read; a newer version on the
    server raises ConflictError.
    """

    def get(self, name: str) -> IAMKey | None:
        """Return the resource, or None if it no longer exists."""
        ...

    def list(self) -> list[IAMKey]:
        """Return all resources."""
        ...

    def update(self, key: IAMKey) -> IAMKey:
        """Write metadata (annotations, finalizers) and return the stored resource."""
        ...

    def update_status(self, key: IAMKey) -> IAMKey:
        """Write the status subresource and return the stored resource."""
        ...


class KubernetesResourceStore:
    """ResourceStore backed by the Kubernetes custom objects API."""

    def __init__(self, api: client.CustomObjectsApi | None = None) -> None:
        self._api = api

    @property
    def api(self) -> client.CustomObjectsApi:
        if self._api is None:
            self._api = client.CustomObjectsApi()
        return self._api

    def _call(self, operation: str, fn, **kwargs):
        start_time = time.time()
        try:
            result = rate_limit_k8s(fn)(group=API_GROUP, version=API_VERSION, plural=PLURAL_IAM_KEYS, **kwargs)
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return result
        except client.exceptions.ApiException as e:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            if e.status == 404 and operation == "get_iamkey":
                return None
            error_cls = classify_status_code(e.status)
            if error_cls is ConflictError:
                metrics.store_conflicts_total.labels(kind=KIND_IAM_KEY).inc()
            raise error_cls(f"{operation} failed: {e.status} {e.reason}") from e
        finally:
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(
                time.time() - start_time
            )

    def get(self, name: str) -> IAMKey | None:
        body = self._call("get_iamkey", self.api.get_cluster_custom_object, name=name)
        if body is None:
            return None
        return IAMKey.from_body(body)

    def list(self) -> list[IAMKey]:
        response = self._call("list_iamkeys", self.api.list_cluster_custom_object)
        return [IAMKey.from_body(item) for item in response.get("items", [])]

    def update(self, key: IAMKey) -> IAMKey:
        body = self._call(
            "replace_iamkey",
            self.api.replace_cluster_custom_object,
            name=key.name,
            body=key.to_body(),
        )
        return IAMKey.from_body(body)

    def update_status(self, key: IAMKey) -> IAMKey:
        body = self._call(
            "replace_iamkey_status",
            self.api.replace_cluster_custom_object_status,
            name=key.name,
            body=key.to_body(),
        )
        return IAMKey.from_body(body)

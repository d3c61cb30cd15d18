"""Utilities for managing Kubernetes secrets."""

from __future__ import annotations

import base64
import logging
from typing import Any

from kubernetes import client

from ..constants import (
    ACCESS_KEY_ID_NAME,
    CONTROLLER_NAME,
    FIELD_MANAGER,
    LABEL_MANAGED_BY,
    LABEL_OWNER_NAME,
    LABEL_RESOURCE_TYPE,
    SECRET_ACCESS_KEY_NAME,
)
from .errors import ExternalError, NotFoundError, classify_status_code
from .rate_limit import rate_limit_k8s

logger = logging.getLogger(__name__)


def _decode(value: Any) -> str:
    # Handle both string and bytes (different versions of kubernetes client)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True).decode("utf-8")
        except ValueError:
            return value
    return value.decode("utf-8")


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
) -> str:
    """Get a value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret

    Returns:
        Secret value

    Raises:
        ValueError: If secret or key not found
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise

    data = secret.data or {}
    if key not in data:
        raise ValueError(f"Key '{key}' not found in secret '{secret_name}'")
    return _decode(data[key])


def read_secret_data(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
) -> dict[str, str]:
    """Read all data from a Kubernetes secret.

    Raises:
        ValueError: If secret not found
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise
    return {key: _decode(value) for key, value in (secret.data or {}).items()}


def _classified(e: client.exceptions.ApiException, action: str) -> ExternalError:
    error_cls = classify_status_code(e.status)
    return error_cls(f"Failed to {action}: {e.status} {e.reason}")


class ConnectionSecretPublisher:
    """Writes IAM key credentials to the connection secret of a resource.

    Kubernetes API failures are raised as classified ExternalError subclasses.
    """

    def __init__(self, api: client.CoreV1Api | None = None) -> None:
        self._api = api

    @property
    def api(self) -> client.CoreV1Api:
        if self._api is None:
            self._api = client.CoreV1Api()
        return self._api

    def publish(
        self,
        name: str,
        namespace: str,
        access_key_id: str,
        secret_access_key: str,
        owner_name: str,
    ) -> None:
        """Create the connection secret, or overwrite it if it already exists."""
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=namespace,
                labels={
                    LABEL_MANAGED_BY: CONTROLLER_NAME,
                    LABEL_RESOURCE_TYPE: "iam-key",
                    LABEL_OWNER_NAME: owner_name,
                },
            ),
            type="connection.crossplane.io/v1alpha1",
            string_data={
                ACCESS_KEY_ID_NAME: access_key_id,
                SECRET_ACCESS_KEY_NAME: secret_access_key,
            },
        )
        try:
            rate_limit_k8s(self.api.create_namespaced_secret)(
                namespace=namespace,
                body=body,
                field_manager=FIELD_MANAGER,
            )
            return
        except client.exceptions.ApiException as e:
            if e.status != 409:
                raise _classified(e, f"create secret {namespace}/{name}") from e

        logger.info(f"Secret {namespace}/{name} already exists, updating credentials")
        try:
            rate_limit_k8s(self.api.patch_namespaced_secret)(
                name=name,
                namespace=namespace,
                body=body,
                field_manager=FIELD_MANAGER,
            )
        except client.exceptions.ApiException as e:
            raise _classified(e, f"update secret {namespace}/{name}") from e

    def unpublish(self, name: str, namespace: str) -> None:
        """Delete the connection secret. A missing secret is not an error."""
        try:
            rate_limit_k8s(self.api.delete_namespaced_secret)(name=name, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return
            raise _classified(e, f"delete secret {namespace}/{name}") from e

    def read_access_key_id(self, name: str, namespace: str) -> str | None:
        """Return the access key id stored in the connection secret, if any."""
        try:
            data = read_secret_data(self.api, namespace, name)
        except ValueError:
            return None
        except client.exceptions.ApiException as e:
            error = _classified(e, f"read secret {namespace}/{name}")
            if isinstance(error, NotFoundError):
                return None
            raise error from e
        return data.get(ACCESS_KEY_ID_NAME) or None

"""Builder and cache for Exoscale IAM clients."""

from __future__ import annotations

import os
import time
from typing import Any, Callable

from kubernetes import client

from .. import metrics
from ..constants import (
    API_GROUP,
    API_VERSION,
    EXOSCALE_API_KEY_NAME,
    EXOSCALE_API_SECRET_NAME,
    KIND_PROVIDER_CONFIG,
    PLURAL_PROVIDER_CONFIGS,
    REASON_INVALID_CONFIGURATION,
)
from ..services.exoscale.client import ExoscaleIAMClient
from ..services.iam.base import KeyAdapter
from ..utils.cache import get_cached_object, invalidate_cache, make_cache_key, set_cached_object
from ..utils.errors import ConfigurationError, classify_status_code
from ..utils.rate_limit import rate_limit_k8s
from ..utils.secrets import get_secret_value

_API_TIMEOUT_SECONDS = float(os.getenv("EXOSCALE_API_TIMEOUT_SECONDS", "30"))


def create_client_from_provider_config(
    provider_config: dict[str, Any],
    core_api: client.CoreV1Api,
) -> ExoscaleIAMClient:
    """Create an Exoscale IAM client from a ProviderConfig object.

    Args:
        provider_config: ProviderConfig custom object
        core_api: Kubernetes CoreV1Api used to read the credentials secret

    Returns:
        Configured Exoscale IAM client

    Raises:
        ValueError: If configuration is invalid or credentials are missing
    """
    spec = provider_config.get("spec", {})
    secret_ref = spec.get("credentials", {}).get("apiSecretRef", {})
    secret_name = secret_ref.get("name")
    secret_namespace = secret_ref.get("namespace", "default")

    if not secret_name:
        raise ValueError("spec.credentials.apiSecretRef.name is required")

    api_key = get_secret_value(core_api, secret_namespace, secret_name, EXOSCALE_API_KEY_NAME)
    api_secret = get_secret_value(core_api, secret_namespace, secret_name, EXOSCALE_API_SECRET_NAME)

    return ExoscaleIAMClient(api_key=api_key, api_secret=api_secret, timeout=_API_TIMEOUT_SECONDS)


def provider_config_cache_key(name: str) -> str:
    return make_cache_key(KIND_PROVIDER_CONFIG, name)


def invalidate_provider_config(name: str) -> None:
    """Drop the cached client built from the named ProviderConfig."""
    invalidate_cache(provider_config_cache_key(name))


class ClientCache:
    """Exoscale IAM clients keyed by ProviderConfig name.

    Entries expire after the cache TTL and are dropped whenever the
    ProviderConfig changes.
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi | None = None,
        core_api: client.CoreV1Api | None = None,
        factory: Callable[[dict[str, Any], client.CoreV1Api], KeyAdapter] = create_client_from_provider_config,
    ) -> None:
        self._custom_api = custom_api
        self._core_api = core_api
        self._factory = factory

    @property
    def custom_api(self) -> client.CustomObjectsApi:
        if self._custom_api is None:
            self._custom_api = client.CustomObjectsApi()
        return self._custom_api

    @property
    def core_api(self) -> client.CoreV1Api:
        if self._core_api is None:
            self._core_api = client.CoreV1Api()
        return self._core_api

    def get(self, provider_config_name: str) -> KeyAdapter:
        """Return the client for a ProviderConfig, building it on first use.

        Raises:
            ConfigurationError: The ProviderConfig or its credentials are missing
            TransientError: The Kubernetes API could not be reached
        """
        cache_key = provider_config_cache_key(provider_config_name)
        cached = get_cached_object(cache_key)
        if cached is not None:
            metrics.api_call_total.labels(api_type="k8s", operation="get_providerconfig", result="cache_hit").inc()
            return cached

        start_time = time.time()
        try:
            provider_config = rate_limit_k8s(self.custom_api.get_cluster_custom_object)(
                group=API_GROUP,
                version=API_VERSION,
                plural=PLURAL_PROVIDER_CONFIGS,
                name=provider_config_name,
            )
            adapter = self._factory(provider_config, self.core_api)
        except client.exceptions.ApiException as e:
            metrics.api_call_total.labels(api_type="k8s", operation="get_providerconfig", result="error").inc()
            if e.status == 404:
                raise ConfigurationError(
                    f"ProviderConfig {provider_config_name} not found",
                    REASON_INVALID_CONFIGURATION,
                ) from e
            raise classify_status_code(e.status)(
                f"Failed to read ProviderConfig {provider_config_name}: {e.status} {e.reason}"
            ) from e
        except ValueError as e:
            metrics.api_call_total.labels(api_type="k8s", operation="get_providerconfig", result="error").inc()
            raise ConfigurationError(
                f"ProviderConfig {provider_config_name} is invalid: {e}",
                REASON_INVALID_CONFIGURATION,
            ) from e
        finally:
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation="get_providerconfig").observe(
                time.time() - start_time
            )

        metrics.api_call_total.labels(api_type="k8s", operation="get_providerconfig", result="success").inc()
        set_cached_object(cache_key, adapter)
        return adapter

    def invalidate(self, provider_config_name: str) -> None:
        invalidate_provider_config(provider_config_name)

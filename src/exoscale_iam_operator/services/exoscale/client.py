"""Exoscale IAM client implementation."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable

import requests
from exoscale.api.v2 import Client

from ... import metrics
from ...constants import CONTROLLER_NAME
from ...models import KeyRecord
from ...tracing import trace_span
from ...utils.context import remaining_time
from ...utils.errors import (
    ExternalError,
    NotFoundError,
    PermanentError,
    TransientError,
    classify_status_code,
    sanitize_exception,
)
from ...utils.rate_limit import is_rate_limit_status, rate_limit_exoscale
from .policy import build_sos_policy, buckets_from_policy

logger = logging.getLogger(__name__)

KNOWN_ZONES = frozenset(
    zone.strip()
    for zone in os.getenv(
        "EXOSCALE_ZONES",
        "ch-gva-2,ch-dk-2,de-fra-1,de-muc-1,at-vie-1,at-vie-2,bg-sof-1",
    ).split(",")
    if zone.strip()
)


def _status_code(error: BaseException) -> int | None:
    """Find the HTTP status behind an exception or the exceptions it wraps."""
    seen: BaseException | None = error
    while seen is not None:
        status = getattr(seen, "status_code", None)
        if isinstance(status, int):
            return status
        response = getattr(seen, "response", None)
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
        seen = seen.__cause__ or seen.__context__
    return None


def classify_exception(error: BaseException) -> ExternalError:
    """Map an exception raised by the Exoscale SDK to the error taxonomy."""
    if isinstance(error, ExternalError):
        return error
    message = sanitize_exception(error)
    if isinstance(error, (requests.Timeout, requests.ConnectionError)):
        return TransientError(message)
    error_cls = classify_status_code(_status_code(error))
    return error_cls(message)


class ExoscaleIAMClient:
    """IAM key adapter over the Exoscale v2 API.

    An IAM key is an API key bound to a role whose policy only grants object
    storage access to the listed buckets. API clients are zonal, one is kept
    per zone. Every call is bounded by the smaller of ``timeout`` and the
    deadline of the current reconcile.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        timeout: float = 30.0,
        max_workers: int = 4,
        client_factory: Callable[[str], Any] | None = None,
    ) -> None:
        """Initialize the Exoscale IAM client.

        Args:
            api_key: Exoscale API key
            api_secret: Exoscale API secret
            timeout: Upper bound for a single API call in seconds
            max_workers: Concurrent API calls allowed for this client
            client_factory: Builds the SDK client for a zone
        """
        self.timeout = timeout
        self._client_factory = client_factory or (
            lambda zone: Client(api_key, api_secret, zone=zone)
        )
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="exoscale-api")

    def _client(self, zone: str) -> Any:
        if zone not in KNOWN_ZONES:
            raise PermanentError(f"Unknown zone {zone!r}, expected one of {sorted(KNOWN_ZONES)}")
        with self._lock:
            if zone not in self._clients:
                self._clients[zone] = self._client_factory(zone)
            return self._clients[zone]

    def _call(self, zone: str, operation: str, **params: Any) -> Any:
        remaining = remaining_time()
        timeout = self.timeout if remaining is None else min(self.timeout, remaining)
        if timeout <= 0:
            metrics.api_call_total.labels(api_type="exoscale", operation=operation, result="timeout").inc()
            raise TransientError(f"Deadline exceeded before calling {operation}")

        fn = getattr(self._client(zone), operation)
        start_time = time.time()
        future = self._executor.submit(rate_limit_exoscale(fn), **params)
        try:
            result = future.result(timeout=timeout)
        except FuturesTimeoutError as e:
            future.cancel()
            metrics.api_call_total.labels(api_type="exoscale", operation=operation, result="timeout").inc()
            raise TransientError(f"{operation} timed out after {timeout:.1f}s") from e
        except Exception as e:
            error = classify_exception(e)
            if is_rate_limit_status(_status_code(e), str(e)):
                metrics.rate_limit_hits_total.labels(api_type="exoscale").inc()
            metrics.api_call_total.labels(
                api_type="exoscale", operation=operation, result=type(error).__name__
            ).inc()
            logger.warning(f"Exoscale {operation} in {zone} failed: {error}")
            raise error from e
        finally:
            metrics.api_call_duration_seconds.labels(api_type="exoscale", operation=operation).observe(
                time.time() - start_time
            )

        metrics.api_call_total.labels(api_type="exoscale", operation=operation, result="success").inc()
        return result

    def _wait(self, zone: str, operation: dict[str, Any] | None) -> dict[str, Any]:
        """Wait for an asynchronous API operation to finish."""
        operation = operation or {}
        if operation.get("state") == "pending" and operation.get("id"):
            operation = self._call(zone, "wait", operation_id=operation["id"]) or operation
        if operation.get("state") in ("failure", "timeout"):
            raise TransientError(f"Operation {operation.get('id')} ended in state {operation['state']}")
        return operation

    def fetch_by_id(self, zone: str, key_id: str) -> KeyRecord:
        with trace_span("exoscale.fetch_key", attributes={"zone": zone}):
            key = self._call(zone, "get_api_key", id=key_id)
            role_id = key.get("role-id", "")
            buckets: list[str] = []
            if role_id:
                try:
                    role = self._call(zone, "get_iam_role", id=role_id)
                    buckets = buckets_from_policy(role.get("policy"))
                except NotFoundError:
                    logger.warning(f"Role {role_id} of key {key_id} no longer exists")
            return KeyRecord(
                key_id=key.get("key", key_id),
                role_id=role_id,
                name=key.get("name", ""),
                zone=zone,
                buckets=buckets,
            )

    def create(self, zone: str, name: str, buckets: list[str]) -> KeyRecord:
        with trace_span("exoscale.create_key", attributes={"zone": zone}):
            if not buckets:
                raise PermanentError("At least one bucket is required")

            role_operation = self._call(
                zone,
                "create_iam_role",
                name=name,
                description=f"Object storage access for IAM key {name}",
                editable=True,
                labels={"managed-by": CONTROLLER_NAME},
                policy=build_sos_policy(buckets),
            )
            role_operation = self._wait(zone, role_operation)
            role_id = (role_operation.get("reference") or {}).get("id") or role_operation.get("id")
            if not role_id:
                raise TransientError(f"Role creation for {name} returned no role id")

            try:
                key = self._call(zone, "create_api_key", name=name, role_id=role_id)
            except ExternalError:
                self._delete_role(zone, role_id)
                raise

            logger.info(f"Created IAM key {key.get('key')} with role {role_id} in {zone}")
            return KeyRecord(
                key_id=key["key"],
                role_id=role_id,
                name=key.get("name", name),
                zone=zone,
                buckets=list(buckets),
                secret=key.get("secret"),
            )

    def revoke(self, zone: str, key_id: str) -> None:
        with trace_span("exoscale.revoke_key", attributes={"zone": zone}):
            key = self._call(zone, "get_api_key", id=key_id)
            role_id = key.get("role-id")
            self._wait(zone, self._call(zone, "delete_api_key", id=key_id))
            logger.info(f"Revoked IAM key {key_id} in {zone}")
            if role_id:
                self._delete_role(zone, role_id)

    def list_by_name(self, zone: str, name: str) -> list[KeyRecord]:
        with trace_span("exoscale.list_keys", attributes={"zone": zone}):
            response = self._call(zone, "list_api_keys") or {}
            return [
                KeyRecord(
                    key_id=key.get("key", ""),
                    role_id=key.get("role-id", ""),
                    name=key.get("name", ""),
                    zone=zone,
                )
                for key in response.get("api-keys", [])
                if key.get("name") == name
            ]

    def _delete_role(self, zone: str, role_id: str) -> None:
        try:
            self._wait(zone, self._call(zone, "delete_iam_role", id=role_id))
        except NotFoundError:
            pass
        except ExternalError as e:
            # No key is bound to the role anymore
            logger.error(f"Failed to delete IAM role {role_id} in {zone}: {e}")

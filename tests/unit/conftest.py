"""Shared fixtures: in-memory collaborators for the reconciler."""

from __future__ import annotations

import copy
import itertools
from typing import Any
from unittest.mock import patch

import pytest

from exoscale_iam_operator.constants import API_GROUP_VERSION, FINALIZER, KIND_IAM_KEY
from exoscale_iam_operator.models import IAMKey, KeyRecord
from exoscale_iam_operator.reconciler import Reconciler
from exoscale_iam_operator.utils.errors import ConflictError, NotFoundError


def make_body(
    name: str = "backups",
    zone: str = "ch-gva-2",
    buckets: list[str] | None = None,
    key_name: str = "",
    at_provider: dict[str, Any] | None = None,
    finalizers: list[str] | None = None,
    annotations: dict[str, str] | None = None,
    deleting: bool = False,
    secret_ref: bool = True,
) -> dict[str, Any]:
    """Build an IAMKey body as the API server would return it."""
    for_provider: dict[str, Any] = {
        "zone": zone,
        "services": {"sos": {"buckets": ["backups"] if buckets is None else buckets}},
    }
    if key_name:
        for_provider["keyName"] = key_name
    spec: dict[str, Any] = {"forProvider": for_provider, "providerConfigRef": {"name": "default"}}
    if secret_ref:
        spec["writeConnectionSecretToRef"] = {"name": f"{name}-s3", "namespace": "apps"}

    meta: dict[str, Any] = {
        "name": name,
        "uid": f"uid-{name}",
        "generation": 1,
        "finalizers": list(finalizers or []),
        "annotations": dict(annotations or {}),
    }
    if deleting:
        meta["deletionTimestamp"] = "2026-01-01T00:00:00Z"

    body: dict[str, Any] = {
        "apiVersion": API_GROUP_VERSION,
        "kind": KIND_IAM_KEY,
        "metadata": meta,
        "spec": spec,
    }
    if at_provider is not None:
        body["status"] = {"atProvider": at_provider}
    return body


def observed(key_id: str, zone: str = "ch-gva-2", buckets: list[str] | None = None, name: str = "backups") -> dict[str, Any]:
    """Build a status.atProvider block."""
    return {
        "keyID": key_id,
        "roleID": f"role-{key_id}",
        "keyName": name,
        "zone": zone,
        "services": {"sos": {"buckets": ["backups"] if buckets is None else buckets}},
    }


class FakeStore:
    """In-memory ResourceStore enforcing resourceVersion checks.

    ``conflicts[operation]`` makes that many writes lose against a concurrent
    writer before succeeding.
    """

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.conflicts: dict[str, int] = {}
        self.writes: list[str] = []
        self._versions = itertools.count(1)

    def add(self, body: dict[str, Any]) -> None:
        body = copy.deepcopy(body)
        body["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[body["metadata"]["name"]] = body

    def body(self, name: str) -> dict[str, Any] | None:
        return self.objects.get(name)

    def get(self, name: str) -> IAMKey | None:
        body = self.objects.get(name)
        if body is None:
            return None
        return IAMKey.from_body(copy.deepcopy(body))

    def list(self) -> list[IAMKey]:
        return [IAMKey.from_body(copy.deepcopy(body)) for body in self.objects.values()]

    def _check(self, operation: str, key: IAMKey) -> dict[str, Any]:
        stored = self.objects.get(key.name)
        if stored is None:
            raise NotFoundError(f"{key.name} not found")
        if self.conflicts.get(operation, 0) > 0:
            self.conflicts[operation] -= 1
            stored["metadata"]["resourceVersion"] = str(next(self._versions))
            raise ConflictError(f"{operation} conflict")
        if stored["metadata"]["resourceVersion"] != key.resource_version:
            raise ConflictError(f"{operation} conflict")
        return stored

    def update(self, key: IAMKey) -> IAMKey:
        stored = self._check("update", key)
        written = key.to_body()["metadata"]
        stored["metadata"]["annotations"] = written["annotations"]
        stored["metadata"]["finalizers"] = written["finalizers"]
        stored["metadata"]["resourceVersion"] = str(next(self._versions))
        self.writes.append("update")
        result = IAMKey.from_body(copy.deepcopy(stored))
        if stored["metadata"].get("deletionTimestamp") and not stored["metadata"]["finalizers"]:
            del self.objects[key.name]
        return result

    def update_status(self, key: IAMKey) -> IAMKey:
        stored = self._check("update_status", key)
        stored["status"] = key.to_body()["status"]
        stored["metadata"]["resourceVersion"] = str(next(self._versions))
        self.writes.append("update_status")
        return IAMKey.from_body(copy.deepcopy(stored))


class FakeAdapter:
    """In-memory KeyAdapter.

    ``errors[operation]`` holds exceptions raised, in order, by the next calls
    to that operation.
    """

    def __init__(self) -> None:
        self.keys: dict[str, KeyRecord] = {}
        self.calls: list[tuple[str, ...]] = []
        self.errors: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)

    def seed(self, key_id: str, name: str = "backups", zone: str = "ch-gva-2", buckets: list[str] | None = None) -> KeyRecord:
        record = KeyRecord(
            key_id=key_id,
            role_id=f"role-{key_id}",
            name=name,
            zone=zone,
            buckets=["backups"] if buckets is None else list(buckets),
        )
        self.keys[key_id] = record
        return record

    def _raise_queued(self, operation: str) -> None:
        queued = self.errors.get(operation)
        if queued:
            raise queued.pop(0)

    def fetch_by_id(self, zone: str, key_id: str) -> KeyRecord:
        self.calls.append(("fetch_by_id", zone, key_id))
        self._raise_queued("fetch_by_id")
        if key_id not in self.keys:
            raise NotFoundError(f"key {key_id} not found")
        return copy.deepcopy(self.keys[key_id])

    def create(self, zone: str, name: str, buckets: list[str]) -> KeyRecord:
        self.calls.append(("create", zone, name))
        self._raise_queued("create")
        n = next(self._ids)
        record = self.seed(f"EXO{n:04d}", name=name, zone=zone, buckets=buckets)
        created = copy.deepcopy(record)
        created.secret = f"secret-{n}"
        return created

    def revoke(self, zone: str, key_id: str) -> None:
        self.calls.append(("revoke", zone, key_id))
        self._raise_queued("revoke")
        if key_id not in self.keys:
            raise NotFoundError(f"key {key_id} not found")
        del self.keys[key_id]

    def list_by_name(self, zone: str, name: str) -> list[KeyRecord]:
        self.calls.append(("list_by_name", zone, name))
        self._raise_queued("list_by_name")
        return [copy.deepcopy(record) for record in self.keys.values() if record.name == name]

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeClients:
    """ClientCache returning a single adapter, or raising ``error``."""

    def __init__(self, adapter: FakeAdapter) -> None:
        self.adapter = adapter
        self.error: Exception | None = None
        self.requested: list[str] = []

    def get(self, provider_config_name: str) -> FakeAdapter:
        self.requested.append(provider_config_name)
        if self.error is not None:
            raise self.error
        return self.adapter


class FakePublisher:
    """Connection secrets kept in a dict keyed by (namespace, name)."""

    def __init__(self) -> None:
        self.secrets: dict[tuple[str, str], dict[str, str]] = {}
        self.publish_error: Exception | None = None

    def publish(self, name, namespace, access_key_id, secret_access_key, owner_name) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.secrets[(namespace, name)] = {
            "AWS_ACCESS_KEY_ID": access_key_id,
            "AWS_SECRET_ACCESS_KEY": secret_access_key,
        }

    def unpublish(self, name, namespace) -> None:
        self.secrets.pop((namespace, name), None)

    def read_access_key_id(self, name, namespace) -> str | None:
        return self.secrets.get((namespace, name), {}).get("AWS_ACCESS_KEY_ID")


@pytest.fixture(autouse=True)
def mock_kopf_event():
    """Kubernetes events are posted by kopf and need a running operator."""
    with patch("kopf.event") as mock_event:
        yield mock_event


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def clients(adapter: FakeAdapter) -> FakeClients:
    return FakeClients(adapter)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def reconciler(store: FakeStore, clients: FakeClients, publisher: FakePublisher) -> Reconciler:
    return Reconciler(store, clients, publisher, resync_interval=600, timeout=60, write_retries=3)


@pytest.fixture
def finalizer() -> str:
    return FINALIZER

"""Models for the IAMKey custom resource."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    ANNOTATION_EXTERNAL_NAME,
    DEFAULT_PROVIDER_CONFIG,
    FINALIZER,
    REASON_AVAILABLE,
    TERMINAL_REASONS,
)
from .utils.conditions import ConditionSet, ConditionStatus


class LifecyclePhase(str, Enum):
    """Phase of an IAMKey, derived from its conditions and metadata."""

    CREATING = "Creating"
    AVAILABLE = "Available"
    DELETING = "Deleting"
    DELETED = "Deleted"
    FAILED = "Failed"


@dataclass
class KeyParameters:
    """Desired state (``spec.forProvider``)."""

    zone: str = ""
    key_name: str = ""
    buckets: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyParameters:
        sos = data.get("services", {}).get("sos", {})
        return cls(
            zone=data.get("zone", ""),
            key_name=data.get("keyName", ""),
            buckets=list(sos.get("buckets") or []),
        )


@dataclass
class KeyObservation:
    """Observed state (``status.atProvider``), always replaced as a whole."""

    key_id: str = ""
    role_id: str = ""
    key_name: str = ""
    zone: str = ""
    buckets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyID": self.key_id,
            "roleID": self.role_id,
            "keyName": self.key_name,
            "zone": self.zone,
            "services": {"sos": {"buckets": list(self.buckets)}},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyObservation:
        sos = data.get("services", {}).get("sos", {})
        return cls(
            key_id=data.get("keyID", ""),
            role_id=data.get("roleID", ""),
            key_name=data.get("keyName", ""),
            zone=data.get("zone", ""),
            buckets=list(sos.get("buckets") or []),
        )


@dataclass
class SecretReference:
    """Where the connection secret is published."""

    name: str
    namespace: str


@dataclass
class KeyRecord:
    """An IAM key as reported by the provider API.

    ``secret`` is only populated by a create call.
    """

    key_id: str
    role_id: str
    name: str
    zone: str
    buckets: list[str] = field(default_factory=list)
    secret: str | None = None

    def to_observation(self) -> KeyObservation:
        return KeyObservation(
            key_id=self.key_id,
            role_id=self.role_id,
            key_name=self.name,
            zone=self.zone,
            buckets=list(self.buckets),
        )


@dataclass
class IAMKey:
    """An IAMKey resource as read from the store.

    The raw body is kept so writes only touch the fields this operator owns.
    """

    name: str
    uid: str
    resource_version: str
    generation: int
    parameters: KeyParameters
    observation: KeyObservation
    conditions: ConditionSet
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: str | None = None
    provider_config_name: str = DEFAULT_PROVIDER_CONFIG
    connection_secret: SecretReference | None = None
    body: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> IAMKey:
        meta = body.get("metadata", {})
        spec = body.get("spec", {})
        status = body.get("status") or {}

        secret_ref = spec.get("writeConnectionSecretToRef") or {}
        connection_secret = None
        if secret_ref.get("name"):
            connection_secret = SecretReference(
                name=secret_ref["name"],
                namespace=secret_ref.get("namespace", "default"),
            )

        return cls(
            name=meta.get("name", ""),
            uid=meta.get("uid", ""),
            resource_version=meta.get("resourceVersion", ""),
            generation=meta.get("generation", 0),
            parameters=KeyParameters.from_dict(spec.get("forProvider", {})),
            observation=KeyObservation.from_dict(status.get("atProvider", {})),
            conditions=ConditionSet.from_list(status.get("conditions")),
            annotations=dict(meta.get("annotations") or {}),
            finalizers=list(meta.get("finalizers") or []),
            deletion_timestamp=meta.get("deletionTimestamp"),
            provider_config_name=(spec.get("providerConfigRef") or {}).get("name", DEFAULT_PROVIDER_CONFIG),
            connection_secret=connection_secret,
            body=copy.deepcopy(body),
        )

    def to_body(self) -> dict[str, Any]:
        """Merge operator-owned fields back into a copy of the raw body."""
        body = copy.deepcopy(self.body)
        meta = body.setdefault("metadata", {})
        meta["name"] = self.name
        meta["resourceVersion"] = self.resource_version
        meta["annotations"] = dict(self.annotations)
        meta["finalizers"] = list(self.finalizers)

        status = body.get("status") or {}
        status["atProvider"] = self.observation.to_dict()
        status["conditions"] = self.conditions.to_list()
        status["observedGeneration"] = self.generation
        body["status"] = status
        return body

    @property
    def external_name(self) -> str:
        return self.annotations.get(ANNOTATION_EXTERNAL_NAME, "")

    @property
    def is_deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    @property
    def has_finalizer(self) -> bool:
        return FINALIZER in self.finalizers

    @property
    def phase(self) -> LifecyclePhase:
        return lifecycle_phase(self)


def lifecycle_phase(key: IAMKey | None) -> LifecyclePhase:
    """Derive the lifecycle phase of a key.

    A missing key is Deleted.
    """
    if key is None:
        return LifecyclePhase.DELETED
    if key.is_deleting:
        return LifecyclePhase.DELETING
    ready = key.conditions.ready
    if ready.status == ConditionStatus.TRUE and ready.reason == REASON_AVAILABLE:
        return LifecyclePhase.AVAILABLE
    if ready.status == ConditionStatus.FALSE and ready.reason in TERMINAL_REASONS:
        return LifecyclePhase.FAILED
    return LifecyclePhase.CREATING

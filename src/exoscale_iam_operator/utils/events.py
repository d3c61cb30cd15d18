"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_DRIFT_DETECTED,
    EVENT_REASON_KEY_ADOPTED,
    EVENT_REASON_KEY_ALREADY_DELETED,
    EVENT_REASON_KEY_CREATED,
    EVENT_REASON_KEY_RECREATED,
    EVENT_REASON_KEY_REVOKED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (apiVersion, kind and metadata are required)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_failed(body: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_key_created(body: dict[str, Any], key_id: str) -> None:
    emit_event(body, EVENT_REASON_KEY_CREATED, f"IAM key {key_id} created")


def emit_key_adopted(body: dict[str, Any], key_id: str) -> None:
    emit_event(body, EVENT_REASON_KEY_ADOPTED, f"IAM key {key_id} adopted from connection secret")


def emit_key_recreated(body: dict[str, Any], old_key_id: str, new_key_id: str) -> None:
    emit_event(
        body,
        EVENT_REASON_KEY_RECREATED,
        f"IAM key {old_key_id} replaced by {new_key_id} after bucket scope change",
    )


def emit_key_revoked(body: dict[str, Any], key_id: str) -> None:
    emit_event(body, EVENT_REASON_KEY_REVOKED, f"IAM key {key_id} revoked")


def emit_drift_detected(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_DRIFT_DETECTED, message, type_="Warning")


def emit_key_already_deleted(body: dict[str, Any], key_id: str) -> None:
    emit_event(body, EVENT_REASON_KEY_ALREADY_DELETED, f"IAM key {key_id} was already deleted")

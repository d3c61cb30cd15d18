"""Typed Ready/Synced condition set for managed resources."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..constants import (
    COND_READY,
    COND_SYNCED,
    REASON_AVAILABLE,
    REASON_CREATING,
    REASON_DELETING,
    REASON_RECONCILE_ERROR,
    REASON_RECONCILE_SUCCESS,
    REASON_UNAVAILABLE,
)


class ConditionStatus(str, Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Condition:
    """A single condition: status, machine-readable reason, message and timestamp."""

    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
        }
        if self.last_transition_time:
            data["lastTransitionTime"] = self.last_transition_time
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        try:
            status = ConditionStatus(data.get("status", "Unknown"))
        except ValueError:
            status = ConditionStatus.UNKNOWN
        return cls(
            type=data.get("type", ""),
            status=status,
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=data.get("lastTransitionTime"),
        )


def update_condition(existing: Condition, new: Condition) -> Condition:
    """Return ``new`` stamped with a transition time.

    lastTransitionTime only moves when the status actually changes.

    Args:
        existing: Condition currently recorded
        new: Condition to record

    Returns:
        The condition to store
    """
    if existing.status == new.status and existing.last_transition_time:
        return replace(new, last_transition_time=existing.last_transition_time)
    return replace(new, last_transition_time=_now())


@dataclass
class ConditionSet:
    """The two conditions a managed resource carries."""

    ready: Condition = field(default_factory=lambda: Condition(COND_READY))
    synced: Condition = field(default_factory=lambda: Condition(COND_SYNCED))

    def set_ready(self, status: bool, reason: str, message: str = "") -> None:
        """Set the Ready condition."""
        self.ready = update_condition(
            self.ready,
            Condition(
                COND_READY,
                ConditionStatus.TRUE if status else ConditionStatus.FALSE,
                reason,
                message,
            ),
        )

    def set_synced(self, status: bool, reason: str, message: str = "") -> None:
        """Set the Synced condition."""
        self.synced = update_condition(
            self.synced,
            Condition(
                COND_SYNCED,
                ConditionStatus.TRUE if status else ConditionStatus.FALSE,
                reason,
                message,
            ),
        )

    def to_list(self) -> list[dict[str, Any]]:
        return [self.ready.to_dict(), self.synced.to_dict()]

    @classmethod
    def from_list(cls, conditions: list[dict[str, Any]] | None) -> ConditionSet:
        """Build a set from a status conditions list, ignoring foreign types."""
        result = cls()
        for cond in conditions or []:
            if cond.get("type") == COND_READY:
                result.ready = Condition.from_dict(cond)
            elif cond.get("type") == COND_SYNCED:
                result.synced = Condition.from_dict(cond)
        return result


def set_available(conditions: ConditionSet, message: str = "") -> None:
    conditions.set_ready(True, REASON_AVAILABLE, message)


def set_creating(conditions: ConditionSet, message: str = "") -> None:
    conditions.set_ready(False, REASON_CREATING, message)


def set_deleting(conditions: ConditionSet, message: str = "") -> None:
    conditions.set_ready(False, REASON_DELETING, message)


def set_unavailable(conditions: ConditionSet, reason: str = REASON_UNAVAILABLE, message: str = "") -> None:
    conditions.set_ready(False, reason, message)


def set_reconcile_success(conditions: ConditionSet) -> None:
    conditions.set_synced(True, REASON_RECONCILE_SUCCESS)


def set_reconcile_error(conditions: ConditionSet, message: str) -> None:
    conditions.set_synced(False, REASON_RECONCILE_ERROR, message)

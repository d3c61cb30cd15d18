"""Utility functions for the Exoscale IAM Operator."""

from .cache import (
    get_cached_object,
    invalidate_cache,
    make_cache_key,
    set_cached_object,
)
from .conditions import ConditionSet, ConditionStatus, update_condition
from .context import (
    get_context_dict,
    get_correlation_id,
    set_correlation_id,
    with_correlation_id,
    with_deadline,
)
from .events import emit_event
from .rate_limit import rate_limit_exoscale, rate_limit_k8s
from .secrets import ConnectionSecretPublisher, get_secret_value

__all__ = [
    "ConditionSet",
    "ConditionStatus",
    "update_condition",
    "emit_event",
    "get_secret_value",
    "ConnectionSecretPublisher",
    "get_cached_object",
    "set_cached_object",
    "invalidate_cache",
    "make_cache_key",
    "rate_limit_k8s",
    "rate_limit_exoscale",
    "set_correlation_id",
    "get_correlation_id",
    "with_correlation_id",
    "with_deadline",
    "get_context_dict",
]

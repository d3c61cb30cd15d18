"""Rate limiting utilities for API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

_F = TypeVar("_F", bound=Callable[..., Any])

# Rate limit configuration
_K8S_RATE_LIMIT_PER_SECOND = float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0"))
_EXOSCALE_RATE_LIMIT_PER_SECOND = float(os.getenv("EXOSCALE_RATE_LIMIT_PER_SECOND", "10.0"))

# Track last call times
_k8s_last_call_time: float = 0.0
_exoscale_last_call_time: float = 0.0
_lock = threading.Lock()


def _wait_for_slot(last_call_time: float, per_second: float) -> float:
    min_interval = 1.0 / per_second
    time_since_last_call = time.time() - last_call_time
    if time_since_last_call < min_interval:
        time.sleep(min_interval - time_since_last_call)
    return time.time()


def rate_limit_k8s(func: _F) -> _F:
    """Decorator to rate limit Kubernetes API calls."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        global _k8s_last_call_time
        with _lock:
            _k8s_last_call_time = _wait_for_slot(_k8s_last_call_time, _K8S_RATE_LIMIT_PER_SECOND)
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def rate_limit_exoscale(func: _F) -> _F:
    """Decorator to rate limit Exoscale API calls.

    Spaces calls so the operator as a whole stays under the configured rate
    even when many keys reconcile in parallel.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        global _exoscale_last_call_time
        with _lock:
            _exoscale_last_call_time = _wait_for_slot(_exoscale_last_call_time, _EXOSCALE_RATE_LIMIT_PER_SECOND)
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def is_rate_limit_status(status: int | None, message: str = "") -> bool:
    """Check whether an HTTP status denotes rate limiting.

    Args:
        status: HTTP status code
        message: Error message, consulted for ambiguous 503 responses

    Returns:
        True if the response was a rate limit rejection
    """
    return status == 429 or (status == 503 and "rate limit" in message.lower())

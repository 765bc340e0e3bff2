"""Instrumentation helpers for Kubernetes API calls."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from kubernetes.client.exceptions import ApiException

from .. import metrics


def api_result_label(error: Exception) -> str:
    """Map an API error to the ``result`` label of ``api_call_total``."""
    if isinstance(error, ApiException):
        if error.status == 404:
            return "not_found"
        if error.status == 409:
            return "conflict"
        if error.status == 429:
            return "throttled"
    return "error"


@contextmanager
def track_api_call(operation: str, api_type: str = "k8s") -> Iterator[None]:
    """Record count and duration of the API call made inside the block.

    Args:
        operation: Operation label (e.g. "list_pods")
        api_type: API type label

    Errors raised in the block are re-raised unchanged.
    """
    start_time = time.time()
    try:
        yield
        metrics.api_call_total.labels(api_type=api_type, operation=operation, result="success").inc()
    except Exception as e:
        metrics.api_call_total.labels(api_type=api_type, operation=operation, result=api_result_label(e)).inc()
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type=api_type, operation=operation).observe(duration)


def request_options(timeout: float | None) -> dict[str, Any]:
    """Keyword arguments passing a request timeout to the kubernetes client."""
    if timeout is None:
        return {}
    return {"_request_timeout": timeout}

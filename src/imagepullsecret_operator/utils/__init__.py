"""Utility functions for the ImagePullSecret Operator."""

from .api_calls import request_options, track_api_call
from .errors import sanitize_dict, sanitize_error_message, sanitize_exception
from .events import (
    emit_event,
    emit_managed_resource_conflict,
    emit_managed_resource_created,
    emit_managed_resource_deleted,
    emit_reconcile_failed,
)

__all__ = [
    "emit_event",
    "emit_reconcile_failed",
    "emit_managed_resource_created",
    "emit_managed_resource_deleted",
    "emit_managed_resource_conflict",
    "request_options",
    "track_api_call",
    "sanitize_error_message",
    "sanitize_exception",
    "sanitize_dict",
]

"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_MANAGED_RESOURCE_CONFLICT,
    EVENT_REASON_MANAGED_RESOURCE_CREATED,
    EVENT_REASON_MANAGED_RESOURCE_DELETED,
    EVENT_REASON_RECONCILE_FAILED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Body of the object the event is about
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


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_managed_resource_created(body: dict[str, Any], kind: str, name: str, namespace: str) -> None:
    """Emit managed resource created event."""
    emit_event(body, EVENT_REASON_MANAGED_RESOURCE_CREATED, f"{kind} {namespace}/{name} created")


def emit_managed_resource_deleted(body: dict[str, Any], kind: str, name: str, namespace: str) -> None:
    """Emit managed resource deleted event."""
    emit_event(body, EVENT_REASON_MANAGED_RESOURCE_DELETED, f"{kind} {namespace}/{name} deleted")


def emit_managed_resource_conflict(body: dict[str, Any], kind: str, name: str, namespace: str) -> None:
    """Emit managed resource conflict event."""
    emit_event(
        body,
        EVENT_REASON_MANAGED_RESOURCE_CONFLICT,
        f"{kind} {namespace}/{name} was changed concurrently, will re-verify",
    )

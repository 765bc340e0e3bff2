"""Base handler class with common functionality for the operator's handlers."""

from __future__ import annotations

import logging
import time
from typing import Any

from .. import metrics
from ..logging import log_resource_event
from ..reconciler import Action, Outcome, ReconcileResult, Reconciler
from ..utils.errors import sanitize_exception
from ..utils.events import (
    emit_managed_resource_conflict,
    emit_managed_resource_created,
    emit_managed_resource_deleted,
    emit_reconcile_failed,
)

CONTROLLER_NAME = "imagepullsecret-operator"


class BaseHandler:
    """Base class for handlers that drive the reconciler."""

    def __init__(self, kind: str, emit_events: bool = True):
        """Initialize base handler.

        Args:
            kind: The Kubernetes kind whose events this handler receives
            emit_events: Whether to post Kubernetes Events. kopf can only post
                them from inside its own handlers.
        """
        self.kind = kind
        self.emit_events = emit_events
        self.logger = logging.getLogger(__name__)

    def _get_resource_context(self, meta: dict[str, Any]) -> dict[str, Any]:
        """Extract common resource context from metadata."""
        return {
            "name": meta.get("name", "unknown"),
            "namespace": meta.get("namespace", ""),
            "uid": meta.get("uid", "unknown"),
        }

    def _log(
        self,
        level: int,
        meta: dict[str, Any],
        message: str,
        event: str,
        reason: str,
        **kwargs: Any,
    ) -> None:
        ctx = self._get_resource_context(meta)
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=ctx["name"],
            namespace=ctx["namespace"],
            uid=ctx["uid"],
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured log message."""
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "warning",
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        """Log a warning-level structured log message."""
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception to include sanitized error details
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
        self._log(logging.ERROR, meta, message, event, reason, **log_data)

    def reconcile_with_metrics(
        self,
        body: dict[str, Any],
        reconciler: Reconciler,
        namespace: str,
        name: str | None = None,
    ) -> ReconcileResult:
        """Run a reconciliation pass and report its result.

        Failed passes are logged and emitted as Warning events and returned to
        the caller, which decides whether to requeue. Unexpected exceptions
        are reported the same way and re-raised.

        Args:
            body: Body of the object whose event triggered the pass
            reconciler: Reconciler to run
            namespace: Namespace to converge
            name: Name of the triggering pod, if any
        """
        meta = body.get("metadata", {})
        start_time = time.time()
        try:
            result = reconciler.reconcile(namespace, name)
        except Exception as e:
            sanitized_error = sanitize_exception(e)
            metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
            self.log_error(meta, "Reconciliation failed", error=e, reason="ReconciliationFailed")
            if self.emit_events:
                emit_reconcile_failed(body, f"Reconciliation failed: {sanitized_error}")
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(duration)

        self.report_result(body, result, reconciler)
        return result

    def report_result(self, body: dict[str, Any], result: ReconcileResult, reconciler: Reconciler) -> None:
        """Log, count and emit events for a finished pass."""
        meta = body.get("metadata", {})
        fields: dict[str, Any] = {"target_namespace": result.namespace}
        if result.decision is not None:
            fields["decision"] = result.decision.value

        if result.skipped:
            metrics.reconcile_total.labels(kind=self.kind, result="skipped").inc()
            self.log_info(meta, "Reconciliation not needed", event="reconcile", reason="Skipped", **fields)
            return

        if not result.ok:
            error = result.error
            sanitized_error = sanitize_exception(error) if error is not None else result.status.value
            metrics.error_total.labels(
                kind=self.kind, error_type=type(error).__name__ if error is not None else "Unknown"
            ).inc()
            metrics.reconcile_total.labels(kind=self.kind, result=result.status.value).inc()
            self.log_error(
                meta,
                "Reconciliation failed",
                error=error,
                reason="ReconciliationFailed",
                status=result.status.value,
                action=result.action.value,
                **fields,
            )
            if self.emit_events:
                emit_reconcile_failed(body, f"Reconciliation of namespace {result.namespace} failed: {sanitized_error}")
            return

        metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
        fields["action"] = result.action.value
        fields["outcome"] = result.outcome.value if result.outcome is not None else None
        self.log_info(meta, "Reconciliation succeeded", event="reconcile", reason="Reconciled", **fields)
        if self.emit_events:
            self._emit_outcome(body, result, reconciler.managed.kind, reconciler.template.name)

    def _emit_outcome(self, body: dict[str, Any], result: ReconcileResult, kind: str, name: str) -> None:
        if result.outcome is Outcome.CONFLICT:
            emit_managed_resource_conflict(body, kind, name, result.namespace)
        elif result.outcome is Outcome.APPLIED:
            if result.action is Action.CREATE:
                emit_managed_resource_created(body, kind, name, result.namespace)
            else:
                emit_managed_resource_deleted(body, kind, name, result.namespace)


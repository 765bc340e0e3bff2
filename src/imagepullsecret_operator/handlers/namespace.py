"""Periodic full resync of every namespace."""

from __future__ import annotations

import logging
import threading
from typing import Any

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from ..constants import KIND_NAMESPACE, NAMESPACE_PHASE_TERMINATING
from ..reconciler import ReconcileResult, ReconcileStatus, Reconciler
from ..store import NamespaceStore
from ..utils.errors import sanitize_exception
from .base import BaseHandler

logger = logging.getLogger(__name__)

# Delay before the next resync after a transient failure
RESYNC_RETRY_INTERVAL = 10.0


class NamespaceHandler(BaseHandler):
    """Reconciles whole namespaces.

    Runs outside kopf's handlers, so failures are logged and counted but
    not posted as Kubernetes Events.
    """

    def __init__(self):
        """Initialize namespace handler."""
        super().__init__(KIND_NAMESPACE, emit_events=False)

    def resync(self, reconciler: Reconciler, body: dict[str, Any]) -> ReconcileResult | None:
        """Reconcile one namespace.

        Returns:
            The result, or None for a terminating namespace
        """
        meta = body.get("metadata", {})
        phase = (body.get("status") or {}).get("phase")
        if phase == NAMESPACE_PHASE_TERMINATING:
            self.log_info(meta, "Namespace is terminating, resync skipped", event="resync", reason="Terminating")
            return None
        return self.reconcile_with_metrics(body, reconciler, meta.get("name", ""))


class NamespaceResync:
    """Reconciles every namespace on a fixed period from a background thread.

    This is the requeue path for pod events whose pass failed, and it
    catches anything the watch missed. Namespaces are only read, never
    annotated or given finalizers.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        namespaces: NamespaceStore,
        interval: float,
        retry_interval: float = RESYNC_RETRY_INTERVAL,
    ):
        self.reconciler = reconciler
        self.namespaces = namespaces
        self.interval = interval
        self.retry_interval = min(retry_interval, interval)
        self.handler = NamespaceHandler()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> bool:
        """Reconcile every namespace once.

        Returns:
            False if listing failed or any namespace hit a transient failure
        """
        try:
            bodies = self.namespaces.list(timeout=self.reconciler.timeout)
        except (ApiException, HTTPError) as e:
            logger.warning(f"Listing namespaces for resync failed: {sanitize_exception(e)}")
            return False

        converged = True
        for body in bodies:
            result = self.handler.resync(self.reconciler, body)
            if result is not None and result.status is ReconcileStatus.TRANSIENT_FAILURE:
                converged = False
        return converged

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                converged = self.run_once()
            except Exception:
                # Reconcile errors are logged and counted by the handler
                logger.exception("Namespace resync failed")
                converged = False
            self._stop.wait(self.interval if converged else self.retry_interval)

    def start(self) -> None:
        """Start resyncing; the first pass runs immediately."""
        self._thread = threading.Thread(target=self._run, name="namespace-resync", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop resyncing and wait for the current pass to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

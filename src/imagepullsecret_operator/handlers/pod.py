"""Handler for Pod events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import KIND_POD, POD_PLURAL, POD_VERSION
from ..reconciler import ReconcileResult, Reconciler
from .base import BaseHandler


class PodHandler(BaseHandler):
    """Reconciles the namespace of every pod that is added, changed or removed."""

    def __init__(self):
        """Initialize pod handler."""
        super().__init__(KIND_POD)

    def handle_event(self, reconciler: Reconciler, body: dict[str, Any]) -> ReconcileResult:
        """Reconcile the namespace of the pod in ``body``.

        The pod is fetched again by name, so a ``DELETED`` event and a stale
        ``MODIFIED`` event for a pod that is already gone are both treated
        as a removal.
        """
        meta = body.get("metadata", {})
        return self.reconcile_with_metrics(body, reconciler, meta.get("namespace", ""), meta.get("name", ""))


_handler = PodHandler()


@kopf.on.event(POD_VERSION, POD_PLURAL)
def handle_pod_event(
    body: kopf.Body,
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Handle Pod watch events, including deletions."""
    # Failures are not raised: kopf does not retry event handlers, the namespace
    # resync timer requeues instead.
    _handler.handle_event(memo.reconciler, dict(body))

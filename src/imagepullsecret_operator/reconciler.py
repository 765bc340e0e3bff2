"""Level-triggered reconciliation of the managed resource per namespace.

A pass classifies the triggering pod, scans the whole namespace, reduces the
scan to ``(required, exists)`` and performs at most one create or delete.
Nothing is cached between passes, so a missed or duplicated event is
corrected by the next pass over the same namespace.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from . import metrics
from .constants import KIND_POD
from .exceptions import ReconcileTimeout
from .kinds import ManagedResourceKind
from .models import ManagedResourceTemplate, WorkloadResource
from .store import WorkloadReader
from .tracing import add_span_attribute, trace_span

logger = logging.getLogger(__name__)

# Statuses meaning the API server rejected the rendered template itself
_REJECTED_TEMPLATE_STATUSES = (400, 422)


class TriggerDecision(enum.Enum):
    """Classification of a single pod event."""

    ABSENT = "absent"
    TERMINATING = "terminating"
    REFERENCES_TRIGGER = "references_trigger"
    UNRELATED = "unrelated"

    @property
    def relevant(self) -> bool:
        return self in (TriggerDecision.ABSENT, TriggerDecision.REFERENCES_TRIGGER)


class Action(enum.Enum):
    CREATE = "create"
    DELETE = "delete"
    NONE = "none"


class Outcome(enum.Enum):
    """Result of the convergence step."""

    APPLIED = "applied"
    ALREADY_IN_DESIRED_STATE = "already_in_desired_state"
    # The mutation raced with another writer; the next pass re-verifies.
    CONFLICT = "conflict"


class ReconcileStatus(enum.Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    CONFIGURATION_FAILURE = "configuration_failure"


@dataclass(frozen=True)
class NamespaceState:
    """Snapshot of one namespace."""

    namespace: str
    workloads: tuple[WorkloadResource, ...]
    managed_names: tuple[str, ...]


@dataclass(frozen=True)
class DesiredState:
    required: bool
    exists: bool

    @property
    def action(self) -> Action:
        if self.required and not self.exists:
            return Action.CREATE
        if self.exists and not self.required:
            return Action.DELETE
        return Action.NONE


@dataclass(frozen=True)
class ReconcileResult:
    """What a reconciliation pass did, or why it failed."""

    status: ReconcileStatus
    namespace: str
    decision: TriggerDecision | None = None
    desired: DesiredState | None = None
    outcome: Outcome | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is ReconcileStatus.SUCCESS

    @property
    def skipped(self) -> bool:
        return self.decision is not None and not self.decision.relevant

    @property
    def action(self) -> Action:
        return self.desired.action if self.desired is not None else Action.NONE


class Deadline:
    """Time budget of one pass."""

    def __init__(self, timeout: float | None):
        self.expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self, namespace: str, stage: str) -> float | None:
        """Seconds left for the next API call.

        Raises:
            ReconcileTimeout: If the budget is spent
        """
        if self.expires_at is None:
            return None
        left = self.expires_at - time.monotonic()
        if left <= 0:
            raise ReconcileTimeout(namespace, stage)
        return left


def classify_trigger(workload: WorkloadResource | None, trigger_name: str) -> TriggerDecision:
    """Decide whether a pod event warrants reconciling its namespace.

    A pod that is gone may have been the last one needing the managed
    resource. A pod that is still terminating is left alone until it is gone.
    """
    if workload is None:
        return TriggerDecision.ABSENT
    if workload.deletion_in_progress:
        return TriggerDecision.TERMINATING
    if workload.references(trigger_name):
        return TriggerDecision.REFERENCES_TRIGGER
    return TriggerDecision.UNRELATED


def evaluate_desired_state(state: NamespaceState, trigger_name: str, template_name: str) -> DesiredState:
    """Reduce a namespace snapshot to ``(required, exists)``.

    Pods still listed count toward ``required`` even when terminating: the
    snapshot reflects what currently exists.
    """
    required = any(workload.references(trigger_name) for workload in state.workloads)
    exists = template_name in state.managed_names
    return DesiredState(required=required, exists=exists)


class Reconciler:
    """Keeps the managed resource present exactly where a pod needs it."""

    def __init__(
        self,
        trigger_name: str,
        template: ManagedResourceTemplate,
        workloads: WorkloadReader,
        managed: ManagedResourceKind,
        timeout: float | None = None,
    ):
        self.trigger_name = trigger_name
        self.template = template
        self.workloads = workloads
        self.managed = managed
        self.timeout = timeout

    def classify(self, namespace: str, name: str, deadline: Deadline | None = None) -> TriggerDecision:
        """Fetch the triggering pod and classify it.

        Raises:
            ApiException: For read errors other than 404
        """
        deadline = deadline or Deadline(None)
        with trace_span("classify_trigger", kind=KIND_POD, attributes={"pod.namespace": namespace, "pod.name": name}):
            workload = self.workloads.get(namespace, name, timeout=deadline.remaining(namespace, "get_pod"))
            decision = classify_trigger(workload, self.trigger_name)
            add_span_attribute("trigger.decision", decision.value)
        metrics.trigger_decisions_total.labels(decision=decision.value).inc()
        return decision

    def aggregate(self, namespace: str, deadline: Deadline | None = None) -> NamespaceState:
        """Scan all pods and all managed resources of a namespace."""
        deadline = deadline or Deadline(None)
        with trace_span("aggregate_namespace", attributes={"namespace": namespace}):
            workloads = self.workloads.list(namespace, timeout=deadline.remaining(namespace, "list_pods"))
            managed_names = self.managed.list_names(
                namespace, timeout=deadline.remaining(namespace, f"list_{self.managed.kind}")
            )
        return NamespaceState(namespace=namespace, workloads=tuple(workloads), managed_names=tuple(managed_names))

    def evaluate(self, state: NamespaceState) -> DesiredState:
        return evaluate_desired_state(state, self.trigger_name, self.template.name)

    def actuate(self, namespace: str, desired: DesiredState, deadline: Deadline | None = None) -> Outcome:
        """Perform the single mutation implied by ``desired``.

        Returns:
            APPLIED, ALREADY_IN_DESIRED_STATE, or CONFLICT when the create found
            the object already there or the delete found it already gone

        Raises:
            ApiException: For any other API error, unchanged
        """
        action = desired.action
        if action is Action.NONE:
            return Outcome.ALREADY_IN_DESIRED_STATE

        deadline = deadline or Deadline(None)
        name = self.template.name
        with trace_span(f"{action.value}_managed_resource", kind=self.managed.kind, attributes={"namespace": namespace}):
            timeout = deadline.remaining(namespace, f"{action.value}_{self.managed.kind}")
            try:
                if action is Action.CREATE:
                    self.managed.create(namespace, self.template.render(namespace), timeout=timeout)
                else:
                    self.managed.delete(namespace, name, timeout=timeout)
            except ApiException as e:
                if (action is Action.CREATE and e.status == 409) or (action is Action.DELETE and e.status == 404):
                    logger.info(f"{self.managed.kind} {namespace}/{name}: {action.value} raced with another writer")
                    metrics.managed_resource_operations_total.labels(operation=action.value, outcome="conflict").inc()
                    return Outcome.CONFLICT
                metrics.managed_resource_operations_total.labels(operation=action.value, outcome="error").inc()
                raise
        metrics.managed_resource_operations_total.labels(operation=action.value, outcome="applied").inc()
        logger.info(f"{self.managed.kind} {namespace}/{name}: {action.value} applied")
        return Outcome.APPLIED

    def reconcile(self, namespace: str, name: str | None = None, timeout: float | None = None) -> ReconcileResult:
        """Run one pass for a namespace, or for the namespace of a changed pod.

        Args:
            namespace: Namespace to converge
            name: Name of the pod whose event triggered the pass, if any
            timeout: Time budget in seconds (defaults to the reconciler's)

        Returns:
            ReconcileResult; failures carry the original exception
        """
        deadline = Deadline(self.timeout if timeout is None else timeout)
        decision = None
        desired = None
        try:
            if name is not None:
                decision = self.classify(namespace, name, deadline)
                if not decision.relevant:
                    return ReconcileResult(ReconcileStatus.SUCCESS, namespace, decision=decision)

            state = self.aggregate(namespace, deadline)
            desired = self.evaluate(state)
            outcome = self.actuate(namespace, desired, deadline)
        except ApiException as e:
            status = ReconcileStatus.TRANSIENT_FAILURE
            if desired is not None and desired.action is Action.CREATE and e.status in _REJECTED_TEMPLATE_STATUSES:
                status = ReconcileStatus.CONFIGURATION_FAILURE
            return ReconcileResult(status, namespace, decision=decision, desired=desired, error=e)
        except (ReconcileTimeout, HTTPError) as e:
            return ReconcileResult(
                ReconcileStatus.TRANSIENT_FAILURE, namespace, decision=decision, desired=desired, error=e
            )

        return ReconcileResult(ReconcileStatus.SUCCESS, namespace, decision=decision, desired=desired, outcome=outcome)

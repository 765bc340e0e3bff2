"""Tests for the reconciliation pipeline."""

from __future__ import annotations

import itertools

import pytest
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import ProtocolError

from conftest import TEMPLATE_NAME, TRIGGER
from imagepullsecret_operator.exceptions import ReconcileTimeout
from imagepullsecret_operator.models import WorkloadResource
from imagepullsecret_operator.reconciler import (
    Action,
    Deadline,
    DesiredState,
    NamespaceState,
    Outcome,
    ReconcileStatus,
    TriggerDecision,
    classify_trigger,
    evaluate_desired_state,
)


def _state(*workloads: WorkloadResource, managed: tuple[str, ...] = ()) -> NamespaceState:
    return NamespaceState(namespace="default", workloads=tuple(workloads), managed_names=managed)


class TestClassifyTrigger:
    """Test cases for classify_trigger."""

    def test_absent_pod_is_relevant(self):
        """Test that a pod that cannot be fetched is a deletion signal."""
        decision = classify_trigger(None, TRIGGER)
        assert decision is TriggerDecision.ABSENT
        assert decision.relevant

    def test_terminating_pod_is_deferred(self):
        """Test that a pod being deleted is ignored until it is gone."""
        pod = WorkloadResource("default", "app", (TRIGGER,), deletion_in_progress=True)
        decision = classify_trigger(pod, TRIGGER)
        assert decision is TriggerDecision.TERMINATING
        assert not decision.relevant

    def test_pod_referencing_trigger_is_relevant(self):
        """Test that any position of the trigger reference counts."""
        pod = WorkloadResource("default", "app", ("other", TRIGGER, TRIGGER))
        assert classify_trigger(pod, TRIGGER) is TriggerDecision.REFERENCES_TRIGGER

    def test_unrelated_pod_is_ignored(self):
        """Test that a pod without the trigger reference is ignored."""
        pod = WorkloadResource("default", "app", ("other",))
        decision = classify_trigger(pod, TRIGGER)
        assert decision is TriggerDecision.UNRELATED
        assert not decision.relevant

    def test_prefix_match_is_not_a_reference(self):
        """Test that reference matching is exact."""
        pod = WorkloadResource("default", "app", (f"{TRIGGER}-v2",))
        assert classify_trigger(pod, TRIGGER) is TriggerDecision.UNRELATED


class TestEvaluateDesiredState:
    """Test cases for evaluate_desired_state."""

    def test_empty_namespace(self):
        """Test that an empty namespace needs nothing."""
        desired = evaluate_desired_state(_state(), TRIGGER, TEMPLATE_NAME)
        assert desired == DesiredState(required=False, exists=False)
        assert desired.action is Action.NONE

    def test_required_and_missing(self):
        """Test that a referencing pod without the resource asks for a create."""
        desired = evaluate_desired_state(
            _state(WorkloadResource("default", "a", (TRIGGER,))), TRIGGER, TEMPLATE_NAME
        )
        assert desired == DesiredState(required=True, exists=False)
        assert desired.action is Action.CREATE

    def test_present_and_not_required(self):
        """Test that a leftover resource asks for a delete."""
        desired = evaluate_desired_state(
            _state(WorkloadResource("default", "a", ("other",)), managed=(TEMPLATE_NAME,)), TRIGGER, TEMPLATE_NAME
        )
        assert desired == DesiredState(required=False, exists=True)
        assert desired.action is Action.DELETE

    def test_required_and_present(self):
        """Test that agreement means no action."""
        desired = evaluate_desired_state(
            _state(WorkloadResource("default", "a", (TRIGGER,)), managed=(TEMPLATE_NAME,)), TRIGGER, TEMPLATE_NAME
        )
        assert desired.action is Action.NONE

    def test_terminating_pod_in_snapshot_still_counts(self):
        """Test that the deletion flag is ignored once a pod is in the snapshot."""
        pod = WorkloadResource("default", "a", (TRIGGER,), deletion_in_progress=True)
        desired = evaluate_desired_state(_state(pod), TRIGGER, TEMPLATE_NAME)
        assert desired.required is True

    def test_exists_requires_exact_name(self):
        """Test that only an exact name match counts as existing."""
        desired = evaluate_desired_state(
            _state(managed=(f"{TEMPLATE_NAME}-old", "test")), TRIGGER, TEMPLATE_NAME
        )
        assert desired.exists is False


class TestActuate:
    """Test cases for Reconciler.actuate."""

    def test_create_renders_template_into_namespace(self, reconciler, managed, template):
        """Test that creation submits a namespaced copy of the template."""
        outcome = reconciler.actuate("team-a", DesiredState(required=True, exists=False))

        assert outcome is Outcome.APPLIED
        body = managed.objects["team-a"][TEMPLATE_NAME]
        assert body["metadata"]["namespace"] == "team-a"
        assert body["spec"] == template.manifest["spec"]
        assert "namespace" not in template.manifest["metadata"]

    def test_delete_by_name(self, reconciler, managed):
        """Test that deletion removes the object named like the template."""
        managed.put("team-a", TEMPLATE_NAME)
        managed.put("team-a", "unrelated")

        outcome = reconciler.actuate("team-a", DesiredState(required=False, exists=True))

        assert outcome is Outcome.APPLIED
        assert managed.names("team-a") == ["unrelated"]

    @pytest.mark.parametrize("required", [True, False])
    def test_no_call_when_states_agree(self, reconciler, managed, required):
        """Test that agreement issues no create or delete call."""
        outcome = reconciler.actuate("team-a", DesiredState(required=required, exists=required))

        assert outcome is Outcome.ALREADY_IN_DESIRED_STATE
        assert managed.mutations == 0

    def test_create_already_exists_is_conflict(self, reconciler, managed):
        """Test that losing a create race is reported as a conflict."""
        managed.put("team-a", TEMPLATE_NAME)

        outcome = reconciler.actuate("team-a", DesiredState(required=True, exists=False))

        assert outcome is Outcome.CONFLICT
        assert managed.creates == 1

    def test_delete_not_found_is_conflict(self, reconciler, managed):
        """Test that losing a delete race is reported as a conflict."""
        outcome = reconciler.actuate("team-a", DesiredState(required=False, exists=True))

        assert outcome is Outcome.CONFLICT
        assert managed.deletes == 1

    def test_other_errors_propagate_unchanged(self, reconciler, managed):
        """Test that write errors are not retried or wrapped."""
        error = ApiException(status=500, reason="Internal Server Error")
        managed.create_error = error

        with pytest.raises(ApiException) as exc_info:
            reconciler.actuate("team-a", DesiredState(required=True, exists=False))

        assert exc_info.value is error
        assert managed.creates == 1


class TestReconcileScenarios:
    """End-to-end passes against the in-memory cluster."""

    def test_pod_with_trigger_creates_managed_resource(self, reconciler, workloads, managed):
        """Test that a referencing pod leads to the managed resource existing."""
        workloads.add("default", "app", TRIGGER)

        result = reconciler.reconcile("default", "app")

        assert result.ok
        assert result.decision is TriggerDecision.REFERENCES_TRIGGER
        assert result.action is Action.CREATE
        assert result.outcome is Outcome.APPLIED
        assert managed.names("default") == [TEMPLATE_NAME]

    def test_deleting_last_pod_removes_managed_resource(self, reconciler, workloads, managed):
        """Test that a deletion-triggered pass removes the managed resource."""
        workloads.add("default", "app", TRIGGER)
        reconciler.reconcile("default", "app")

        workloads.remove("default", "app")
        result = reconciler.reconcile("default", "app")

        assert result.ok
        assert result.decision is TriggerDecision.ABSENT
        assert result.action is Action.DELETE
        assert managed.names("default") == []

    def test_remaining_unrelated_pod_does_not_keep_resource(self, reconciler, workloads, managed):
        """Test that a non-referencing pod does not keep the resource alive."""
        workloads.add("default", "app", TRIGGER)
        workloads.add("default", "sidecar", "other-secret")
        reconciler.reconcile("default", "app")
        assert managed.names("default") == [TEMPLATE_NAME]

        workloads.remove("default", "app")
        result = reconciler.reconcile("default", "app")

        assert result.ok
        assert managed.names("default") == []

    def test_terminating_pod_defers_deletion(self, reconciler, workloads, managed):
        """Test that a pod starting to terminate does not remove the resource early."""
        workloads.add("default", "app", TRIGGER)
        reconciler.reconcile("default", "app")
        workloads.add("default", "app", TRIGGER, terminating=True)

        result = reconciler.reconcile("default", "app")

        assert result.ok
        assert result.skipped
        assert result.decision is TriggerDecision.TERMINATING
        assert managed.names("default") == [TEMPLATE_NAME]
        assert managed.mutations == 1

    def test_managed_list_failure_aborts_without_mutation(self, reconciler, workloads, managed):
        """Test that a failed scan reports failure and changes nothing."""
        workloads.add("default", "app", TRIGGER)
        error = ApiException(status=503, reason="Service Unavailable")
        managed.list_error = error

        result = reconciler.reconcile("default", "app")

        assert result.status is ReconcileStatus.TRANSIENT_FAILURE
        assert result.error is error
        assert result.desired is None
        assert managed.mutations == 0

    def test_pod_list_failure_aborts_without_mutation(self, reconciler, workloads, managed):
        """Test that a failed pod scan is never acted upon."""
        managed.put("default", TEMPLATE_NAME)
        workloads.list_error = ApiException(status=500, reason="Internal Server Error")

        result = reconciler.reconcile("default")

        assert result.status is ReconcileStatus.TRANSIENT_FAILURE
        assert managed.mutations == 0
        assert managed.names("default") == [TEMPLATE_NAME]

    def test_get_failure_other_than_not_found_propagates(self, reconciler, workloads, managed):
        """Test that only 404 on the triggering pod counts as absence."""
        workloads.get_error = ApiException(status=403, reason="Forbidden")

        result = reconciler.reconcile("default", "app")

        assert result.status is ReconcileStatus.TRANSIENT_FAILURE
        assert result.decision is None
        assert managed.mutations == 0

    def test_unrelated_pod_event_skips_scan(self, reconciler, workloads, managed):
        """Test that an unrelated pod event does not reconcile the namespace."""
        workloads.add("default", "app", "other")
        managed.list_error = AssertionError("namespace must not be scanned")

        result = reconciler.reconcile("default", "app")

        assert result.ok
        assert result.skipped

    def test_namespace_pass_without_trigger_pod(self, reconciler, workloads, managed):
        """Test that a namespace-level pass skips classification."""
        workloads.add("default", "app", TRIGGER)
        workloads.get_error = AssertionError("pod must not be fetched")

        result = reconciler.reconcile("default")

        assert result.ok
        assert result.decision is None
        assert managed.names("default") == [TEMPLATE_NAME]

    def test_conflict_is_success(self, reconciler, workloads, managed, monkeypatch):
        """Test that a concurrent create by another pass is not a failure."""
        workloads.add("default", "app", TRIGGER)
        # Another writer creates the resource between the scan and the create
        monkeypatch.setattr(managed, "list_names", lambda namespace, timeout=None: [])
        managed.put("default", TEMPLATE_NAME)

        result = reconciler.reconcile("default", "app")

        assert result.status is ReconcileStatus.SUCCESS
        assert result.outcome is Outcome.CONFLICT
        assert managed.names("default") == [TEMPLATE_NAME]

    def test_rejected_template_is_configuration_failure(self, reconciler, workloads, managed):
        """Test that the API refusing the rendered template cannot be retried away."""
        workloads.add("default", "app", TRIGGER)
        managed.create_error = ApiException(status=422, reason="Unprocessable Entity")

        result = reconciler.reconcile("default", "app")

        assert result.status is ReconcileStatus.CONFIGURATION_FAILURE
        assert result.action is Action.CREATE

    def test_rejected_delete_is_transient(self, reconciler, managed):
        """Test that 400/422 only mean misconfiguration on create."""
        managed.put("default", TEMPLATE_NAME)
        managed.delete_error = ApiException(status=422, reason="Unprocessable Entity")

        result = reconciler.reconcile("default")

        assert result.status is ReconcileStatus.TRANSIENT_FAILURE

    def test_network_error_is_transient(self, reconciler, workloads):
        """Test that connection failures are reported for retry."""
        workloads.list_error = ProtocolError("Connection aborted.")

        result = reconciler.reconcile("default")

        assert result.status is ReconcileStatus.TRANSIENT_FAILURE
        assert isinstance(result.error, ProtocolError)

    def test_unexpected_errors_are_raised(self, reconciler, workloads):
        """Test that programming errors are not folded into a result."""
        workloads.list_error = KeyError("boom")

        with pytest.raises(KeyError):
            reconciler.reconcile("default")

    def test_namespaces_are_independent(self, reconciler, workloads, managed):
        """Test that a pass only touches its own namespace."""
        workloads.add("team-a", "app", TRIGGER)
        managed.put("team-b", TEMPLATE_NAME)

        reconciler.reconcile("team-a")

        assert managed.names("team-a") == [TEMPLATE_NAME]
        assert managed.names("team-b") == [TEMPLATE_NAME]


class TestReconcileProperties:
    """Idempotence and convergence properties."""

    def test_second_pass_performs_no_mutation(self, reconciler, workloads, managed):
        """Test that repeating a pass without changes is a no-op."""
        workloads.add("default", "app", TRIGGER)
        reconciler.reconcile("default", "app")
        mutations = managed.mutations

        result = reconciler.reconcile("default", "app")

        assert result.outcome is Outcome.ALREADY_IN_DESIRED_STATE
        assert managed.mutations == mutations

    def test_converges_after_interleaved_changes(self, reconciler, workloads, managed):
        """Test that the invariant holds after the last successful pass."""
        steps = [
            ("add", "a", (TRIGGER,)),
            ("add", "b", ("other",)),
            ("add", "c", (TRIGGER, TRIGGER)),
            ("remove", "a", ()),
            ("add", "b", (TRIGGER,)),
            ("remove", "c", ()),
            ("remove", "b", ()),
            ("add", "d", (TRIGGER,)),
        ]
        for op, name, refs in steps:
            if op == "add":
                workloads.add("default", name, *refs)
            else:
                workloads.remove("default", name)
            assert reconciler.reconcile("default", name).ok

            required = any(pod.references(TRIGGER) for pod in workloads.list("default"))
            assert (TEMPLATE_NAME in managed.names("default")) == required

    @pytest.mark.parametrize("initially_present", [True, False])
    def test_event_order_does_not_change_result(self, template, initially_present):
        """Test that any processing order of the same events converges identically."""
        from conftest import FakeManagedKind, FakeWorkloadStore
        from imagepullsecret_operator.reconciler import Reconciler

        events = ["a", "b", "gone"]
        finals = set()
        for order in itertools.permutations(events):
            workloads = FakeWorkloadStore()
            workloads.add("default", "a", "other")
            workloads.add("default", "b", TRIGGER, terminating=True)
            managed = FakeManagedKind()
            if initially_present:
                managed.put("default", TEMPLATE_NAME)
            reconciler = Reconciler(TRIGGER, template, workloads, managed)

            for name in order:
                assert reconciler.reconcile("default", name).ok
            finals.add(tuple(managed.names("default")))

        assert finals == {(TEMPLATE_NAME,)}


class TestDeadline:
    """Test cases for cancellation by deadline."""

    def test_no_timeout_means_no_limit(self):
        """Test that an unset deadline never expires."""
        assert Deadline(None).remaining("default", "list_pods") is None

    def test_remaining_budget_is_positive(self):
        """Test that the remaining budget is handed to API calls."""
        remaining = Deadline(30.0).remaining("default", "list_pods")
        assert 0 < remaining <= 30.0

    def test_expired_deadline_raises(self):
        """Test that a spent budget raises ReconcileTimeout."""
        with pytest.raises(ReconcileTimeout) as exc_info:
            Deadline(0).remaining("default", "list_pods")
        assert exc_info.value.stage == "list_pods"

    def test_expired_pass_commits_nothing(self, reconciler, workloads, managed):
        """Test that an expired pass aborts before any API call."""
        workloads.add("default", "app", TRIGGER)

        result = reconciler.reconcile("default", "app", timeout=0)

        assert result.status is ReconcileStatus.TRANSIENT_FAILURE
        assert isinstance(result.error, ReconcileTimeout)
        assert workloads.timeouts == []
        assert managed.mutations == 0

    def test_timeout_is_passed_to_store(self, reconciler, workloads):
        """Test that each call receives the remaining budget."""
        workloads.add("default", "app", TRIGGER)

        reconciler.reconcile("default", "app", timeout=10.0)

        assert len(workloads.timeouts) == 2
        assert all(t is not None and 0 < t <= 10.0 for t in workloads.timeouts)

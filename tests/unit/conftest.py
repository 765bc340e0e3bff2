"""Shared fixtures: an in-memory cluster holding pods and managed resources."""

from __future__ import annotations

from typing import Any

import pytest
from kubernetes.client.exceptions import ApiException

from imagepullsecret_operator.models import ManagedResourceTemplate, WorkloadResource
from imagepullsecret_operator.reconciler import Reconciler

TRIGGER = "test-secret"
TEMPLATE_NAME = "test-es"


class FakeWorkloadStore:
    """Pods kept in a dict, with injectable read failures."""

    def __init__(self):
        self.pods: dict[tuple[str, str], WorkloadResource] = {}
        self.get_error: Exception | None = None
        self.list_error: Exception | None = None
        self.timeouts: list[float | None] = []

    def add(self, namespace: str, name: str, *refs: str, terminating: bool = False) -> WorkloadResource:
        pod = WorkloadResource(namespace, name, tuple(refs), deletion_in_progress=terminating)
        self.pods[(namespace, name)] = pod
        return pod

    def remove(self, namespace: str, name: str) -> None:
        self.pods.pop((namespace, name), None)

    def get(self, namespace: str, name: str, timeout: float | None = None) -> WorkloadResource | None:
        self.timeouts.append(timeout)
        if self.get_error is not None:
            raise self.get_error
        return self.pods.get((namespace, name))

    def list(self, namespace: str, timeout: float | None = None) -> list[WorkloadResource]:
        self.timeouts.append(timeout)
        if self.list_error is not None:
            raise self.list_error
        return [pod for (ns, _), pod in self.pods.items() if ns == namespace]


class FakeManagedKind:
    """Managed resources kept per namespace, counting every mutation."""

    kind = "ExternalSecret"

    def __init__(self):
        self.objects: dict[str, dict[str, dict[str, Any]]] = {}
        self.list_error: Exception | None = None
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.creates = 0
        self.deletes = 0

    def names(self, namespace: str) -> list[str]:
        return sorted(self.objects.get(namespace, {}))

    def put(self, namespace: str, name: str) -> None:
        self.objects.setdefault(namespace, {})[name] = {"metadata": {"name": name, "namespace": namespace}}

    @property
    def mutations(self) -> int:
        return self.creates + self.deletes

    def list_names(self, namespace: str, timeout: float | None = None) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.objects.get(namespace, {}))

    def create(self, namespace: str, body: dict[str, Any], timeout: float | None = None) -> None:
        self.creates += 1
        if self.create_error is not None:
            raise self.create_error
        name = body["metadata"]["name"]
        if name in self.objects.get(namespace, {}):
            raise ApiException(status=409, reason="AlreadyExists")
        self.objects.setdefault(namespace, {})[name] = body

    def delete(self, namespace: str, name: str, timeout: float | None = None) -> None:
        self.deletes += 1
        if self.delete_error is not None:
            raise self.delete_error
        if name not in self.objects.get(namespace, {}):
            raise ApiException(status=404, reason="NotFound")
        del self.objects[namespace][name]


def external_secret_manifest(name: str = TEMPLATE_NAME) -> dict[str, Any]:
    return {
        "apiVersion": "external-secrets.io/v1beta1",
        "kind": "ExternalSecret",
        "metadata": {"name": name},
        "spec": {
            "refreshInterval": "1h",
            "secretStoreRef": {"kind": "ClusterSecretStore", "name": "vault"},
            "target": {"name": TRIGGER, "template": {"type": "kubernetes.io/dockerconfigjson"}},
            "dataFrom": [{"extract": {"key": "registry/pull"}}],
        },
    }


@pytest.fixture
def template() -> ManagedResourceTemplate:
    return ManagedResourceTemplate.from_manifest(external_secret_manifest())


@pytest.fixture
def workloads() -> FakeWorkloadStore:
    return FakeWorkloadStore()


@pytest.fixture
def managed() -> FakeManagedKind:
    return FakeManagedKind()


@pytest.fixture
def reconciler(template, workloads, managed) -> Reconciler:
    return Reconciler(TRIGGER, template, workloads, managed)

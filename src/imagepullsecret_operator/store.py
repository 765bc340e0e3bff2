"""Read access to pods, the workloads that can require the managed resource."""

from __future__ import annotations

from typing import Any, Protocol

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from .constants import KIND_NAMESPACE
from .models import WorkloadResource
from .utils.api_calls import request_options, track_api_call


class WorkloadReader(Protocol):
    """Protocol defining workload read operations."""

    def get(self, namespace: str, name: str, timeout: float | None = None) -> WorkloadResource | None:
        """Get a single workload, or None if it does not exist."""
        ...

    def list(self, namespace: str, timeout: float | None = None) -> list[WorkloadResource]:
        """List every workload in a namespace."""
        ...


class WorkloadStore:
    """Fetches pods through the Kubernetes core API."""

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def get(self, namespace: str, name: str, timeout: float | None = None) -> WorkloadResource | None:
        """Get a single pod.

        Returns:
            The pod, or None if it no longer exists

        Raises:
            ApiException: For any API error other than 404
        """
        try:
            with track_api_call("get_pod"):
                pod = self.api.read_namespaced_pod(name=name, namespace=namespace, **request_options(timeout))
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return WorkloadResource.from_pod(pod)

    def list(self, namespace: str, timeout: float | None = None) -> list[WorkloadResource]:
        """List every pod in a namespace."""
        with track_api_call("list_pods"):
            pods = self.api.list_namespaced_pod(namespace=namespace, **request_options(timeout))
        return [WorkloadResource.from_pod(pod) for pod in pods.items]


class NamespaceStore:
    """Lists namespaces for the periodic resync."""

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def list(self, timeout: float | None = None) -> list[dict[str, Any]]:
        """List every namespace as a minimal object body.

        The bodies carry what handlers log and check: name, uid and phase.
        """
        with track_api_call("list_namespaces"):
            namespaces = self.api.list_namespace(**request_options(timeout))
        return [
            {
                "apiVersion": "v1",
                "kind": KIND_NAMESPACE,
                "metadata": {"name": namespace.metadata.name, "uid": namespace.metadata.uid},
                "status": {"phase": namespace.status.phase if namespace.status is not None else None},
            }
            for namespace in namespaces.items
        ]

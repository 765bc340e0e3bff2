"""Domain models for workloads and the managed resource template."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from .constants import FIELD_MANAGER, LABEL_MANAGED_BY
from .exceptions import ConfigurationError

# Server-populated metadata that must not be carried into a create request
_SERVER_METADATA_FIELDS = (
    "namespace",
    "resourceVersion",
    "uid",
    "creationTimestamp",
    "generation",
    "managedFields",
    "selfLink",
    "deletionTimestamp",
)


@dataclass(frozen=True)
class WorkloadResource:
    """A pod as seen by the reconciler."""

    namespace: str
    name: str
    credential_refs: tuple[str, ...] = ()
    deletion_in_progress: bool = False

    @classmethod
    def from_pod(cls, pod: Any) -> WorkloadResource:
        """Build from a kubernetes client ``V1Pod``."""
        metadata = pod.metadata
        refs = (pod.spec.image_pull_secrets or []) if pod.spec is not None else []
        return cls(
            namespace=metadata.namespace,
            name=metadata.name,
            credential_refs=tuple(ref.name for ref in refs if ref.name),
            deletion_in_progress=metadata.deletion_timestamp is not None,
        )

    def references(self, credential_name: str) -> bool:
        """Return True if the pod lists ``credential_name`` as an image pull secret."""
        return credential_name in self.credential_refs


@dataclass(frozen=True)
class ManagedResourceTemplate:
    """Namespace-agnostic blueprint of the managed resource.

    The stored manifest is never handed out directly; ``render`` returns a
    namespaced deep copy for every create request.
    """

    api_version: str
    kind: str
    name: str
    manifest: Mapping[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_manifest(cls, manifest: Any) -> ManagedResourceTemplate:
        """Validate a manifest and build a template from it.

        Args:
            manifest: Parsed Kubernetes object (apiVersion, kind, metadata, ...)

        Returns:
            ManagedResourceTemplate

        Raises:
            ConfigurationError: If the manifest cannot address a namespaced object
        """
        if not isinstance(manifest, Mapping):
            raise ConfigurationError("Managed resource template must be a mapping")

        api_version = manifest.get("apiVersion")
        kind = manifest.get("kind")
        metadata = manifest.get("metadata")
        for key, value in (("apiVersion", api_version), ("kind", kind)):
            if not isinstance(value, str) or not value:
                raise ConfigurationError(f"Managed resource template is missing {key}")
        if not isinstance(metadata, Mapping):
            raise ConfigurationError("Managed resource template is missing metadata")
        name = metadata.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError("Managed resource template is missing metadata.name")
        if api_version.count("/") > 1:
            raise ConfigurationError(f"Invalid apiVersion '{api_version}'")

        body = copy.deepcopy(dict(manifest))
        body.pop("status", None)
        body["metadata"] = {
            key: value for key, value in body["metadata"].items() if key not in _SERVER_METADATA_FIELDS
        }
        return cls(api_version=api_version, kind=kind, name=name, manifest=body)

    @property
    def group(self) -> str:
        """API group of the template (empty for the core group)."""
        group, _, _ = self.api_version.rpartition("/")
        return group

    @property
    def version(self) -> str:
        """API version of the template, without the group."""
        return self.api_version.rpartition("/")[2]

    def render(self, namespace: str) -> dict[str, Any]:
        """Return a copy of the manifest scoped to ``namespace``."""
        body = copy.deepcopy(dict(self.manifest))
        metadata = body.setdefault("metadata", {})
        metadata["namespace"] = namespace
        labels = dict(metadata.get("labels") or {})
        labels[LABEL_MANAGED_BY] = FIELD_MANAGER
        metadata["labels"] = labels
        return body

"""Access strategies for the kind of the managed resource.

A kind lists the names present in a namespace and can create or delete one
object by name. Plain Secrets live in the core API; ExternalSecrets and any
other custom resource go through the custom objects API.
"""

from __future__ import annotations

from typing import Any, Protocol

from kubernetes import client

from .constants import FIELD_MANAGER, KIND_SECRET
from .exceptions import ConfigurationError
from .models import ManagedResourceTemplate
from .utils.api_calls import request_options, track_api_call


class ManagedResourceKind(Protocol):
    """Protocol defining managed resource operations."""

    kind: str

    def list_names(self, namespace: str, timeout: float | None = None) -> list[str]:
        """List names of the objects of this kind in a namespace."""
        ...

    def create(self, namespace: str, body: dict[str, Any], timeout: float | None = None) -> None:
        """Create an object from a rendered body."""
        ...

    def delete(self, namespace: str, name: str, timeout: float | None = None) -> None:
        """Delete an object by name."""
        ...


class CustomObjectKind:
    """A namespaced custom resource, such as an external-secrets.io ExternalSecret."""

    def __init__(
        self,
        api: client.CustomObjectsApi,
        group: str,
        version: str,
        plural: str,
        kind: str = "",
    ):
        self.api = api
        self.group = group
        self.version = version
        self.plural = plural
        self.kind = kind or plural

    def list_names(self, namespace: str, timeout: float | None = None) -> list[str]:
        with track_api_call(f"list_{self.plural}"):
            result = self.api.list_namespaced_custom_object(
                group=self.group,
                version=self.version,
                namespace=namespace,
                plural=self.plural,
                **request_options(timeout),
            )
        return [item.get("metadata", {}).get("name", "") for item in result.get("items", [])]

    def create(self, namespace: str, body: dict[str, Any], timeout: float | None = None) -> None:
        with track_api_call(f"create_{self.plural}"):
            self.api.create_namespaced_custom_object(
                group=self.group,
                version=self.version,
                namespace=namespace,
                plural=self.plural,
                body=body,
                field_manager=FIELD_MANAGER,
                **request_options(timeout),
            )

    def delete(self, namespace: str, name: str, timeout: float | None = None) -> None:
        with track_api_call(f"delete_{self.plural}"):
            self.api.delete_namespaced_custom_object(
                group=self.group,
                version=self.version,
                namespace=namespace,
                plural=self.plural,
                name=name,
                **request_options(timeout),
            )


class SecretKind:
    """A plain core/v1 Secret.

    Listing is narrowed to the managed name, so payloads of unrelated
    Secrets in the namespace are never fetched.
    """

    kind = KIND_SECRET

    def __init__(self, api: client.CoreV1Api, name: str):
        self.api = api
        self.name = name

    def list_names(self, namespace: str, timeout: float | None = None) -> list[str]:
        with track_api_call("list_secrets"):
            secrets = self.api.list_namespaced_secret(
                namespace=namespace,
                field_selector=f"metadata.name={self.name}",
                **request_options(timeout),
            )
        return [secret.metadata.name for secret in secrets.items]

    def create(self, namespace: str, body: dict[str, Any], timeout: float | None = None) -> None:
        with track_api_call("create_secret"):
            self.api.create_namespaced_secret(
                namespace=namespace,
                body=body,
                field_manager=FIELD_MANAGER,
                **request_options(timeout),
            )

    def delete(self, namespace: str, name: str, timeout: float | None = None) -> None:
        with track_api_call("delete_secret"):
            self.api.delete_namespaced_secret(name=name, namespace=namespace, **request_options(timeout))


def build_managed_kind(
    template: ManagedResourceTemplate,
    core_api: client.CoreV1Api,
    custom_api: client.CustomObjectsApi,
    plural: str | None = None,
) -> ManagedResourceKind:
    """Pick the access strategy for the template's kind.

    Raises:
        ConfigurationError: If the template is a core kind other than Secret
    """
    if template.group == "":
        if template.kind == KIND_SECRET and template.version == "v1":
            return SecretKind(core_api, template.name)
        raise ConfigurationError(f"Unsupported core kind {template.api_version}/{template.kind}")
    return CustomObjectKind(
        custom_api,
        group=template.group,
        version=template.version,
        plural=plural or f"{template.kind.lower()}s",
        kind=template.kind,
    )

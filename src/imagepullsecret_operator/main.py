"""Main entry point for the ImagePullSecret Operator."""

from __future__ import annotations

import logging
from typing import Any

import kopf
from kubernetes import client, config as kube_config

from . import handlers  # noqa: F401
from . import health
from . import logging as structured_logging
from .config import OperatorConfig, load_config
from .exceptions import ConfigurationError
from .handlers.namespace import NamespaceResync
from .kinds import build_managed_kind
from .reconciler import Reconciler
from .store import NamespaceStore, WorkloadStore
from .tracing import initialize_tracing

logger = logging.getLogger(__name__)


def load_kube_config() -> None:
    """Load in-cluster credentials, falling back to the local kubeconfig."""
    try:
        kube_config.load_incluster_config()
    except kube_config.ConfigException:
        kube_config.load_kube_config()


def build_reconciler(operator_config: OperatorConfig, api_client: client.ApiClient | None = None) -> Reconciler:
    """Wire a reconciler for the configured trigger and template.

    Raises:
        ConfigurationError: If the template's kind cannot be managed
    """
    core_api = client.CoreV1Api(api_client)
    custom_api = client.CustomObjectsApi(api_client)
    managed = build_managed_kind(operator_config.template, core_api, custom_api, plural=operator_config.plural)
    return Reconciler(
        trigger_name=operator_config.trigger_secret_name,
        template=operator_config.template,
        workloads=WorkloadStore(core_api),
        managed=managed,
        timeout=operator_config.request_timeout,
    )


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    """Configure the operator."""
    structured_logging.setup_structured_logging()
    initialize_tracing()

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = 4

    try:
        operator_config = load_config()
        load_kube_config()
        reconciler = build_reconciler(operator_config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise kopf.PermanentError(f"Invalid configuration: {e}") from e

    logger.info(
        f"Keeping {operator_config.template.kind} {operator_config.template.name} in namespaces "
        f"with pods using imagePullSecret {operator_config.trigger_secret_name}"
    )

    # Metrics and health endpoints on one port
    memo.metrics_server = health.start_metrics_server(
        operator_config.metrics_port, readiness_check=lambda: "reconciler" in memo
    )
    memo.resync = NamespaceResync(
        reconciler, NamespaceStore(client.CoreV1Api()), interval=operator_config.resync_interval
    )
    memo.reconciler = reconciler
    memo.resync.start()


@kopf.on.cleanup()
def cleanup(memo: kopf.Memo, **_: Any) -> None:
    """Stop the resync loop and the metrics server."""
    resync = memo.get("resync")
    if resync is not None:
        resync.stop(timeout=5.0)
    server = memo.get("metrics_server")
    if server is not None:
        server.shutdown()
    logger.info("ImagePullSecret operator shutting down")


def run() -> None:
    """Run the operator across all namespaces."""
    kopf.run(clusterwide=True)

"""Operator configuration loaded once at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from .exceptions import ConfigurationError
from .models import ManagedResourceTemplate

ENV_TRIGGER_SECRET_NAME = "TRIGGER_SECRET_NAME"
ENV_TEMPLATE = "MANAGED_RESOURCE_TEMPLATE"
ENV_TEMPLATE_PATH = "MANAGED_RESOURCE_TEMPLATE_PATH"
ENV_PLURAL = "MANAGED_RESOURCE_PLURAL"
ENV_REQUEST_TIMEOUT = "REQUEST_TIMEOUT_SECONDS"
ENV_METRICS_PORT = "METRICS_PORT"
ENV_RESYNC_INTERVAL = "RESYNC_INTERVAL_SECONDS"

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_METRICS_PORT = 8080
DEFAULT_RESYNC_INTERVAL = 300.0


@dataclass(frozen=True)
class OperatorConfig:
    """Immutable operator configuration."""

    trigger_secret_name: str
    template: ManagedResourceTemplate
    plural: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    metrics_port: int = DEFAULT_METRICS_PORT
    resync_interval: float = DEFAULT_RESYNC_INTERVAL


def parse_template(text: str, source: str) -> ManagedResourceTemplate:
    """Parse a YAML or JSON manifest into a template.

    Raises:
        ConfigurationError: If the text is not a single valid manifest
    """
    try:
        manifest = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse managed resource template from {source}: {e}") from e
    if manifest is None:
        raise ConfigurationError(f"Managed resource template from {source} is empty")
    return ManagedResourceTemplate.from_manifest(manifest)


def _read_template(env: Mapping[str, str]) -> ManagedResourceTemplate:
    inline = env.get(ENV_TEMPLATE, "").strip()
    path = env.get(ENV_TEMPLATE_PATH, "").strip()
    if inline and path:
        raise ConfigurationError(f"Set only one of {ENV_TEMPLATE} and {ENV_TEMPLATE_PATH}")
    if inline:
        return parse_template(inline, ENV_TEMPLATE)
    if path:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read managed resource template {path}: {e}") from e
        return parse_template(text, path)
    raise ConfigurationError(f"One of {ENV_TEMPLATE} or {ENV_TEMPLATE_PATH} is required")


def _positive_number(env: Mapping[str, str], key: str, default: float, cast: type = float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got '{raw}'") from e
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got '{raw}'")
    return value


def load_config(env: Mapping[str, str] | None = None) -> OperatorConfig:
    """Load the operator configuration from environment variables.

    Args:
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        OperatorConfig

    Raises:
        ConfigurationError: If a required value is missing or malformed
    """
    if env is None:
        env = os.environ

    trigger = env.get(ENV_TRIGGER_SECRET_NAME, "").strip()
    if not trigger:
        raise ConfigurationError(f"{ENV_TRIGGER_SECRET_NAME} is required")

    plural = env.get(ENV_PLURAL, "").strip() or None

    return OperatorConfig(
        trigger_secret_name=trigger,
        template=_read_template(env),
        plural=plural,
        request_timeout=_positive_number(env, ENV_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT),
        metrics_port=int(_positive_number(env, ENV_METRICS_PORT, DEFAULT_METRICS_PORT, cast=int)),
        resync_interval=_positive_number(env, ENV_RESYNC_INTERVAL, DEFAULT_RESYNC_INTERVAL),
    )

"""Exceptions raised by the ImagePullSecret Operator."""

from __future__ import annotations


class OperatorError(Exception):
    """Base class for operator errors."""


class ConfigurationError(OperatorError):
    """Raised when the trigger name or the managed resource template is unusable.

    Configuration errors are fatal: they are reported at startup and the
    operator does not begin reconciling.
    """


class ReconcileTimeout(OperatorError):
    """Raised when a reconciliation pass runs past its deadline."""

    def __init__(self, namespace: str, stage: str):
        self.namespace = namespace
        self.stage = stage
        super().__init__(f"Reconciliation of namespace {namespace} timed out before {stage}")

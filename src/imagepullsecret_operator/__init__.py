"""Keeps a managed image pull secret resource in every namespace that needs it."""

__version__ = "0.1.0"

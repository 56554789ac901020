"""Monitoring helpers and metric registry for the Mesh backend."""

from . import metrics, registry

__all__ = ["metrics", "registry"]

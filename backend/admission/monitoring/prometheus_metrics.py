"""
Prometheus registry for the admission layer.

A dedicated registry keeps these series out of the default process
collector so the host service decides where and whether to expose them.
"""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()


def render_metrics() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST

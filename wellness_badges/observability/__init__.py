"""
Observability module for wellness-badges.

- Metrics collection with Prometheus
"""

__all__ = ["metrics"]

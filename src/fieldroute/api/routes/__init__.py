"""Route group exports."""

from . import clusters, health, routes

__all__ = ["routes", "clusters", "health"]

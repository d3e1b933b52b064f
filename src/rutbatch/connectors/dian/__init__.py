"""DIAN RUT status lookup."""

from .query import RutStatusQuery

__all__ = ["RutStatusQuery"]

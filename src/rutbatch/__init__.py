"""Bulk RUT registration-status lookups against the DIAN public registry."""

__version__ = "0.1.0"

"""Cluster-aware PostgreSQL index and schema health diagnostics."""

__version__ = "0.1.0"

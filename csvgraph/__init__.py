"""Bulk loader for CSV graph extracts."""

__version__ = "0.1.0"

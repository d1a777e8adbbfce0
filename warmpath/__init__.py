"""Relationship inference and ICP matching for warm introductions."""

__version__ = "0.1.0"

# src/__init__.py — v1
"""storyloom — persona-driven collaborative novel writing."""

from storyloom.version import __version__

__all__ = ["__version__"]

"""Yoma opportunity domain services."""

__version__ = "0.1.0"

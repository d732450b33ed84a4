"""Restorator: replay an exported backup archive against a command endpoint."""

__version__ = "0.1.0"

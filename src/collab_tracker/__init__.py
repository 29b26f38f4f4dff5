"""Collaborative project/task tracker core."""

__version__ = "0.1.0"

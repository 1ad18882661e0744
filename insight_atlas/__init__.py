"""Insight Atlas: book insight generation engine."""

__version__ = "1.0.0"

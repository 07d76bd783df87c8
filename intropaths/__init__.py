"""Warm introduction path engine over a weighted relationship graph."""

__version__ = "0.1.0"

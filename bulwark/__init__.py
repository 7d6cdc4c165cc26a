"""Bulwark - manifest-driven vulnerability pattern audit engine."""

__version__ = "0.4.0"

"""Shonra admin backend: access and abuse control for the affiliate admin API."""

__version__ = "1.0.0"

"""Service layer for the Shonra admin backend."""

from .access import AccessCore, build_access_core

__all__ = ["AccessCore", "build_access_core"]

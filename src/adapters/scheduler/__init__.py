"""Background scheduling adapters."""

from .reaper import ExpiryReaper

__all__ = ["ExpiryReaper"]

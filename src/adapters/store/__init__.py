"""Pending registration store adapters."""

from .memory import InMemoryPendingRegistrationStore

__all__ = ["InMemoryPendingRegistrationStore"]

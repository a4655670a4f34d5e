"""
In-process messaging for configuration change signals.

This package provides:
- A small event envelope (`EventEnvelope`)
- A synchronous in-memory bus (`InMemoryEventBus`) with topic subscriptions
"""

from .envelope import ENVIRONMENT_CHANGED, EventEnvelope
from .local import InMemoryEventBus

__all__ = [
    "ENVIRONMENT_CHANGED",
    "EventEnvelope",
    "InMemoryEventBus",
]

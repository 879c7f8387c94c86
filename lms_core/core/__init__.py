"""
Core Module - shared plumbing for the lms-core services.

Components:
- exceptions: DomainError hierarchy (state transitions, preconditions, config)
- events: domain event records + synchronous EventDispatcher
- clock: timezone-aware "now"
- logging: loguru sink configuration
"""

from lms_core.core.events import DomainEvent, EventDispatcher, RecordingDispatcher
from lms_core.core.exceptions import (
    ConfigurationError,
    DomainError,
    InvalidStateTransitionError,
    PreconditionError,
)

__all__ = [
    "ConfigurationError",
    "DomainError",
    "DomainEvent",
    "EventDispatcher",
    "InvalidStateTransitionError",
    "PreconditionError",
    "RecordingDispatcher",
]

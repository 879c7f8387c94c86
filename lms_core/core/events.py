"""
Domain events and the in-process dispatcher.

Events are immutable records of something that already happened. They are
published to whoever subscribed (notifications, audit log, metrics); the
domain never depends on a handler's outcome. Cascades that must stay
consistent with the triggering change are NOT routed through here - the
services call each other directly inside one transaction.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from loguru import logger

from lms_core.core.clock import utcnow


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base event: identity, timestamp and aggregate reference."""

    event_name: ClassVar[str] = "domain.event"
    aggregate_type: ClassVar[str] = ""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)
    actor_id: int | None = None

    @property
    def aggregate_id(self) -> Any:
        return None

    def payload(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("event_id", "occurred_at", "actor_id"):
            data.pop(key, None)
        return data

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "occurred_at": self.occurred_at.isoformat(),
            "actor_id": self.actor_id,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "payload": self.payload(),
        }


# =============================================================================
# Learning Path Events
# =============================================================================


@dataclass(frozen=True)
class PathEnrollmentCreated(DomainEvent):
    event_name: ClassVar[str] = "learning_path.enrollment.created"
    aggregate_type: ClassVar[str] = "learning_path_enrollment"

    enrollment_id: int
    user_id: int
    learning_path_id: int
    is_reactivation: bool = False

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


@dataclass(frozen=True)
class PathCompleted(DomainEvent):
    event_name: ClassVar[str] = "learning_path.completed"
    aggregate_type: ClassVar[str] = "learning_path_enrollment"

    enrollment_id: int
    user_id: int
    learning_path_id: int
    completed_courses: int

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


@dataclass(frozen=True)
class PathDropped(DomainEvent):
    event_name: ClassVar[str] = "learning_path.dropped"
    aggregate_type: ClassVar[str] = "learning_path_enrollment"

    enrollment_id: int
    user_id: int
    learning_path_id: int
    reason: str | None = None

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


@dataclass(frozen=True)
class CourseUnlockedInPath(DomainEvent):
    event_name: ClassVar[str] = "learning_path.course.unlocked"
    aggregate_type: ClassVar[str] = "learning_path_enrollment"

    enrollment_id: int
    course_id: int
    position: int
    course_enrollment_id: int | None = None

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


@dataclass(frozen=True)
class PathProgressUpdated(DomainEvent):
    event_name: ClassVar[str] = "learning_path.progress.updated"
    aggregate_type: ClassVar[str] = "learning_path_enrollment"

    enrollment_id: int
    previous_percentage: float
    new_percentage: float
    course_id: int | None = None

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


# =============================================================================
# Course / Lesson Events
# =============================================================================


@dataclass(frozen=True)
class LessonCompleted(DomainEvent):
    event_name: ClassVar[str] = "lesson.completed"
    aggregate_type: ClassVar[str] = "lesson_progress"

    lesson_progress_id: int
    enrollment_id: int
    lesson_id: int
    user_id: int

    @property
    def aggregate_id(self) -> int:
        return self.lesson_progress_id


@dataclass(frozen=True)
class LessonDeleted(DomainEvent):
    event_name: ClassVar[str] = "progress.lesson_deleted"
    aggregate_type: ClassVar[str] = "course"

    lesson_id: int
    course_id: int
    lesson_title: str
    recalculated_enrollments: int = 0

    @property
    def aggregate_id(self) -> int:
        return self.course_id


@dataclass(frozen=True)
class ProgressUpdated(DomainEvent):
    event_name: ClassVar[str] = "enrollment.progress.updated"
    aggregate_type: ClassVar[str] = "enrollment"

    enrollment_id: int
    lesson_id: int
    previous_percentage: float
    new_percentage: float

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


@dataclass(frozen=True)
class CourseEnrollmentCompleted(DomainEvent):
    event_name: ClassVar[str] = "enrollment.completed"
    aggregate_type: ClassVar[str] = "enrollment"

    enrollment_id: int
    user_id: int
    course_id: int

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


@dataclass(frozen=True)
class CourseEnrollmentDropped(DomainEvent):
    event_name: ClassVar[str] = "enrollment.dropped"
    aggregate_type: ClassVar[str] = "enrollment"

    enrollment_id: int
    user_id: int
    course_id: int
    reason: str | None = None

    @property
    def aggregate_id(self) -> int:
        return self.enrollment_id


# =============================================================================
# Dispatcher
# =============================================================================

EventHandler = Callable[[DomainEvent], Any]


class EventDispatcher:
    """
    Synchronous publish/subscribe hub.

    Handlers subscribe to a concrete event class or to DomainEvent for
    everything. Handler errors are logged and never propagate into the
    domain operation that emitted the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"Event {event.event_name} ({event.aggregate_type}:{event.aggregate_id})")
        for event_type in type(event).__mro__:
            for handler in self._handlers.get(event_type, ()):
                try:
                    handler(event)
                except Exception as e:
                    logger.exception(f"Event handler failed for {event.event_name}: {e}")


class RecordingDispatcher(EventDispatcher):
    """Dispatcher that also keeps every event it saw (CLI dry runs, tests)."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[DomainEvent] = []

    def dispatch(self, event: DomainEvent) -> None:
        self.events.append(event)
        super().dispatch(event)

    def of_type(self, event_type: type[DomainEvent]) -> list[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_type)]

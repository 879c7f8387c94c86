"""
Unit tests for request models, domain events and the event dispatcher.
"""

import pytest
from pydantic import ValidationError

from lms_core.assessment.schemas import ManualGrade, SubmissionResult
from lms_core.assessment.states import AttemptStatus
from lms_core.core.events import (
    EventDispatcher,
    PathCompleted,
    PathProgressUpdated,
    RecordingDispatcher,
)
from lms_core.progress import ProgressUpdate


class TestProgressUpdate:
    def test_page_update(self):
        update = ProgressUpdate(enrollment_id=1, lesson_id=2, current_page=3, total_pages=10)

        assert update.is_page_progress
        assert not update.is_media_progress

    def test_media_update(self):
        update = ProgressUpdate(enrollment_id=1, lesson_id=2, media_position_seconds=30, media_duration_seconds=60)

        assert update.is_media_progress
        assert not update.is_page_progress

    def test_page_and_media_together_are_rejected(self):
        with pytest.raises(ValidationError):
            ProgressUpdate(enrollment_id=1, lesson_id=2, current_page=1, media_position_seconds=3)

    def test_page_numbers_start_at_one(self):
        with pytest.raises(ValidationError):
            ProgressUpdate(enrollment_id=1, lesson_id=2, current_page=0)

    def test_negative_time_is_rejected(self):
        with pytest.raises(ValidationError):
            ProgressUpdate(enrollment_id=1, lesson_id=2, time_spent_seconds=-5)


class TestManualGrade:
    def test_negative_score_is_rejected(self):
        with pytest.raises(ValidationError):
            ManualGrade(answer_id=1, score=-1)

    def test_submission_result_to_dict(self):
        result = SubmissionResult(7.0, 10.0, 70.0, True, AttemptStatus.GRADED)

        assert result.to_dict()["status"] == "graded"
        assert not result.requires_manual_grading


class TestDomainEvents:
    def test_to_dict_carries_name_and_payload(self):
        event = PathCompleted(enrollment_id=3, user_id=7, learning_path_id=2, completed_courses=4)

        data = event.to_dict()

        assert data["event_name"] == event.event_name
        assert data["payload"]["completed_courses"] == 4
        assert event.payload()["enrollment_id"] == 3

    def test_events_are_immutable(self):
        event = PathProgressUpdated(enrollment_id=1, previous_percentage=0.0, new_percentage=50.0, course_id=None)

        with pytest.raises(AttributeError):
            event.new_percentage = 60.0


class TestEventDispatcher:
    def test_handlers_receive_matching_events(self):
        dispatcher = EventDispatcher()
        received = []
        dispatcher.subscribe(PathCompleted, received.append)

        event = PathCompleted(enrollment_id=1, user_id=1, learning_path_id=1, completed_courses=1)
        dispatcher.dispatch(event)
        dispatcher.dispatch(PathProgressUpdated(enrollment_id=1, previous_percentage=0.0, new_percentage=1.0, course_id=None))

        assert received == [event]

    def test_failing_handler_does_not_break_dispatch(self):
        dispatcher = EventDispatcher()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        dispatcher.subscribe(PathCompleted, broken)
        dispatcher.subscribe(PathCompleted, received.append)
        dispatcher.dispatch(PathCompleted(enrollment_id=1, user_id=1, learning_path_id=1, completed_courses=1))

        assert len(received) == 1

    def test_recording_dispatcher(self):
        dispatcher = RecordingDispatcher()
        dispatcher.dispatch(PathCompleted(enrollment_id=1, user_id=1, learning_path_id=1, completed_courses=1))

        assert len(dispatcher.events) == 1
        assert len(dispatcher.of_type(PathCompleted)) == 1
        assert dispatcher.of_type(PathProgressUpdated) == []

"""
Assessment attempts: state machine and the submission/grading service.

Import the service from ``lms_core.assessment.submission``; this package
stays import-free because the ORM models load ``lms_core.assessment.states``.
"""

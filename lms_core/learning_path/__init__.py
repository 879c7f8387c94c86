"""
Learning paths.

- states: course-progress and path-enrollment state machines
- prerequisites: evaluators deciding whether a course may unlock
- enrollment_service: enroll / reactivate / drop / complete
- progress_service: unlock cascade, course completion, drop-cascade
"""

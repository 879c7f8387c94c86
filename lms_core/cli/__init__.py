"""Command line interface (``lms``)."""

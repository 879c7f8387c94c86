"""
lms-core - learning-management domain engine.

Learning-path unlocking and progress, pluggable course progress
calculators, and pluggable assessment grading.
"""

__version__ = "1.0.0"

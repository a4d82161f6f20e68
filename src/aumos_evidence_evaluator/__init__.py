"""AumOS Evidence Evaluator.

Evaluates compliance posture over time from OSCAL assessment-results
artifacts. Each run compares the latest Result of every target against its
accepted threshold, reports regressions and improvements, and rewrites the
threshold markers in place.
"""

__version__ = "0.1.0"
